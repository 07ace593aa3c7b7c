"""
Tests for the webhook queue.

Tests:
- Intake validation and id format
- Background processing outcomes
- Bounded retry via the sweeper
- Status queries and observer notifications
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from mock_ota.broadcast.hub import BroadcastHub, UpdateType
from mock_ota.errors import ValidationError
from mock_ota.webhooks.queue import WebhookQueue, WebhookStatus
from tests.api_fixtures import FakeClock, RecordingSleep, ScriptedRandom


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=UTC))


def make_queue(clock: FakeClock, failure_rate: float = 0.0, hub=None) -> WebhookQueue:
    return WebhookQueue(
        hub=hub,
        rng=ScriptedRandom(fallback=0.0),
        processing_delay_ms=100,
        failure_rate=failure_rate,
        retry_delay_s=60,
        sleep=RecordingSleep(),
        clock=clock,
    )


class TestEnqueue:
    """Intake."""

    @pytest.mark.asyncio
    async def test_enqueue_records_pending(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        record = await queue.enqueue("airbnb", "booking.created", {"bookingId": "b1"})

        assert record.id.startswith("airbnb_")
        assert record.status == WebhookStatus.PENDING
        assert record.max_attempts == 3
        assert record.created_at == clock.now
        assert len(queue) == 1
        await queue.wait_idle()

    @pytest.mark.asyncio
    async def test_id_prefix(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        record = await queue.enqueue("partner", "ping", {}, max_attempts=1, id_prefix="test")
        assert record.id.startswith("test_")
        assert record.channel == "partner"
        await queue.wait_idle()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "channel,event_type,payload",
        [("", "booking.created", {}), ("airbnb", "", {}), ("airbnb", None, {}), ("airbnb", "x", None)],
    )
    async def test_rejects_missing_fields(self, clock: FakeClock, channel, event_type, payload) -> None:
        queue = make_queue(clock)
        with pytest.raises(ValidationError):
            await queue.enqueue(channel, event_type, payload)
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        with pytest.raises(ValidationError):
            await queue.enqueue("airbnb", "booking.created", {}, max_attempts=0)


class TestProcessing:
    """Single processing attempts."""

    @pytest.mark.asyncio
    async def test_successful_processing(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        record = await queue.enqueue("booking", "reservation.modified", {"id": 1})
        await queue.wait_idle()

        assert record.status == WebhookStatus.PROCESSED
        assert record.attempts == 1
        assert record.processed_at == clock.now
        assert record.next_retry_at is None

    @pytest.mark.asyncio
    async def test_single_attempt_failure_is_terminal(self, clock: FakeClock) -> None:
        queue = make_queue(clock, failure_rate=100.0)
        record = await queue.enqueue("vrbo", "booking.created", {}, max_attempts=1)
        await queue.wait_idle()

        assert record.status == WebhookStatus.FAILED
        assert record.attempts == 1
        assert record.next_retry_at is None
        assert record.processed_at is None

    @pytest.mark.asyncio
    async def test_failure_schedules_retry(self, clock: FakeClock) -> None:
        queue = make_queue(clock, failure_rate=100.0)
        record = await queue.enqueue("agoda", "booking.created", {})
        await queue.wait_idle()

        assert record.status == WebhookStatus.PENDING
        assert record.attempts == 1
        assert record.next_retry_at == clock.now + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_non_pending_records_are_skipped(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        record = await queue.enqueue("airbnb", "booking.created", {})
        await queue.wait_idle()

        assert await queue.process(record) == WebhookStatus.PROCESSED
        assert record.attempts == 1


class TestRetrySweeper:
    """Bounded retry."""

    @pytest.mark.asyncio
    async def test_retries_until_max_attempts(self, clock: FakeClock) -> None:
        queue = make_queue(clock, failure_rate=100.0)
        record = await queue.enqueue("expedia", "booking.cancelled", {"id": "x"})
        await queue.wait_idle()

        assert await queue.sweep_once() == 0  # not yet due

        clock.advance(timedelta(seconds=61))
        assert await queue.sweep_once() == 1
        assert record.attempts == 2
        assert record.status == WebhookStatus.PENDING

        clock.advance(timedelta(seconds=61))
        assert await queue.sweep_once() == 1
        assert record.attempts == 3
        assert record.status == WebhookStatus.FAILED

        clock.advance(timedelta(seconds=61))
        assert await queue.sweep_once() == 0
        assert record.attempts == record.max_attempts

    @pytest.mark.asyncio
    async def test_retry_can_succeed(self, clock: FakeClock) -> None:
        queue = make_queue(clock, failure_rate=50.0)
        queue._rng = ScriptedRandom([0.1, 0.9])  # fail, then succeed
        record = await queue.enqueue("booking", "booking.created", {})
        await queue.wait_idle()
        assert record.status == WebhookStatus.PENDING

        clock.advance(timedelta(minutes=2))
        await queue.sweep_once()
        assert record.status == WebhookStatus.PROCESSED
        assert record.attempts == 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        queue.start()
        queue.start()  # idempotent
        await queue.stop()


class TestQueries:
    """Status queries."""

    @pytest.mark.asyncio
    async def test_query_newest_first(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        ids = []
        for i in range(5):
            clock.advance(timedelta(seconds=1))
            record = await queue.enqueue("airbnb" if i % 2 == 0 else "vrbo", f"event.{i}", {})
            ids.append(record.id)
        await queue.wait_idle()

        items, total = await queue.query()
        assert total == 5
        assert [item["id"] for item in items] == list(reversed(ids))
        assert "payload" not in items[0]

    @pytest.mark.asyncio
    async def test_query_filters_and_pages(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        for i in range(5):
            clock.advance(timedelta(seconds=1))
            await queue.enqueue("airbnb", f"event.{i}", {})
        await queue.enqueue("vrbo", "event.x", {})
        await queue.wait_idle()

        items, total = await queue.query(channel="airbnb", page=2, limit=2)
        assert total == 5
        assert [item["eventType"] for item in items] == ["event.2", "event.1"]

        items, total = await queue.query(status=WebhookStatus.FAILED)
        assert total == 0

        items, total = await queue.query(status="processed")
        assert total == 6

    @pytest.mark.asyncio
    async def test_get_and_stats(self, clock: FakeClock) -> None:
        queue = make_queue(clock)
        record = await queue.enqueue("airbnb", "booking.created", {})
        await queue.wait_idle()

        assert await queue.get(record.id) is record
        assert await queue.get("missing") is None
        stats = queue.stats()
        assert stats["processed"] == 1
        assert stats["total"] == 1
        assert stats["inFlight"] == 0


class TestNotifications:
    """Observer notifications through the broadcast hub."""

    @pytest.mark.asyncio
    async def test_notifies_receipt_and_outcome(self, clock: FakeClock) -> None:
        hub = AsyncMock(spec=BroadcastHub)
        queue = make_queue(clock, hub=hub)
        record = await queue.enqueue("airbnb", "booking.created", {"bookingId": "b1"})
        await queue.wait_idle()

        hub.publish_webhook_notification.assert_awaited_once_with(
            "airbnb",
            {"eventType": "booking.created", "data": {"bookingId": "b1"}, "webhookId": record.id},
        )
        channel, message = hub.publish.await_args.args
        assert channel == "airbnb"
        assert message.type == UpdateType.WEBHOOK_PROCESSED
        assert message.data["status"] == "processed"
        assert message.data["willRetry"] is False

    @pytest.mark.asyncio
    async def test_failed_attempt_notifies_retry(self, clock: FakeClock) -> None:
        hub = AsyncMock(spec=BroadcastHub)
        queue = make_queue(clock, failure_rate=100.0, hub=hub)
        await queue.enqueue("airbnb", "booking.created", {})
        await queue.wait_idle()

        _, message = hub.publish.await_args.args
        assert message.type == UpdateType.WEBHOOK_FAILED
        assert message.data["willRetry"] is True
