"""
Webhook intake and retry queue.

Inbound webhooks are acknowledged immediately and processed in the
background:
- enqueue: validate, record as pending, spawn processing, notify observers
- process: one attempt with a simulated delay and failure probability
- retry sweeper: re-drives pending records whose retry time has elapsed

Records are kept for the life of the process. At most one processing
attempt is in flight per record.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from mock_ota.broadcast.hub import BroadcastHub, BroadcastMessage, UpdateType
from mock_ota.config import Settings
from mock_ota.errors import ValidationError
from mock_ota.logging import get_logger, redact_sensitive
from mock_ota.simulation.random_source import (
    RandomSource,
    bernoulli,
    create_random_source,
    random_token,
)

logger = get_logger(__name__)


class WebhookStatus(str, Enum):
    """Processing state of a webhook."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class WebhookRecord:
    """A received webhook and its processing history."""

    id: str
    channel: str
    event_type: str
    payload: Any
    max_attempts: int
    status: WebhookStatus = WebhookStatus.PENDING
    attempts: int = 0
    next_retry_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    processed_at: datetime | None = None

    def to_summary(self) -> dict[str, Any]:
        """Projection without the payload body."""
        return {
            "id": self.id,
            "channel": self.channel,
            "eventType": self.event_type,
            "status": self.status.value,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "createdAt": _iso(self.created_at),
            "processedAt": _iso(self.processed_at),
            "nextRetryAt": _iso(self.next_retry_at),
        }


class WebhookQueue:
    """
    In-memory webhook queue with bounded retry.

    Processing failures are recorded on the record only; callers have
    already been acknowledged by the time processing runs.
    """

    def __init__(
        self,
        hub: BroadcastHub | None = None,
        rng: RandomSource | None = None,
        processing_delay_ms: float = 100,
        failure_rate: float = 5.0,
        retry_delay_s: float = 60.0,
        sweep_interval_s: float = 5.0,
        default_max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._hub = hub
        self._rng = rng or create_random_source()
        self._processing_delay_s = processing_delay_ms / 1000.0
        self._failure_rate = failure_rate
        self._retry_delay = timedelta(seconds=retry_delay_s)
        self._sweep_interval_s = sweep_interval_s
        self.default_max_attempts = default_max_attempts
        self._sleep = sleep
        self._clock = clock

        self._records: list[WebhookRecord] = []
        self._by_id: dict[str, WebhookRecord] = {}
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._lock = asyncio.Lock()
        self._sweeper_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        hub: BroadcastHub | None = None,
        rng: RandomSource | None = None,
    ) -> "WebhookQueue":
        return cls(
            hub=hub,
            rng=rng,
            processing_delay_ms=settings.webhook_processing_delay_ms,
            failure_rate=settings.webhook_processing_failure_rate,
            retry_delay_s=settings.webhook_retry_delay_s,
            sweep_interval_s=settings.webhook_retry_sweep_interval_s,
            default_max_attempts=settings.webhook_default_max_attempts,
        )

    # -------------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------------

    async def enqueue(
        self,
        channel: str,
        event_type: str | None,
        payload: Any,
        max_attempts: int | None = None,
        id_prefix: str | None = None,
    ) -> WebhookRecord:
        """
        Record a webhook and start processing it in the background.

        Args:
            channel: Provider channel the webhook belongs to
            event_type: Event name, e.g. ``booking.created``
            payload: Opaque event body, kept verbatim
            max_attempts: Processing attempts before terminal failure
            id_prefix: Id prefix (defaults to the channel)

        Returns:
            The new pending record

        Raises:
            ValidationError: channel, event_type or payload missing
        """
        if not channel:
            raise ValidationError("channel is required", details={"field": "channel"})
        if not event_type:
            raise ValidationError("event_type is required", details={"field": "event_type"})
        if payload is None:
            raise ValidationError("data is required", details={"field": "data"})

        attempts = max_attempts if max_attempts is not None else self.default_max_attempts
        if attempts < 1:
            raise ValidationError("maxAttempts must be at least 1", details={"maxAttempts": attempts})

        webhook_id = f"{id_prefix or channel}_{int(time.time() * 1000)}_{random_token(self._rng)}"
        record = WebhookRecord(
            id=webhook_id,
            channel=channel,
            event_type=event_type,
            payload=payload,
            max_attempts=attempts,
            created_at=self._clock(),
        )

        async with self._lock:
            self._records.append(record)
            self._by_id[record.id] = record

        self._spawn(self.process(record))

        logger.info(
            "Received %s webhook %s: %s payload=%s",
            channel,
            record.id,
            event_type,
            redact_sensitive(payload),
        )

        if self._hub is not None:
            await self._hub.publish_webhook_notification(
                channel,
                {"eventType": event_type, "data": payload, "webhookId": record.id},
            )

        return record

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process(self, record: WebhookRecord) -> WebhookStatus:
        """
        Make one processing attempt.

        Skips records that are not pending or already being processed.

        Returns:
            The record status after the attempt
        """
        async with self._lock:
            if record.id in self._in_flight or record.status != WebhookStatus.PENDING:
                return record.status
            self._in_flight.add(record.id)
            record.attempts += 1
            record.next_retry_at = None

        try:
            await self._sleep(self._processing_delay_s)
            failed = bernoulli(self._rng, self._failure_rate)

            async with self._lock:
                now = self._clock()
                if not failed:
                    record.status = WebhookStatus.PROCESSED
                    record.processed_at = now
                elif record.attempts < record.max_attempts:
                    record.status = WebhookStatus.PENDING
                    record.next_retry_at = now + self._retry_delay
                else:
                    record.status = WebhookStatus.FAILED
                    record.next_retry_at = None
        finally:
            async with self._lock:
                self._in_flight.discard(record.id)

        if failed:
            logger.warning(
                "Failed to process webhook %s (channel=%s, event=%s, attempt %d/%d)",
                record.id,
                record.channel,
                record.event_type,
                record.attempts,
                record.max_attempts,
            )
        else:
            logger.info(
                "Processed webhook %s (channel=%s, event=%s, attempts=%d)",
                record.id,
                record.channel,
                record.event_type,
                record.attempts,
            )

        await self._notify_outcome(record)
        return record.status

    async def _notify_outcome(self, record: WebhookRecord) -> None:
        if self._hub is None:
            return
        kind = (
            UpdateType.WEBHOOK_PROCESSED
            if record.status == WebhookStatus.PROCESSED
            else UpdateType.WEBHOOK_FAILED
        )
        data = record.to_summary()
        data["willRetry"] = record.status == WebhookStatus.PENDING
        await self._hub.publish(record.channel, BroadcastMessage(kind, record.channel, data))

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Webhook processing task crashed: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for every in-progress processing task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Retry sweeper
    # -------------------------------------------------------------------------

    async def due_for_retry(self) -> list[WebhookRecord]:
        """Pending records whose retry time has elapsed and are not in flight."""
        now = self._clock()
        async with self._lock:
            return [
                r
                for r in self._records
                if r.status == WebhookStatus.PENDING
                and r.next_retry_at is not None
                and r.next_retry_at <= now
                and r.id not in self._in_flight
            ]

    async def sweep_once(self) -> int:
        """
        Re-process every record due for retry.

        Returns:
            Number of records re-driven
        """
        due = await self.due_for_retry()
        if not due:
            return 0
        logger.info("Retrying %d webhooks", len(due))
        await asyncio.gather(*(self.process(r) for r in due))
        return len(due)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error("Webhook retry sweep failed: %s", e, exc_info=True)

    def start(self) -> None:
        """Start the retry sweeper. Requires a running event loop."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info("Webhook retry sweeper started (interval=%.1fs)", self._sweep_interval_s)

    async def stop(self) -> None:
        """Stop the sweeper and cancel in-progress processing."""
        pending = [t for t in (self._sweeper_task, *self._tasks) if t is not None]
        self._sweeper_task = None
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Webhook queue stopped")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get(self, webhook_id: str) -> WebhookRecord | None:
        async with self._lock:
            return self._by_id.get(webhook_id)

    async def query(
        self,
        channel: str | None = None,
        status: WebhookStatus | str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Filtered, newest-first page of record summaries.

        Returns:
            Tuple of (summaries for the page, total matching records)
        """
        status_value = status.value if isinstance(status, WebhookStatus) else status

        async with self._lock:
            # Newest first; insertion order breaks createdAt ties
            matching = sorted(
                (
                    r
                    for r in reversed(self._records)
                    if (channel is None or r.channel == channel)
                    and (status_value is None or r.status.value == status_value)
                ),
                key=lambda r: r.created_at,
                reverse=True,
            )
            start = (page - 1) * limit
            page_items = [r.to_summary() for r in matching[start : start + limit]]

        return page_items, len(matching)

    def stats(self) -> dict[str, int]:
        """Record counts by status."""
        counts = {s.value: 0 for s in WebhookStatus}
        for record in list(self._records):
            counts[record.status.value] += 1
        counts["total"] = len(self._records)
        counts["inFlight"] = len(self._in_flight)
        return counts

    def __len__(self) -> int:
        return len(self._records)
