"""
Tests for the subscription-filtered broadcast hub.
"""

from unittest.mock import AsyncMock

import pytest

from mock_ota.broadcast.hub import BroadcastHub, BroadcastMessage, UpdateType


def make_transport() -> AsyncMock:
    transport = AsyncMock()
    transport.send_json = AsyncMock(return_value=None)
    transport.close = AsyncMock(return_value=None)
    return transport


def frames(transport: AsyncMock) -> list[dict]:
    return [c.args[0] for c in transport.send_json.await_args_list]


def events(transport: AsyncMock) -> list[str]:
    return [f["event"] for f in frames(transport)]


@pytest.fixture
def hub() -> BroadcastHub:
    hub = BroadcastHub()
    hub.start()
    return hub


class TestConnectionLifecycle:
    """Connect, disconnect and shutdown."""

    @pytest.mark.asyncio
    async def test_connect_greets_with_id(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        connection_id = await hub.on_connect(transport)

        greeting = frames(transport)[0]
        assert greeting["event"] == "connected"
        assert greeting["data"]["connectionId"] == connection_id
        assert hub.has_connection(connection_id)
        assert hub.connection_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_discards_subscriptions(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        connection_id = await hub.on_connect(transport, "c1")
        await hub.subscribe(connection_id, "airbnb", UpdateType.BOOKING)

        await hub.on_disconnect(connection_id, "client closed")

        assert not hub.has_connection("c1")
        assert hub.subscriptions_for("c1") == set()
        assert await hub.publish_booking_update("airbnb", {"id": "b1"}) == 0

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, hub: BroadcastHub) -> None:
        await hub.on_disconnect("nobody")
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_closes_connections(self, hub: BroadcastHub) -> None:
        transports = [make_transport() for _ in range(3)]
        for t in transports:
            await hub.on_connect(t)

        await hub.shutdown()
        await hub.shutdown()  # second call is harmless

        assert hub.connection_count == 0
        assert hub.is_initialized is False
        for t in transports:
            t.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_status(self, hub: BroadcastHub) -> None:
        await hub.on_connect(make_transport(), "c1")
        await hub.subscribe("c1", "vrbo", UpdateType.RATE)

        status = hub.health_status()
        assert status["isInitialized"] is True
        assert status["connectedClients"] == 1
        assert status["clients"][0]["subscriptions"] == ["vrbo:rate_update"]


class TestSubscriptions:
    """Subscribe and unsubscribe."""

    @pytest.mark.asyncio
    async def test_subscribe_acknowledges(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")

        assert await hub.subscribe("c1", "airbnb", UpdateType.BOOKING) is True

        ack = frames(transport)[-1]
        assert ack["event"] == "subscription_confirmed"
        assert ack["data"]["channel"] == "airbnb"
        assert ack["data"]["type"] == "booking_update"
        assert hub.subscriptions_for("c1") == {("airbnb", "booking_update")}

    @pytest.mark.asyncio
    async def test_subscribe_unknown_connection(self, hub: BroadcastHub) -> None:
        assert await hub.subscribe("ghost", "airbnb", UpdateType.BOOKING) is False

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")
        await hub.subscribe("c1", "airbnb", UpdateType.BOOKING)
        await hub.unsubscribe("c1", "airbnb", UpdateType.BOOKING)

        assert events(transport)[-1] == "unsubscription_confirmed"
        assert await hub.publish_booking_update("airbnb", {}) == 0


class TestDelivery:
    """Publish filtering, global and direct messages."""

    @pytest.mark.asyncio
    async def test_publish_filters_by_channel_and_type(self, hub: BroadcastHub) -> None:
        match, other_channel, other_type = (make_transport() for _ in range(3))
        await hub.on_connect(match, "match")
        await hub.on_connect(other_channel, "other_channel")
        await hub.on_connect(other_type, "other_type")
        await hub.subscribe("match", "airbnb", UpdateType.BOOKING)
        await hub.subscribe("other_channel", "vrbo", UpdateType.BOOKING)
        await hub.subscribe("other_type", "airbnb", UpdateType.RATE)

        delivered = await hub.publish_booking_update("airbnb", {"id": "b1"})

        assert delivered == 1
        update = frames(match)[-1]
        assert update["event"] == "channel_update"
        assert update["data"]["type"] == "booking_update"
        assert update["data"]["channel"] == "airbnb"
        assert update["data"]["data"] == {"id": "b1"}
        assert "channel_update" not in events(other_channel)
        assert "channel_update" not in events(other_type)

    @pytest.mark.asyncio
    async def test_global_reaches_everyone(self, hub: BroadcastHub) -> None:
        transports = [make_transport() for _ in range(3)]
        for t in transports:
            await hub.on_connect(t)

        message = BroadcastMessage("maintenance", "system", {"at": "now"})
        assert await hub.publish_global(message) == 3
        for t in transports:
            assert events(t)[-1] == "global_update"

    @pytest.mark.asyncio
    async def test_direct_message(self, hub: BroadcastHub) -> None:
        target, bystander = make_transport(), make_transport()
        await hub.on_connect(target, "target")
        await hub.on_connect(bystander, "bystander")

        message = BroadcastMessage("notice", "system", {"hello": True})
        assert await hub.send_direct("target", message) is True
        assert await hub.send_direct("ghost", message) is False
        assert events(target)[-1] == "direct_message"
        assert "direct_message" not in events(bystander)

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self, hub: BroadcastHub) -> None:
        broken, healthy = make_transport(), make_transport()
        await hub.on_connect(broken, "broken")
        await hub.on_connect(healthy, "healthy")
        broken.send_json.side_effect = RuntimeError("socket closed")

        delivered = await hub.publish_global(BroadcastMessage("notice", "system", {}))

        assert delivered == 1
        assert not hub.has_connection("broken")
        assert hub.has_connection("healthy")


class TestClientMessages:
    """Inbound message dispatch."""

    @pytest.mark.asyncio
    async def test_subscribe_message(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")
        await hub.handle_message(
            "c1", {"type": "subscribe", "channel": "booking", "eventType": "calendar_update"}
        )
        assert hub.subscriptions_for("c1") == {("booking", "calendar_update")}

    @pytest.mark.asyncio
    async def test_subscribe_without_channel_errors(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")
        await hub.handle_message("c1", {"type": "subscribe", "eventType": "booking_update"})

        assert events(transport)[-1] == "error"
        assert hub.subscriptions_for("c1") == set()

    @pytest.mark.asyncio
    async def test_ping_pong(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")
        await hub.handle_message("c1", {"type": "ping"})
        assert events(transport)[-1] == "pong"

    @pytest.mark.asyncio
    async def test_unknown_type_errors(self, hub: BroadcastHub) -> None:
        transport = make_transport()
        await hub.on_connect(transport, "c1")
        await hub.handle_message("c1", {"type": "dance"})

        reply = frames(transport)[-1]
        assert reply["event"] == "error"
        assert "dance" in reply["data"]["message"]
