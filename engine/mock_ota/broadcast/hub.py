"""
Subscription-filtered broadcast hub.

Tracks live connections and delivers typed update messages:
- publish: only to connections subscribed to (channel, message type)
- publish_global: to every connection
- send_direct: to a single connection

Each connection moves connected -> subscribed* -> disconnected; its
subscriptions are discarded when it disconnects. Connections whose send
fails are dropped from the registry.

Outgoing frames all have the shape ``{"event": <name>, "data": <payload>}``.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from mock_ota.logging import get_logger

logger = get_logger(__name__)


class Connection(Protocol):
    """Transport for a live connection (a FastAPI WebSocket satisfies this)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class UpdateType:
    """Typed update message names."""

    BOOKING = "booking_update"
    PROPERTY = "property_update"
    RATE = "rate_update"
    CALENDAR = "calendar_update"
    WEBHOOK_NOTIFICATION = "webhook_notification"
    WEBHOOK_PROCESSED = "webhook_processed"
    WEBHOOK_FAILED = "webhook_failed"


@dataclass
class BroadcastMessage:
    """A typed update constructed at publish time."""

    type: str
    channel: str
    data: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ClientConnection:
    """Registry entry for one connection."""

    id: str
    transport: Connection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subscriptions: set[tuple[str, str]] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "connectedAt": self.connected_at.isoformat(),
            "subscriptions": sorted(f"{channel}:{kind}" for channel, kind in self.subscriptions),
        }


def _frame(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class BroadcastHub:
    """
    Connection registry and publish/subscribe delivery.

    Registry mutations are serialized by an asyncio lock; sends happen
    outside the lock against a snapshot of the targets.
    """

    def __init__(self) -> None:
        self._clients: dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()
        self._initialized = False
        self._started_at = time.monotonic()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Mark the hub ready to accept connections."""
        self._initialized = True
        self._started_at = time.monotonic()
        logger.info("Broadcast hub initialized")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def shutdown(self) -> None:
        """Close every connection and clear the registry. Safe to call twice."""
        async with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
            was_initialized = self._initialized
            self._initialized = False

        if not clients and not was_initialized:
            return

        logger.info("Shutting down broadcast hub (%d connections)", len(clients))
        for client in clients:
            try:
                await client.transport.close()
            except Exception as e:
                logger.debug("Error closing connection %s: %s", client.id, e)
        logger.info("Broadcast hub shut down")

    # -------------------------------------------------------------------------
    # Connection lifecycle hooks
    # -------------------------------------------------------------------------

    async def on_connect(self, transport: Connection, connection_id: str | None = None) -> str:
        """
        Register a new connection and greet it with its id.

        Returns:
            The connection id
        """
        client = ClientConnection(id=connection_id or uuid.uuid4().hex, transport=transport)
        async with self._lock:
            self._clients[client.id] = client
            total = len(self._clients)
        logger.info("Client connected: %s (total=%d)", client.id, total)

        await self._send(
            client,
            _frame("connected", {"connectionId": client.id, "timestamp": _now_iso()}),
        )
        return client.id

    async def on_disconnect(self, connection_id: str, reason: str = "") -> None:
        """Remove a connection and all of its subscriptions."""
        async with self._lock:
            removed = self._clients.pop(connection_id, None)
            total = len(self._clients)
        if removed is not None:
            logger.info(
                "Client disconnected: %s%s (total=%d)",
                connection_id,
                f", reason: {reason}" if reason else "",
                total,
            )

    async def handle_message(self, connection_id: str, data: dict[str, Any]) -> None:
        """
        Dispatch an inbound client message.

        Supported types: subscribe, unsubscribe (with channel and eventType),
        and ping. Anything else gets an error reply.
        """
        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type in ("subscribe", "unsubscribe"):
            channel = data.get("channel")
            event_type = data.get("eventType", data.get("event_type"))
            if not channel or not event_type:
                await self._reply(
                    connection_id,
                    _frame(
                        "error",
                        {"message": "channel and eventType are required", "type": msg_type},
                    ),
                )
                return
            if msg_type == "subscribe":
                await self.subscribe(connection_id, str(channel), str(event_type))
            else:
                await self.unsubscribe(connection_id, str(channel), str(event_type))

        elif msg_type == "ping":
            await self._reply(connection_id, _frame("pong", {"timestamp": _now_iso()}))

        else:
            logger.warning("Unknown message type from %s: %s", connection_id, msg_type)
            await self._reply(
                connection_id,
                _frame("error", {"message": f"Unknown message type: {msg_type}", "type": msg_type}),
            )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, connection_id: str, channel: str, event_type: str) -> bool:
        """
        Add a (channel, type) subscription and acknowledge it.

        Returns:
            False if the connection is not registered
        """
        async with self._lock:
            client = self._clients.get(connection_id)
            if client is None:
                return False
            client.subscriptions.add((channel, event_type))

        logger.debug("Client %s subscribed to %s:%s", connection_id, channel, event_type)
        await self._send(
            client,
            _frame(
                "subscription_confirmed",
                {"channel": channel, "type": event_type, "timestamp": _now_iso()},
            ),
        )
        return True

    async def unsubscribe(self, connection_id: str, channel: str, event_type: str) -> bool:
        """Remove a (channel, type) subscription and acknowledge it."""
        async with self._lock:
            client = self._clients.get(connection_id)
            if client is None:
                return False
            client.subscriptions.discard((channel, event_type))

        logger.debug("Client %s unsubscribed from %s:%s", connection_id, channel, event_type)
        await self._send(
            client,
            _frame(
                "unsubscription_confirmed",
                {"channel": channel, "type": event_type, "timestamp": _now_iso()},
            ),
        )
        return True

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def publish(self, channel: str, message: BroadcastMessage) -> int:
        """
        Deliver to connections subscribed to (channel, message.type).

        Returns:
            Number of connections the message was delivered to
        """
        key = (channel, message.type)
        async with self._lock:
            targets = [c for c in self._clients.values() if key in c.subscriptions]

        logger.debug("Publishing %s on %s to %d clients", message.type, channel, len(targets))
        return await self._deliver(targets, _frame("channel_update", message.to_dict()))

    async def publish_global(self, message: BroadcastMessage) -> int:
        """Deliver to every connection regardless of subscriptions."""
        async with self._lock:
            targets = list(self._clients.values())
        return await self._deliver(targets, _frame("global_update", message.to_dict()))

    async def send_direct(self, connection_id: str, message: BroadcastMessage) -> bool:
        """
        Deliver to one connection.

        Returns:
            Whether the connection was found
        """
        async with self._lock:
            client = self._clients.get(connection_id)
        if client is None:
            return False
        await self._send(client, _frame("direct_message", message.to_dict()))
        return True

    async def publish_booking_update(self, channel: str, data: Any) -> int:
        return await self.publish(channel, BroadcastMessage(UpdateType.BOOKING, channel, data))

    async def publish_property_update(self, channel: str, data: Any) -> int:
        return await self.publish(channel, BroadcastMessage(UpdateType.PROPERTY, channel, data))

    async def publish_rate_update(self, channel: str, data: Any) -> int:
        return await self.publish(channel, BroadcastMessage(UpdateType.RATE, channel, data))

    async def publish_calendar_update(self, channel: str, data: Any) -> int:
        return await self.publish(channel, BroadcastMessage(UpdateType.CALENDAR, channel, data))

    async def publish_webhook_notification(self, channel: str, data: Any) -> int:
        return await self.publish(
            channel, BroadcastMessage(UpdateType.WEBHOOK_NOTIFICATION, channel, data)
        )

    async def _deliver(self, targets: list[ClientConnection], frame: dict[str, Any]) -> int:
        delivered = 0
        for client in targets:
            if await self._send(client, frame):
                delivered += 1
        return delivered

    async def _reply(self, connection_id: str, frame: dict[str, Any]) -> None:
        async with self._lock:
            client = self._clients.get(connection_id)
        if client is not None:
            await self._send(client, frame)

    async def _send(self, client: ClientConnection, frame: dict[str, Any]) -> bool:
        """Send one frame; drop the connection if the send fails."""
        try:
            await client.transport.send_json(frame)
            return True
        except Exception as e:
            logger.warning("Dropping connection %s after failed send: %s", client.id, e)
            async with self._lock:
                self._clients.pop(client.id, None)
            return False

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    def has_connection(self, connection_id: str) -> bool:
        return connection_id in self._clients

    def subscriptions_for(self, connection_id: str) -> set[tuple[str, str]]:
        client = self._clients.get(connection_id)
        return set(client.subscriptions) if client else set()

    def connections(self) -> list[dict[str, Any]]:
        """Connected clients with their subscriptions."""
        return [client.to_dict() for client in list(self._clients.values())]

    def health_status(self) -> dict[str, Any]:
        return {
            "isInitialized": self._initialized,
            "connectedClients": self.connection_count,
            "clients": self.connections(),
            "uptime": time.monotonic() - self._started_at,
            "timestamp": _now_iso(),
        }
