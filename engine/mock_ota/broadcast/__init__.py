"""
Live update delivery to connected observers.
"""

from mock_ota.broadcast.hub import (
    BroadcastHub,
    BroadcastMessage,
    ClientConnection,
    Connection,
    UpdateType,
)

__all__ = [
    "BroadcastHub",
    "BroadcastMessage",
    "ClientConnection",
    "Connection",
    "UpdateType",
]
