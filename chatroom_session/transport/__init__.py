"""
Transport channels between the client and the chat server.

Provides the abstract channel contract and an aiohttp WebSocket
implementation.
"""

from .base import TransportChannel, TransportEvent, TransportEventType, TransportState
from .websocket import WebSocketTransport

__all__ = [
    "TransportChannel",
    "TransportEvent",
    "TransportEventType",
    "TransportState",
    "WebSocketTransport",
]
