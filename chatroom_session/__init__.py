"""
Chatroom Session

Client-side session layer for a realtime chat room.

Provides:
- A session state machine (IDLE -> JOINING -> ACTIVE -> CLOSING -> IDLE, plus FAILED)
- A per-room transcript store persisted across restarts
- An aiohttp WebSocket transport and room directory client
- A presentation-facing facade reporting everything through callbacks

Usage:

    >>> from chatroom_session import ChatClient, ClientConfig, SessionObserver
    >>> class View(SessionObserver):
    ...     def on_event_appended(self, event):
    ...         print(event)
    >>> async with ChatClient(ClientConfig.from_environment(), observer=View()) as client:
    ...     await client.join_room("42", "bob")
    ...     client.send_message("hello")

Lower-level pieces can be wired by hand:

    from chatroom_session import MessageStore, SessionController, WebSocketTransport
    from chatroom_session.storage import FileSlotStorage

    store = MessageStore(FileSlotStorage("~/.chatroom"))
    controller = SessionController(store, transport_factory=WebSocketTransport)
"""

from .client import ChatClient
from .config import ClientConfig
from .directory import RoomDirectoryClient, RoomSummary
from .events import ChatEvent, Event, EventKind, SystemEvent, event_from_dict, event_to_dict
from .exceptions import (
    ChatSessionError,
    DirectoryRequestError,
    NotConnectedError,
    NotLoadedError,
    ServerRejectionError,
    StorageIOError,
    TransportError,
    ValidationError,
)
from .message_store import MessageStore
from .session import RoomSnapshot, SessionController, SessionObserver, SessionPhase, Severity
from .storage import FileSlotStorage, MemorySlotStorage, SlotStorage
from .transport import (
    TransportChannel,
    TransportEvent,
    TransportEventType,
    TransportState,
    WebSocketTransport,
)

__version__ = "0.1.0"

__all__ = [
    # Facade
    "ChatClient",
    "ClientConfig",
    # Session
    "RoomSnapshot",
    "SessionController",
    "SessionObserver",
    "SessionPhase",
    "Severity",
    # Events and store
    "ChatEvent",
    "Event",
    "EventKind",
    "MessageStore",
    "SystemEvent",
    "event_from_dict",
    "event_to_dict",
    # Storage
    "FileSlotStorage",
    "MemorySlotStorage",
    "SlotStorage",
    # Transport
    "TransportChannel",
    "TransportEvent",
    "TransportEventType",
    "TransportState",
    "WebSocketTransport",
    # Directory
    "RoomDirectoryClient",
    "RoomSummary",
    # Exceptions
    "ChatSessionError",
    "DirectoryRequestError",
    "NotConnectedError",
    "NotLoadedError",
    "ServerRejectionError",
    "StorageIOError",
    "TransportError",
    "ValidationError",
]
