"""
Presentation-facing facade.

ChatClient is the surface a view talks to: it turns user intents into room
directory calls and session controller intents, and reports every failure as
a notification instead of raising.
"""

from __future__ import annotations

import logging
from types import TracebackType

from .config import ClientConfig
from .directory.client import RoomDirectoryClient
from .directory.types import RoomSummary
from .exceptions import ChatSessionError, DirectoryRequestError, ValidationError
from .message_store import MessageStore
from .session.controller import SessionController, TransportFactory
from .session.observer import SessionObserver
from .session.types import SessionPhase, Severity
from .storage.base import SlotStorage
from .storage.local import FileSlotStorage
from .transport.websocket import WebSocketTransport

logger = logging.getLogger(__name__)


class ChatClient:
    """User intents for one chat client.

    Example:
        >>> async with ChatClient(ClientConfig.from_environment(), observer=view) as client:
        ...     rooms = await client.refresh_rooms()
        ...     await client.join_room(rooms[0].id, "bob")
        ...     client.send_message("hello")
        ...     client.leave_room()
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        observer: SessionObserver | None = None,
        *,
        storage: SlotStorage | None = None,
        directory: RoomDirectoryClient | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration (defaults to ClientConfig())
            observer: Presentation callbacks
            storage: Transcript slot storage (defaults to files under config.storage_path)
            directory: Room directory client (defaults to one built from config)
            transport_factory: Channel factory (defaults to aiohttp WebSocket channels)
        """
        self.config = config or ClientConfig()
        self.observer = observer or SessionObserver()
        self.storage = storage or FileSlotStorage.from_config(self.config)
        self.directory = directory or RoomDirectoryClient.from_config(self.config)

        if transport_factory is None:
            transport_factory = self._default_transport
        self.controller = SessionController(
            MessageStore(self.storage),
            transport_factory,
            observer=self.observer,
            config=self.config,
        )

    def _default_transport(self) -> WebSocketTransport:
        return WebSocketTransport.from_config(self.config)

    @property
    def phase(self) -> SessionPhase:
        return self.controller.phase

    async def start(self) -> None:
        await self.controller.start()

    async def close(self) -> None:
        """Leave any room and release network and storage resources."""
        await self.controller.stop()
        await self.directory.close()
        await self.storage.close()

    async def __aenter__(self) -> ChatClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Intents
    # -------------------------------------------------------------------------

    async def create_room(self, name: str, password: str | None = None) -> str | None:
        """Create a room.

        Returns:
            The new room id, or None if the request failed (already reported)
        """
        try:
            room_id = await self.directory.create_room(name, password)
        except (ValidationError, DirectoryRequestError) as e:
            self._report(e)
            return None
        self._notify(f"Room created: {room_id}", Severity.SUCCESS)
        return room_id

    async def join_room(self, room_id: str, username: str, password: str | None = None) -> bool:
        """Check the room with the directory, then start the session join.

        Returns:
            True if the join was started; its outcome arrives via the observer
        """
        if self.controller.phase is not SessionPhase.IDLE:
            current = self.controller.room.name if self.controller.room else "a room"
            self._notify(f"Already in {current}; leave it before joining another", Severity.WARNING)
            return False

        room_id = (room_id or "").strip()
        username = (username or "").strip()
        try:
            if not room_id:
                raise ValidationError("room_id", "must not be empty")
            if not username:
                raise ValidationError("username", "must not be empty")
            room_name = await self.directory.join_room(room_id, password)
        except (ValidationError, DirectoryRequestError) as e:
            self._report(e)
            return False

        try:
            self.controller.join(room_id, username, password=password, room_name=room_name)
        except ValidationError:
            # Already reported by the controller
            return False
        return True

    def send_message(self, content: str) -> bool:
        """Send a chat message; see SessionController.send_message."""
        return self.controller.send_message(content)

    def leave_room(self) -> None:
        self.controller.leave()

    async def update_password(self, new_password: str) -> bool:
        """Change the password of the active room.

        The room snapshot of the running session is not affected.
        """
        room = self.controller.room
        if room is None:
            self._notify("Join a room before changing its password", Severity.WARNING)
            return False

        try:
            await self.directory.change_password(room.id, new_password)
        except (ValidationError, DirectoryRequestError) as e:
            self._report(e)
            return False
        self._notify("Password updated", Severity.SUCCESS)
        return True

    async def refresh_rooms(self) -> list[RoomSummary] | None:
        """List rooms, or None if the request failed (already reported)."""
        try:
            return await self.directory.list_rooms()
        except DirectoryRequestError as e:
            self._report(e)
            return None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _report(self, error: ChatSessionError) -> None:
        reason = getattr(error, "reason", None)
        message = reason if isinstance(error, DirectoryRequestError) and reason else error.message
        logger.warning(f"{type(error).__name__}: {error.message}")
        self._notify(message, Severity.ERROR)

    def _notify(self, message: str, severity: Severity) -> None:
        try:
            self.observer.on_notification(message, severity)
        except Exception as e:
            logger.error(f"Observer on_notification raised: {e}", exc_info=True)
