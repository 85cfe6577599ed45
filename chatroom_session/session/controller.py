"""
Session controller: the room membership state machine.

The controller owns one message store and, per join attempt, one transport
channel. User intents (join, send, leave) and transport events are both
turned into commands on a single ``asyncio.Queue`` consumed by one driver
task, so every transition runs to completion before the next one starts.

Transport events are tagged with the join attempt that produced them; once
an attempt is abandoned (leave, failure) its late events are discarded, so
a fast leave/rejoin can never apply a callback from the previous attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from ..config import ClientConfig
from ..events.types import ChatEvent, Event, joined_notice, left_notice, utc_now
from ..exceptions import (
    ChatSessionError,
    NotConnectedError,
    ServerRejectionError,
    StorageIOError,
    TransportError,
    ValidationError,
)
from ..logging_utils import SessionLoggerAdapter
from ..message_store import MessageStore
from ..protocol import ServerMessageType, build_chat, build_join, build_ping, parse_server_message
from ..transport.base import TransportChannel, TransportEvent, TransportEventType
from .observer import SessionObserver
from .types import RoomSnapshot, SessionPhase, Severity

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], TransportChannel]


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class _Join:
    room_id: str
    username: str
    password: str | None
    room_name: str | None


@dataclass(frozen=True)
class _Send:
    content: str


@dataclass(frozen=True)
class _Leave:
    pass


@dataclass(frozen=True)
class _Ping:
    pass


@dataclass(frozen=True)
class _Inbound:
    attempt: int
    event: TransportEvent


_Command = _Join | _Send | _Leave | _Ping | _Inbound


class SessionController:
    """Drives one client's membership in a single chat room.

    Example:
        >>> store = MessageStore(FileSlotStorage("~/.chatroom"))
        >>> controller = SessionController(
        ...     store,
        ...     transport_factory=lambda: WebSocketTransport.from_config(config),
        ...     observer=my_view,
        ...     config=config,
        ... )
        >>> async with controller:
        ...     controller.join("42", "bob")
        ...     ...
        ...     controller.send_message("hello")
        ...     controller.leave()
    """

    def __init__(
        self,
        store: MessageStore,
        transport_factory: TransportFactory,
        observer: SessionObserver | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Transcript store, owned exclusively by this controller
            transport_factory: Builds a fresh channel for every join attempt
            observer: Presentation callbacks (defaults to a no-op observer)
            config: Client configuration (defaults to ClientConfig())
        """
        self.config = config or ClientConfig()
        self._store = store
        self._transport_factory = transport_factory
        self._observer = observer or SessionObserver()

        self._queue: asyncio.Queue[_Command] = asyncio.Queue()
        self._driver_task: asyncio.Task[None] | None = None

        # Session attributes
        self._phase = SessionPhase.IDLE
        self._room: RoomSnapshot | None = None
        self._username: str | None = None
        self._password: str | None = None
        self._last_failure: ChatSessionError | None = None

        # Current join attempt
        self._attempt = 0
        self._transport: TransportChannel | None = None
        self._pump_task: asyncio.Task[None] | None = None

        self._log = SessionLoggerAdapter(logger, {"room_id": None, "username": None})

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def room(self) -> RoomSnapshot | None:
        return self._room

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def last_failure(self) -> ChatSessionError | None:
        """Most recent failure; cleared when a join succeeds."""
        return self._last_failure

    @property
    def is_running(self) -> bool:
        return self._driver_task is not None and not self._driver_task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the driver task."""
        if self.is_running:
            return
        self._driver_task = asyncio.create_task(self._drive())
        self._log.debug("Session controller started")

    async def stop(self) -> None:
        """Leave any room and stop the driver task."""
        if not self.is_running:
            return

        self._queue.put_nowait(_Leave())
        await self.drain()

        task = self._driver_task
        self._driver_task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._log.debug("Session controller stopped")

    async def __aenter__(self) -> SessionController:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def drain(self) -> None:
        """Wait until every queued command and transport event is processed."""
        while True:
            await self._queue.join()
            # Let the pump move anything the transport already emitted
            await asyncio.sleep(0)
            transport = self._transport
            if self._queue.empty() and (transport is None or transport.pending_events == 0):
                return

    # -------------------------------------------------------------------------
    # Intents
    # -------------------------------------------------------------------------

    def join(
        self,
        room_id: str,
        username: str,
        password: str | None = None,
        room_name: str | None = None,
    ) -> None:
        """Request to join a room. Returns immediately.

        The outcome (joined, rejected, transport failure) arrives through
        the observer.

        Raises:
            ValidationError: If room_id or username is empty; no transport
                is created in that case
            RuntimeError: If the controller has not been started
        """
        room_id = (room_id or "").strip()
        username = (username or "").strip()
        if not room_id:
            self._reject(ValidationError("room_id", "must not be empty"))
        if not username:
            self._reject(ValidationError("username", "must not be empty"))

        self._enqueue(
            _Join(
                room_id=room_id,
                username=username,
                password=(password or "").strip() or None,
                room_name=(room_name or "").strip() or None,
            )
        )

    def send_message(self, content: str) -> bool:
        """Request to send a chat message. Returns immediately.

        The message is not added to the transcript here; it appears once
        the server echoes it back.

        Returns:
            False if the content is empty (nothing is sent), True otherwise
        """
        content = (content or "").strip()
        if not content:
            self._notify("Cannot send an empty message", Severity.WARNING)
            return False
        self._enqueue(_Send(content))
        return True

    def leave(self) -> None:
        """Request to leave the room (or abandon a join in progress)."""
        self._enqueue(_Leave())

    def reset(self) -> None:
        """Return to IDLE from any phase, including FAILED."""
        self.leave()

    def ping(self) -> None:
        """Send an application-level ping while active."""
        self._enqueue(_Ping())

    def _enqueue(self, command: _Command) -> None:
        if not self.is_running:
            raise RuntimeError("SessionController is not started")
        self._queue.put_nowait(command)

    def _reject(self, error: ValidationError) -> None:
        self._notify(error.message, Severity.ERROR)
        raise error

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    async def _drive(self) -> None:
        """Consume commands one at a time."""
        while True:
            command = await self._queue.get()
            try:
                await self._dispatch(command)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log.error(f"Error processing {type(command).__name__}: {e}", exc_info=True)
                self._notify(f"Unexpected error: {e}", Severity.ERROR)
            finally:
                self._queue.task_done()

    async def _dispatch(self, command: _Command) -> None:
        if isinstance(command, _Inbound):
            await self._handle_inbound(command)
        elif isinstance(command, _Join):
            await self._handle_join(command)
        elif isinstance(command, _Send):
            await self._handle_send(command)
        elif isinstance(command, _Leave):
            await self._handle_leave()
        elif isinstance(command, _Ping):
            await self._handle_ping()

    async def _pump(self, attempt: int, transport: TransportChannel, url: str) -> None:
        """Open the channel and forward its events, tagged with the attempt."""
        try:
            await transport.open(url)
            async for event in transport.events():
                self._queue.put_nowait(_Inbound(attempt, event))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.error(f"Transport pump failed: {e}")
            self._queue.put_nowait(
                _Inbound(attempt, TransportEvent.failed(str(TransportError(url, e))))
            )

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_join(self, command: _Join) -> None:
        if self._phase is not SessionPhase.IDLE:
            current = self._room.name if self._room else "a room"
            self._notify(f"Already in {current}; leave it before joining another", Severity.WARNING)
            return

        self._attempt += 1
        attempt = self._attempt
        room = RoomSnapshot(id=command.room_id, name=command.room_name or command.room_id)

        try:
            events = await self._store.load_for_room(room.id)
        except StorageIOError as e:
            self._log.error(f"Could not load transcript for room {room.id}: {e}")
            self._last_failure = e
            self._notify(f"Could not load saved messages: {e.message}", Severity.ERROR)
            return

        self._room = room
        self._username = command.username
        self._password = command.password
        self._log.extra.update({"room_id": room.id, "username": command.username})

        self._call_observer("on_transcript_loaded", room, events)
        self._set_phase(SessionPhase.JOINING)

        try:
            transport = self._transport_factory()
        except Exception as e:
            error = TransportError(self.config.websocket_url, e, "could not create transport")
            await self._fail(error, error.message)
            return
        self._transport = transport
        self._pump_task = asyncio.create_task(
            self._pump(attempt, transport, self.config.websocket_url)
        )

    async def _handle_inbound(self, command: _Inbound) -> None:
        if command.attempt != self._attempt or self._transport is None:
            self._log.debug(
                f"Discarding stale {command.event.event_type.value} from attempt {command.attempt}"
            )
            return

        event = command.event
        match event.event_type:
            case TransportEventType.OPENED:
                await self._on_opened()
            case TransportEventType.MESSAGE:
                await self._on_payload(event.payload or "")
            case TransportEventType.CLOSED | TransportEventType.ERROR:
                await self._on_disconnected(event)

    async def _on_opened(self) -> None:
        room, username, transport = self._room, self._username, self._transport
        if self._phase is not SessionPhase.JOINING or transport is None:
            return
        if room is None or username is None:
            return

        try:
            await transport.send(build_join(room.id, username, self._password))
        except (NotConnectedError, TransportError) as e:
            await self._fail(e, f"Could not join {room.name}: {e.message}")
            return
        self._log.info(f"Join request sent for room {room.id}")

    async def _on_disconnected(self, event: TransportEvent) -> None:
        if self._phase not in (SessionPhase.JOINING, SessionPhase.ACTIVE):
            return
        endpoint = self.config.websocket_url
        reason = event.error or "connection closed"
        error = TransportError(endpoint, reason=reason)
        await self._fail(error, f"Disconnected: {reason}")

    async def _on_payload(self, payload: str) -> None:
        try:
            message = parse_server_message(payload)
        except ValidationError as e:
            self._log.warning(f"Dropping malformed server message: {e.message}")
            return

        if self._phase is SessionPhase.JOINING:
            match message.message_type:
                case ServerMessageType.JOINED:
                    await self._on_joined(message.room_id)
                case ServerMessageType.ERROR:
                    reason = message.message or "join rejected"
                    await self._fail(ServerRejectionError(reason), reason)
                case _:
                    self._log.debug(f"Ignoring {message.message_type.value} while joining")
            return

        if self._phase is not SessionPhase.ACTIVE:
            self._log.debug(f"Ignoring {message.message_type.value} in phase {self._phase.value}")
            return

        match message.message_type:
            case ServerMessageType.CHAT:
                await self._append(
                    ChatEvent(
                        username=message.username or "",
                        content=message.content or "",
                        timestamp=message.timestamp or utc_now(),
                        is_own=message.username == self._username,
                        user_id=message.user_id,
                    )
                )
            case ServerMessageType.USER_JOINED:
                await self._append(joined_notice(message.username or "", message.timestamp))
            case ServerMessageType.USER_LEFT:
                await self._append(left_notice(message.username or "", message.timestamp))
            case ServerMessageType.ERROR:
                reason = message.message or "unknown server error"
                self._last_failure = ServerRejectionError(reason)
                self._notify(reason, Severity.ERROR)
            case _:
                self._log.debug(f"Ignoring {message.message_type.value} while active")

    async def _on_joined(self, room_id: str | None) -> None:
        room = self._room
        if room is None:
            return
        if room_id is not None and room_id != room.id:
            reason = f"joined room {room_id} instead of {room.id}"
            await self._fail(ServerRejectionError(reason), f"Could not join {room.name}: {reason}")
            return

        self._last_failure = None
        self._set_phase(SessionPhase.ACTIVE)
        self._notify(f"Joined {room.name}", Severity.SUCCESS)

    async def _append(self, event: Event) -> None:
        try:
            await self._store.append(event)
        except StorageIOError as e:
            # The event is kept in memory; the next successful write persists it
            self._log.error(f"Could not persist transcript: {e}")
            self._notify(f"Could not save message: {e.message}", Severity.WARNING)
        self._call_observer("on_event_appended", event)

    async def _handle_send(self, command: _Send) -> None:
        transport, username = self._transport, self._username
        if self._phase is not SessionPhase.ACTIVE or transport is None or not transport.is_open:
            self._report_not_connected(NotConnectedError("send message"))
            return
        if username is None:
            return

        try:
            await transport.send(build_chat(command.content, username))
        except NotConnectedError as e:
            self._report_not_connected(e)
        except TransportError as e:
            await self._fail(e, f"Disconnected: {e.message}")

    async def _handle_ping(self) -> None:
        transport = self._transport
        if self._phase is not SessionPhase.ACTIVE or transport is None or not transport.is_open:
            return
        try:
            await transport.send(build_ping())
        except (NotConnectedError, TransportError) as e:
            self._log.debug(f"Ping not sent: {e}")

    async def _handle_leave(self) -> None:
        if self._phase is SessionPhase.IDLE:
            return

        # Invalidate the attempt first so nothing from it is applied later
        self._attempt += 1
        self._set_phase(SessionPhase.CLOSING)
        await self._shutdown_transport()

        room = self._room
        self._room = None
        self._username = None
        self._password = None
        self._store.clear()
        self._log.extra.update({"room_id": None, "username": None})

        self._set_phase(SessionPhase.IDLE)
        if room is not None:
            self._notify(f"Left {room.name}", Severity.INFO)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _fail(self, error: ChatSessionError, message: str) -> None:
        self._last_failure = error
        self._set_phase(SessionPhase.FAILED)
        self._notify(message, Severity.ERROR)
        await self._shutdown_transport()

    async def _shutdown_transport(self) -> None:
        """Cancel the pump and close the current channel."""
        pump, self._pump_task = self._pump_task, None
        transport, self._transport = self._transport, None

        if pump is not None and not pump.done():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

        if transport is None:
            return
        try:
            await asyncio.wait_for(transport.close(), timeout=self.config.close_timeout)
        except asyncio.TimeoutError:
            self._log.warning(f"Transport did not close within {self.config.close_timeout}s")
        except (ChatSessionError, OSError) as e:
            self._log.warning(f"Error closing transport: {e}")

    def _report_not_connected(self, error: NotConnectedError) -> None:
        self._last_failure = error
        self._notify("Not connected; rejoin the room to send messages", Severity.WARNING)

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase is self._phase:
            return
        previous, self._phase = self._phase, phase
        self._log.info(f"Session phase {previous.value} -> {phase.value}")
        self._call_observer("on_phase_change", phase)

    def _notify(self, message: str, severity: Severity) -> None:
        level = {
            Severity.ERROR: logging.ERROR,
            Severity.WARNING: logging.WARNING,
        }.get(severity, logging.INFO)
        self._log.log(level, message)
        self._call_observer("on_notification", message, severity)

    def _call_observer(self, hook: str, *args: Any) -> None:
        try:
            getattr(self._observer, hook)(*args)
        except Exception as e:
            self._log.error(f"Session observer {hook} raised: {e}", exc_info=True)
