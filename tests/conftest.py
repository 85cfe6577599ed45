"""
Shared test configuration and fixtures.

Provides a scripted transport channel that tests drive by hand, a recording
observer, a session controller wired to in-memory storage and a local room
directory server.
"""

from __future__ import annotations

import json
import tempfile
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from chatroom_session.config import ClientConfig
from chatroom_session.events.types import Event
from chatroom_session.exceptions import NotConnectedError
from chatroom_session.message_store import MessageStore
from chatroom_session.session.controller import SessionController
from chatroom_session.session.observer import SessionObserver
from chatroom_session.session.types import RoomSnapshot, SessionPhase, Severity
from chatroom_session.storage.memory import MemorySlotStorage
from chatroom_session.transport.base import TransportChannel, TransportEvent, TransportState


class ScriptedTransport(TransportChannel):
    """
    Transport channel driven by the test.

    open() only records the URL; the test decides when the socket opens,
    which frames arrive and when it closes.
    """

    def __init__(self, auto_open: bool = False):
        super().__init__()
        self.auto_open = auto_open
        self.opened_url: str | None = None
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self.send_error: Exception | None = None

    async def open(self, url: str) -> None:
        self.opened_url = url
        self._state = TransportState.CONNECTING
        if self.auto_open:
            self.fire_open()

    async def send(self, payload: dict[str, Any]) -> None:
        if self._state is not TransportState.OPEN:
            raise NotConnectedError("send")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(payload)

    async def close(self) -> None:
        self.close_calls += 1
        self._emit(TransportEvent.closed())

    def fire_open(self) -> None:
        if not self._terminated:
            self._state = TransportState.OPEN
        self._emit(TransportEvent.opened())

    def fire_message(self, data: dict[str, Any] | str) -> None:
        payload = data if isinstance(data, str) else json.dumps(data)
        self._emit(TransportEvent.message(payload))

    def fire_close(self, reason: str | None = None) -> None:
        self._emit(TransportEvent.closed(reason))

    def fire_error(self, error: str = "connection reset") -> None:
        self._emit(TransportEvent.failed(error))


class TransportRecorder:
    """Transport factory that keeps every channel it creates."""

    def __init__(self, auto_open: bool = False):
        self.auto_open = auto_open
        self.created: list[ScriptedTransport] = []

    def __call__(self) -> ScriptedTransport:
        transport = ScriptedTransport(auto_open=self.auto_open)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> ScriptedTransport:
        return self.created[-1]


class RecordingObserver(SessionObserver):
    """Observer that records every callback."""

    def __init__(self) -> None:
        self.phases: list[SessionPhase] = []
        self.events: list[Event] = []
        self.notifications: list[tuple[str, Severity]] = []
        self.transcripts: list[tuple[RoomSnapshot, list[Event]]] = []

    def on_phase_change(self, phase: SessionPhase) -> None:
        self.phases.append(phase)

    def on_event_appended(self, event: Event) -> None:
        self.events.append(event)

    def on_notification(self, message: str, severity: Severity) -> None:
        self.notifications.append((message, severity))

    def on_transcript_loaded(self, room: RoomSnapshot, events: list[Event]) -> None:
        self.transcripts.append((room, list(events)))

    def messages(self, severity: Severity) -> list[str]:
        return [message for message, level in self.notifications if level is severity]


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def slot_storage() -> MemorySlotStorage:
    return MemorySlotStorage()


@pytest.fixture
def store(slot_storage: MemorySlotStorage) -> MessageStore:
    return MessageStore(slot_storage)


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(base_url="http://chat.test", close_timeout=1.0)


@pytest.fixture
async def controller(
    store: MessageStore,
    transports: TransportRecorder,
    observer: RecordingObserver,
    config: ClientConfig,
) -> AsyncIterator[SessionController]:
    """Create a started controller; it is stopped after the test."""
    controller = SessionController(store, transports, observer=observer, config=config)
    await controller.start()
    yield controller
    await controller.stop()


async def activate(
    controller: SessionController,
    transports: TransportRecorder,
    room_id: str = "42",
    username: str = "bob",
    password: str | None = None,
) -> ScriptedTransport:
    """Join a room and walk the scripted transport through to ACTIVE."""
    controller.join(room_id, username, password=password)
    await controller.drain()
    transport = transports.last
    transport.fire_open()
    await controller.drain()
    transport.fire_message({"type": "joined", "room_id": room_id, "user_id": "u-1"})
    await controller.drain()
    assert controller.phase is SessionPhase.ACTIVE
    return transport


# =============================================================================
# Room directory test server
# =============================================================================

REQUESTS = web.AppKey("requests", list)


def envelope(data: object = None, success: bool = True, message: str | None = None) -> dict:
    return {"success": success, "data": data, "message": message}


async def create_room(request: web.Request) -> web.Response:
    body = await request.json()
    request.app[REQUESTS].append(body)
    if body["name"] == "taken":
        return web.json_response(envelope(success=False, message="Room name taken"), status=409)
    return web.json_response(envelope({"room_id": "r-1", "room_name": body["name"]}))


async def join_room(request: web.Request) -> web.Response:
    body = await request.json()
    request.app[REQUESTS].append(body)
    if body["room_id"] == "locked" and body["password"] != "secret":
        return web.json_response(envelope(success=False, message="Invalid password"), status=401)
    if body["room_id"] == "unnamed":
        return web.json_response(envelope({"room_id": "unnamed"}))
    return web.json_response(envelope({"room_id": body["room_id"], "room_name": "General"}))


async def change_password(request: web.Request) -> web.Response:
    request.app[REQUESTS].append(await request.json())
    return web.json_response(envelope())


async def list_rooms(request: web.Request) -> web.Response:
    rooms = [
        {
            "id": "r-1",
            "name": "General",
            "user_count": 3,
            "has_password": True,
            "created_at": "2024-05-01T12:00:00Z",
        },
        {"name": "no id"},
        {"id": "r-2", "name": "Random", "created_at": "last week"},
    ]
    return web.json_response(envelope(rooms))


async def broken(request: web.Request) -> web.Response:
    return web.Response(text="Internal Server Error", status=500)


@pytest.fixture
async def directory_server() -> AsyncIterator[TestServer]:
    """Start a local room directory."""
    app = web.Application()
    app[REQUESTS] = []
    app.router.add_post("/api/rooms", create_room)
    app.router.add_post("/api/rooms/join", join_room)
    app.router.add_post("/api/rooms/password", change_password)
    app.router.add_get("/api/rooms", list_rooms)
    app.router.add_get("/broken/api/rooms", broken)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()

