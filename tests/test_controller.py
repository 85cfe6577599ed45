"""Tests for the session controller state machine."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest
from conftest import RecordingObserver, ScriptedTransport, TransportRecorder, activate

from chatroom_session.config import ClientConfig
from chatroom_session.events.types import ChatEvent, SystemEvent
from chatroom_session.exceptions import (
    NotConnectedError,
    ServerRejectionError,
    StorageIOError,
    TransportError,
    ValidationError,
)
from chatroom_session.message_store import MessageStore
from chatroom_session.session.controller import SessionController
from chatroom_session.session.types import RoomSnapshot, SessionPhase, Severity
from chatroom_session.storage.memory import MemorySlotStorage


def chat(username: str, content: str, timestamp: str = "2024-05-01T12:00:00Z") -> dict[str, Any]:
    return {"type": "chat", "username": username, "content": content, "timestamp": timestamp}


class HangingCloseTransport(ScriptedTransport):
    """Scripted transport whose close() never completes."""

    async def close(self) -> None:
        self.close_calls += 1
        await asyncio.Event().wait()


class TestJoinValidation:
    """Tests for local join validation."""

    async def test_empty_room_id_is_rejected(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that an empty room id never creates a transport."""
        with pytest.raises(ValidationError) as exc_info:
            controller.join("", "bob")

        await controller.drain()
        assert exc_info.value.field == "room_id"
        assert transports.created == []
        assert controller.phase is SessionPhase.IDLE
        assert observer.messages(Severity.ERROR) == [
            "Validation failed for room_id: must not be empty"
        ]

    async def test_blank_username_is_rejected(
        self,
        controller: SessionController,
        transports: TransportRecorder,
    ) -> None:
        """Test that a whitespace-only username is treated as empty."""
        with pytest.raises(ValidationError) as exc_info:
            controller.join("42", "   ")

        await controller.drain()
        assert exc_info.value.field == "username"
        assert transports.created == []

    async def test_join_requires_started_controller(
        self,
        store: MessageStore,
        transports: TransportRecorder,
    ) -> None:
        """Test that intents fail fast before start()."""
        controller = SessionController(store, transports)

        with pytest.raises(RuntimeError):
            controller.join("42", "bob")


class TestJoinFlow:
    """Tests for the IDLE -> JOINING -> ACTIVE path."""

    async def test_join_sequence(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
        store: MessageStore,
    ) -> None:
        """Test joining, the join control message and a first chat event."""
        controller.join("42", "bob")
        await controller.drain()

        assert controller.phase is SessionPhase.JOINING
        assert controller.room == RoomSnapshot(id="42", name="42")
        assert controller.username == "bob"
        transport = transports.last
        assert transport.opened_url == "ws://chat.test/ws"
        assert transport.sent == []

        transport.fire_open()
        await controller.drain()
        assert transport.sent == [{"type": "join", "room_id": "42", "username": "bob"}]
        assert controller.phase is SessionPhase.JOINING

        transport.fire_message({"type": "joined", "room_id": "42", "user_id": "u-1"})
        await controller.drain()
        assert controller.phase is SessionPhase.ACTIVE
        assert observer.phases == [SessionPhase.JOINING, SessionPhase.ACTIVE]
        assert "Joined 42" in observer.messages(Severity.SUCCESS)

        transport.fire_message(chat("carol", "hi"))
        await controller.drain()

        assert len(store) == 1
        event = store.events[0]
        assert isinstance(event, ChatEvent)
        assert event.username == "carol"
        assert event.content == "hi"
        assert event.is_own is False
        assert event.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        assert observer.events == [event]

    async def test_join_sends_password(
        self, controller: SessionController, transports: TransportRecorder
    ) -> None:
        """Test that the password travels in the join control message."""
        transport = await activate(controller, transports, password="secret")

        assert transport.sent[0] == {
            "type": "join",
            "room_id": "42",
            "username": "bob",
            "password": "secret",
        }

    async def test_room_name_is_captured(
        self, controller: SessionController, transports: TransportRecorder
    ) -> None:
        """Test that the display name from the directory is kept in the snapshot."""
        controller.join(" 42 ", " bob ", room_name="General")
        await controller.drain()

        assert controller.room == RoomSnapshot(id="42", name="General")
        assert controller.username == "bob"

    async def test_server_rejection_fails_join(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that an error reply while joining moves to FAILED."""
        controller.join("42", "bob", password="wrong")
        await controller.drain()
        transport = transports.last
        transport.fire_open()
        await controller.drain()
        transport.fire_message({"type": "error", "message": "Invalid password"})
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert isinstance(controller.last_failure, ServerRejectionError)
        assert controller.last_failure.reason == "Invalid password"
        assert "Invalid password" in observer.messages(Severity.ERROR)
        assert observer.phases == [SessionPhase.JOINING, SessionPhase.FAILED]
        assert transport.close_calls == 1

    async def test_joined_for_other_room_fails(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that an acknowledgement naming a different room is not accepted."""
        controller.join("42", "bob")
        await controller.drain()
        transport = transports.last
        transport.fire_open()
        await controller.drain()
        transport.fire_message({"type": "joined", "room_id": "43"})
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert isinstance(controller.last_failure, ServerRejectionError)
        assert controller.last_failure.reason == "joined room 43 instead of 42"
        assert observer.messages(Severity.SUCCESS) == []
        assert transport.close_calls == 1

    async def test_last_failure_kept_until_join_succeeds(
        self,
        controller: SessionController,
        transports: TransportRecorder,
    ) -> None:
        """Test that a retry keeps the previous failure until the server accepts it."""
        controller.join("42", "bob")
        await controller.drain()
        transports.last.fire_error("host unreachable")
        await controller.drain()
        failure = controller.last_failure
        assert isinstance(failure, TransportError)

        controller.reset()
        controller.join("42", "bob")
        await controller.drain()
        assert controller.phase is SessionPhase.JOINING
        assert controller.last_failure is failure

        transport = transports.last
        transport.fire_open()
        await controller.drain()
        transport.fire_message({"type": "joined", "room_id": "42"})
        await controller.drain()

        assert controller.phase is SessionPhase.ACTIVE
        assert controller.last_failure is None

    async def test_close_before_joined_fails(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that the socket closing during the handshake moves to FAILED."""
        controller.join("42", "bob")
        await controller.drain()
        transports.last.fire_close("connection refused")
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert isinstance(controller.last_failure, TransportError)
        assert "Disconnected: connection refused" in observer.messages(Severity.ERROR)

    async def test_transport_error_before_open_fails(
        self, controller: SessionController, transports: TransportRecorder
    ) -> None:
        """Test that a connection error event moves to FAILED."""
        controller.join("42", "bob")
        await controller.drain()
        transports.last.fire_error("host unreachable")
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert controller.last_failure.details["reason"] == "host unreachable"

    async def test_chat_while_joining_is_dropped(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        store: MessageStore,
    ) -> None:
        """Test that chat frames before the joined ack are not recorded."""
        controller.join("42", "bob")
        await controller.drain()
        transport = transports.last
        transport.fire_open()
        transport.fire_message(chat("carol", "early"))
        await controller.drain()

        assert controller.phase is SessionPhase.JOINING
        assert len(store) == 0

    async def test_second_join_is_refused(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that joining while a session is in progress is a warning."""
        controller.join("42", "bob")
        controller.join("43", "bob")
        await controller.drain()

        assert len(transports.created) == 1
        assert controller.room == RoomSnapshot(id="42", name="42")
        assert observer.messages(Severity.WARNING) == [
            "Already in 42; leave it before joining another"
        ]

    async def test_transport_factory_failure(
        self,
        store: MessageStore,
        observer: RecordingObserver,
        config: ClientConfig,
    ) -> None:
        """Test that a factory exception is reported as a transport failure."""

        def broken_factory() -> ScriptedTransport:
            raise OSError("no sockets left")

        controller = SessionController(store, broken_factory, observer=observer, config=config)
        async with controller:
            controller.join("42", "bob")
            await controller.drain()

            assert controller.phase is SessionPhase.FAILED
            assert isinstance(controller.last_failure, TransportError)


class TestSendMessage:
    """Tests for sending chat messages."""

    async def test_empty_message_is_not_sent(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that empty content is refused locally."""
        transport = await activate(controller, transports)

        assert controller.send_message("   ") is False
        await controller.drain()

        assert len(transport.sent) == 1
        assert observer.messages(Severity.WARNING) == ["Cannot send an empty message"]

    async def test_send_waits_for_echo(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        store: MessageStore,
    ) -> None:
        """Test that a sent message only appears once the server echoes it."""
        transport = await activate(controller, transports)

        assert controller.send_message(" hello ") is True
        await controller.drain()

        assert transport.sent[-1] == {"type": "chat", "content": "hello", "username": "bob"}
        assert len(store) == 0

        transport.fire_message(chat("bob", "hello"))
        await controller.drain()

        assert len(store) == 1
        assert store.events[0].is_own is True

    async def test_send_while_joining_is_refused(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that sending before the joined ack reports not-connected."""
        controller.join("42", "bob")
        await controller.drain()

        assert controller.send_message("too early") is True
        await controller.drain()

        assert transports.last.sent == []
        assert isinstance(controller.last_failure, NotConnectedError)
        assert "Not connected; rejoin the room to send messages" in observer.messages(
            Severity.WARNING
        )

    async def test_send_failure_fails_session(
        self, controller: SessionController, transports: TransportRecorder
    ) -> None:
        """Test that a transport send error moves to FAILED."""
        transport = await activate(controller, transports)
        transport.send_error = TransportError("ws://chat.test/ws", reason="broken pipe")

        controller.send_message("hello")
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert controller.last_failure is transport.send_error


class TestInboundEvents:
    """Tests for server messages while ACTIVE."""

    async def test_events_recorded_in_arrival_order(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        store: MessageStore,
        observer: RecordingObserver,
    ) -> None:
        """Test that events keep arrival order, not timestamp order."""
        transport = await activate(controller, transports)

        transport.fire_message(
            {"type": "user_joined", "username": "carol", "timestamp": "2024-05-01T12:05:00Z"}
        )
        transport.fire_message(chat("carol", "second", "2024-05-01T12:01:00Z"))
        transport.fire_message(chat("dave", "first", "2024-05-01T12:00:00Z"))
        transport.fire_message({"type": "user_left", "username": "carol"})
        await controller.drain()

        events = store.events
        assert [type(e) for e in events] == [SystemEvent, ChatEvent, ChatEvent, SystemEvent]
        assert events[0].content == "carol joined the room"
        assert events[0].timestamp == datetime(2024, 5, 1, 12, 5, tzinfo=UTC)
        assert [e.content for e in events[1:3]] == ["second", "first"]
        assert events[3].content == "carol left the room"
        assert list(events) == observer.events

    async def test_malformed_messages_are_dropped(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        store: MessageStore,
    ) -> None:
        """Test that bad frames are ignored without leaving ACTIVE."""
        transport = await activate(controller, transports)

        transport.fire_message("not json")
        transport.fire_message({"type": "chat", "username": "carol"})
        transport.fire_message({"type": "mystery"})
        transport.fire_message(chat("carol", "valid"))
        await controller.drain()

        assert controller.phase is SessionPhase.ACTIVE
        assert [e.content for e in store.events] == ["valid"]

    async def test_server_error_while_active(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that an error message while ACTIVE is surfaced but not fatal."""
        transport = await activate(controller, transports)

        transport.fire_message({"type": "error", "message": "Message too long"})
        await controller.drain()

        assert controller.phase is SessionPhase.ACTIVE
        assert isinstance(controller.last_failure, ServerRejectionError)
        assert "Message too long" in observer.messages(Severity.ERROR)

    async def test_ping_and_pong(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        store: MessageStore,
    ) -> None:
        """Test that ping is sent while ACTIVE and pong adds nothing."""
        transport = await activate(controller, transports)

        controller.ping()
        await controller.drain()
        transport.fire_message({"type": "pong"})
        await controller.drain()

        assert transport.sent[-1] == {"type": "ping"}
        assert len(store) == 0

    async def test_persistence_failure_keeps_event(
        self,
        transports: TransportRecorder,
        observer: RecordingObserver,
        config: ClientConfig,
    ) -> None:
        """Test that a failed slot write still delivers the event."""

        class FailingSlotStorage(MemorySlotStorage):
            async def write_slot(self, room_id: str, entries: list[dict[str, Any]]) -> None:
                raise StorageIOError("write_json", "/tmp/rooms/42.json", OSError("disk full"))

        store = MessageStore(FailingSlotStorage())
        controller = SessionController(store, transports, observer=observer, config=config)
        async with controller:
            transport = await activate(controller, transports)
            transport.fire_message(chat("carol", "hi"))
            await controller.drain()

            assert len(store) == 1
            assert len(observer.events) == 1
            assert any(
                m.startswith("Could not save message") for m in observer.messages(Severity.WARNING)
            )


class TestDisconnect:
    """Tests for the ACTIVE -> FAILED path and recovery."""

    async def test_unexpected_close_fails_session(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that a dropped connection moves to FAILED and blocks sends."""
        transport = await activate(controller, transports)

        transport.fire_close("server going away")
        await controller.drain()

        assert controller.phase is SessionPhase.FAILED
        assert "Disconnected: server going away" in observer.messages(Severity.ERROR)

        controller.send_message("anyone?")
        await controller.drain()

        assert len(transport.sent) == 1
        assert isinstance(controller.last_failure, NotConnectedError)

    async def test_reset_after_failure(
        self,
        controller: SessionController,
        transports: TransportRecorder,
    ) -> None:
        """Test that reset returns to IDLE and a new join can start."""
        transport = await activate(controller, transports)
        transport.fire_error("connection reset")
        await controller.drain()
        assert controller.phase is SessionPhase.FAILED

        controller.reset()
        await controller.drain()
        assert controller.phase is SessionPhase.IDLE
        assert controller.room is None

        await activate(controller, transports)
        assert len(transports.created) == 2
        assert controller.last_failure is None


class TestLeave:
    """Tests for leaving a room."""

    async def test_leave_active_room(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
        store: MessageStore,
        slot_storage: MemorySlotStorage,
    ) -> None:
        """Test the ACTIVE -> CLOSING -> IDLE path."""
        transport = await activate(controller, transports)
        transport.fire_message(chat("carol", "hi"))
        await controller.drain()

        controller.leave()
        await controller.drain()

        assert controller.phase is SessionPhase.IDLE
        assert observer.phases[-2:] == [SessionPhase.CLOSING, SessionPhase.IDLE]
        assert controller.room is None
        assert controller.username is None
        assert transport.close_calls == 1
        assert "Left 42" in observer.messages(Severity.INFO)
        assert store.room_id is None
        assert len(await slot_storage.read_slot("42")) == 1

    async def test_leave_when_close_hangs(
        self,
        store: MessageStore,
        observer: RecordingObserver,
    ) -> None:
        """Test that a transport that never finishes closing still ends in IDLE."""
        transport = HangingCloseTransport()
        config = ClientConfig(base_url="http://chat.test", close_timeout=0.1)
        async with SessionController(
            store, lambda: transport, observer=observer, config=config
        ) as controller:
            controller.join("42", "bob")
            await controller.drain()
            transport.fire_open()
            await controller.drain()
            transport.fire_message({"type": "joined", "room_id": "42"})
            await controller.drain()
            assert controller.phase is SessionPhase.ACTIVE

            controller.leave()
            await controller.drain()

            assert controller.phase is SessionPhase.IDLE
            assert observer.phases[-2:] == [SessionPhase.CLOSING, SessionPhase.IDLE]
            assert transport.close_calls == 1
            assert observer.messages(Severity.INFO) == ["Left 42"]
            assert controller.room is None

    async def test_leave_when_idle_is_noop(
        self, controller: SessionController, observer: RecordingObserver
    ) -> None:
        """Test that leaving without a room does nothing."""
        controller.leave()
        await controller.drain()

        assert controller.phase is SessionPhase.IDLE
        assert observer.phases == []
        assert observer.notifications == []

    async def test_leave_during_join_ignores_late_events(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
    ) -> None:
        """Test that open/joined arriving after leave are never applied."""
        controller.join("42", "bob")
        await controller.drain()
        transport = transports.last

        transport.fire_open()
        transport.fire_message({"type": "joined"})
        controller.leave()
        await controller.drain()

        assert controller.phase is SessionPhase.IDLE
        assert transport.sent == []
        assert SessionPhase.ACTIVE not in observer.phases

    async def test_fast_rejoin_ignores_previous_attempt(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
        store: MessageStore,
    ) -> None:
        """Test that a leave/rejoin in one tick applies only the new attempt."""
        controller.join("42", "bob")
        await controller.drain()
        old = transports.last

        old.fire_open()
        old.fire_message({"type": "joined"})
        controller.leave()
        controller.join("42", "bob")
        await controller.drain()

        assert len(transports.created) == 2
        assert controller.phase is SessionPhase.JOINING
        assert old.sent == []

        new = transports.last
        new.fire_open()
        await controller.drain()
        new.fire_message({"type": "joined"})
        old.fire_message(chat("ghost", "from the old socket"))
        await controller.drain()

        assert controller.phase is SessionPhase.ACTIVE
        assert len(new.sent) == 1
        assert len(store) == 0

    async def test_stop_leaves_room(
        self, controller: SessionController, transports: TransportRecorder
    ) -> None:
        """Test that stopping the controller closes the session."""
        transport = await activate(controller, transports)

        await controller.stop()

        assert controller.phase is SessionPhase.IDLE
        assert transport.close_calls == 1
        assert not controller.is_running


class TestTranscriptLoading:
    """Tests for transcript loading on room entry."""

    async def test_transcript_survives_restart(
        self, slot_storage: MemorySlotStorage, config: ClientConfig
    ) -> None:
        """Test that a new controller sees the transcript of a previous run."""
        first_observer = RecordingObserver()
        first_transports = TransportRecorder()
        first = SessionController(
            MessageStore(slot_storage), first_transports, observer=first_observer, config=config
        )
        async with first:
            transport = await activate(first, first_transports)
            transport.fire_message(chat("bob", "hello"))
            transport.fire_message({"type": "user_joined", "username": "carol"})
            await first.drain()
        saved = list(first_observer.events)

        second_observer = RecordingObserver()
        second = SessionController(
            MessageStore(slot_storage), TransportRecorder(), observer=second_observer, config=config
        )
        async with second:
            second.join("42", "bob")
            await second.drain()

            room, events = second_observer.transcripts[0]
            assert room == RoomSnapshot(id="42", name="42")
            assert events == saved
            assert events[0].is_own is True

    async def test_corrupt_transcript_blocks_join(
        self,
        controller: SessionController,
        transports: TransportRecorder,
        observer: RecordingObserver,
        slot_storage: MemorySlotStorage,
    ) -> None:
        """Test that an unreadable slot keeps the session IDLE."""
        await slot_storage.write_slot("42", [{"kind": "bogus"}])

        controller.join("42", "bob")
        await controller.drain()

        assert controller.phase is SessionPhase.IDLE
        assert transports.created == []
        assert isinstance(controller.last_failure, StorageIOError)
        assert observer.messages(Severity.ERROR)[0].startswith("Could not load saved messages")

    async def test_observer_errors_are_contained(
        self,
        store: MessageStore,
        transports: TransportRecorder,
        config: ClientConfig,
    ) -> None:
        """Test that a raising observer does not break the session."""

        class ExplodingObserver(RecordingObserver):
            def on_phase_change(self, phase: SessionPhase) -> None:
                raise RuntimeError("view crashed")

        controller = SessionController(
            store, transports, observer=ExplodingObserver(), config=config
        )
        async with controller:
            await activate(controller, transports)
            assert controller.phase is SessionPhase.ACTIVE
