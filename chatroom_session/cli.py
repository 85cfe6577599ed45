"""
Terminal chat client.

Usage:
    chatroom-session rooms
    chatroom-session create general --password secret
    chatroom-session chat 42 bob

Inside a chat, lines are sent as messages. Commands:
    /leave, /quit     leave the room and exit
    /password NEW     change the room password
    /rooms            list rooms
    /ping             send a keepalive ping
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from .client import ChatClient
from .config import ClientConfig
from .events.types import ChatEvent, Event
from .logging_utils import configure_structured_logging
from .session.observer import SessionObserver
from .session.types import RoomSnapshot, SessionPhase, Severity


def format_event(event: Event) -> str:
    """Render one transcript line."""
    time = event.timestamp.astimezone().strftime("%H:%M:%S")
    if isinstance(event, ChatEvent):
        marker = "*" if event.is_own else " "
        return f"[{time}]{marker}{event.username}: {event.content}"
    return f"[{time}] -- {event.content}"


class TerminalObserver(SessionObserver):
    """Prints session callbacks to stdout."""

    def __init__(self) -> None:
        self.phase = SessionPhase.IDLE
        self.settled = asyncio.Event()

    def on_phase_change(self, phase: SessionPhase) -> None:
        self.phase = phase
        if phase in (SessionPhase.ACTIVE, SessionPhase.FAILED, SessionPhase.IDLE):
            self.settled.set()

    def on_event_appended(self, event: Event) -> None:
        print(format_event(event))

    def on_notification(self, message: str, severity: Severity) -> None:
        stream = sys.stderr if severity in (Severity.ERROR, Severity.WARNING) else sys.stdout
        print(f"[{severity.value}] {message}", file=stream)
        if severity is Severity.ERROR:
            self.settled.set()

    def on_transcript_loaded(self, room: RoomSnapshot, events: Sequence[Event]) -> None:
        print(f"== {room.name} ({room.id}) ==")
        for event in events:
            print(format_event(event))


async def _list_rooms(client: ChatClient) -> int:
    rooms = await client.refresh_rooms()
    if rooms is None:
        return 1
    if not rooms:
        print("No rooms yet")
        return 0
    for room in rooms:
        lock = "locked" if room.has_password else "open"
        print(f"{room.id}\t{room.name}\tusers={room.user_count}\t{lock}")
    return 0


async def _create_room(client: ChatClient, name: str, password: str | None) -> int:
    room_id = await client.create_room(name, password)
    if room_id is None:
        return 1
    print(room_id)
    return 0


async def _chat(
    client: ChatClient,
    observer: TerminalObserver,
    room_id: str,
    username: str,
    password: str | None,
) -> int:
    if not await client.join_room(room_id, username, password):
        return 1

    await observer.settled.wait()
    if observer.phase is not SessionPhase.ACTIVE:
        return 1

    while observer.phase is SessionPhase.ACTIVE:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        text = line.strip()
        if text in ("/leave", "/quit"):
            break
        if text.startswith("/password "):
            await client.update_password(text[len("/password ") :])
        elif text == "/rooms":
            await _list_rooms(client)
        elif text == "/ping":
            client.controller.ping()
        elif text:
            client.send_message(text)

    failed = observer.phase is SessionPhase.FAILED
    client.leave_room()
    await client.controller.drain()
    return 1 if failed else 0


async def _run(args: argparse.Namespace) -> int:
    config = ClientConfig.from_file(args.config) if args.config else ClientConfig.from_environment()
    if args.base_url:
        config.base_url = args.base_url
    if args.storage_path:
        config.storage_path = args.storage_path

    observer = TerminalObserver()
    async with ChatClient(config, observer=observer) as client:
        if args.command == "rooms":
            return await _list_rooms(client)
        if args.command == "create":
            return await _create_room(client, args.name, args.password)
        return await _chat(client, observer, args.room_id, args.username, args.password)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatroom-session",
        description="Chatroom session client",
    )
    parser.add_argument("--base-url", help="Chat server base URL (overrides config)")
    parser.add_argument("--storage-path", help="Directory for saved transcripts")
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs on stderr")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("rooms", help="List rooms")

    create = subparsers.add_parser("create", help="Create a room")
    create.add_argument("name")
    create.add_argument("--password")

    chat = subparsers.add_parser("chat", help="Join a room and chat")
    chat.add_argument("room_id")
    chat.add_argument("username")
    chat.add_argument("--password")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING
    if args.json_logs:
        configure_structured_logging(level, include_location=args.verbose)
    else:
        logging.basicConfig(level=level, stream=sys.stderr)

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(1)


if __name__ == "__main__":
    main()
