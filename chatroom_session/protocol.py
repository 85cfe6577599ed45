"""
Wire protocol for the chat WebSocket.

Messages are JSON objects tagged by a ``type`` field. This module builds the
client -> server messages and parses the server -> client ones into
:class:`ServerMessage` values; it performs no I/O.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .events.types import parse_timestamp
from .exceptions import ValidationError


class ServerMessageType(Enum):
    """Types of messages the server sends."""

    CHAT = "chat"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    JOINED = "joined"
    ERROR = "error"
    PONG = "pong"


# Fields each server message type must carry
_REQUIRED_FIELDS: dict[ServerMessageType, tuple[str, ...]] = {
    ServerMessageType.CHAT: ("username", "content", "timestamp"),
    ServerMessageType.USER_JOINED: ("username",),
    ServerMessageType.USER_LEFT: ("username",),
    ServerMessageType.JOINED: (),
    ServerMessageType.ERROR: ("message",),
    ServerMessageType.PONG: (),
}


@dataclass
class ServerMessage:
    """A decoded server -> client message."""

    message_type: ServerMessageType
    username: str | None = None
    content: str | None = None
    timestamp: datetime | None = None
    message: str | None = None
    room_id: str | None = None
    user_id: str | None = None


def build_join(room_id: str, username: str, password: str | None = None) -> dict[str, Any]:
    """Build the join control message sent right after the socket opens."""
    payload: dict[str, Any] = {"type": "join", "room_id": room_id, "username": username}
    if password:
        payload["password"] = password
    return payload


def build_chat(content: str, username: str) -> dict[str, Any]:
    """Build a chat message; the server echoes it back to every member."""
    return {"type": "chat", "content": content, "username": username}


def build_ping() -> dict[str, Any]:
    return {"type": "ping"}


def parse_server_message(raw: str | bytes | dict[str, Any]) -> ServerMessage:
    """Decode a server message.

    Args:
        raw: JSON text (or an already-decoded object)

    Returns:
        The decoded message

    Raises:
        ValidationError: If the payload is not JSON, not an object, has an
            unknown type, or misses a required field
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError("payload", "invalid JSON", str(raw)[:200]) from e

    if not isinstance(data, dict):
        raise ValidationError("payload", "expected a JSON object", str(raw)[:200])

    raw_type = data.get("type")
    try:
        message_type = ServerMessageType(raw_type)
    except ValueError as e:
        raise ValidationError("type", "unknown message type", str(raw_type)) from e

    for name in _REQUIRED_FIELDS[message_type]:
        if data.get(name) is None:
            raise ValidationError(name, f"missing in {message_type.value} message")

    timestamp = None
    if data.get("timestamp") is not None:
        try:
            timestamp = parse_timestamp(data["timestamp"])
        except ValueError as e:
            if message_type is ServerMessageType.CHAT:
                raise ValidationError("timestamp", "not ISO-8601", str(data["timestamp"])) from e
            # Join/leave notices fall back to the local arrival time

    return ServerMessage(
        message_type=message_type,
        username=_optional_str(data.get("username")),
        content=_optional_str(data.get("content")),
        timestamp=timestamp,
        message=_optional_str(data.get("message")),
        room_id=_optional_str(data.get("room_id")),
        user_id=_optional_str(data.get("user_id")),
    )


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
