"""
Event types stored in a room transcript.

An event is either a chat message relayed by the server or a system notice
synthesized locally (join/leave). Events are immutable once created; the
transcript keeps them in arrival order, never in timestamp order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..exceptions import ValidationError


class EventKind(Enum):
    """Discriminator for the event variants."""

    CHAT = "chat"
    SYSTEM = "system"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing ``Z`` and treats naive values as UTC.

    Raises:
        ValueError: If the value is not an ISO-8601 string or datetime
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class ChatEvent:
    """A chat message confirmed by the server.

    Attributes:
        username: Author of the message
        content: Message text
        timestamp: Server timestamp of the message
        is_own: Whether the local user authored it
        user_id: Server-side connection id of the author, when supplied
    """

    username: str
    content: str
    timestamp: datetime
    is_own: bool = False
    user_id: str | None = None

    @property
    def kind(self) -> EventKind:
        return EventKind.CHAT

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "username": self.username,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "is_own": self.is_own,
        }
        if self.user_id is not None:
            data["user_id"] = self.user_id
        return data


@dataclass(frozen=True)
class SystemEvent:
    """A notice generated locally, e.g. someone joining or leaving."""

    content: str
    timestamp: datetime

    @property
    def kind(self) -> EventKind:
        return EventKind.SYSTEM

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "kind": self.kind.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


Event = ChatEvent | SystemEvent


def event_to_dict(event: Event) -> dict[str, Any]:
    """Serialize any event variant."""
    return event.to_dict()


def event_from_dict(data: dict[str, Any]) -> Event:
    """Deserialize an event written by :func:`event_to_dict`.

    Raises:
        ValidationError: If the kind is unknown or a field is missing/invalid
    """
    if not isinstance(data, dict):
        raise ValidationError("event", "expected an object", repr(data))

    raw_kind = data.get("kind")
    try:
        kind = EventKind(raw_kind)
    except ValueError as e:
        raise ValidationError("kind", "unknown event kind", str(raw_kind)) from e

    try:
        timestamp = parse_timestamp(data["timestamp"])
        if kind is EventKind.CHAT:
            return ChatEvent(
                username=str(data["username"]),
                content=str(data["content"]),
                timestamp=timestamp,
                is_own=bool(data.get("is_own", False)),
                user_id=data.get("user_id"),
            )
        return SystemEvent(content=str(data["content"]), timestamp=timestamp)
    except KeyError as e:
        raise ValidationError(str(e.args[0]), "missing field") from e
    except ValueError as e:
        raise ValidationError("timestamp", str(e), str(data.get("timestamp"))) from e


def joined_notice(username: str, timestamp: datetime | None = None) -> SystemEvent:
    """System notice for a user entering the room."""
    return SystemEvent(content=f"{username} joined the room", timestamp=timestamp or utc_now())


def left_notice(username: str, timestamp: datetime | None = None) -> SystemEvent:
    """System notice for a user leaving the room."""
    return SystemEvent(content=f"{username} left the room", timestamp=timestamp or utc_now())
