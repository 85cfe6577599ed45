"""Room directory data types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..events.types import parse_timestamp


@dataclass(frozen=True)
class RoomSummary:
    """A room as listed by the directory.

    Attributes:
        id: Room identifier
        name: Display name
        user_count: Members currently connected
        has_password: Whether joining requires a password
        created_at: Creation time; the raw string if it could not be parsed
    """

    id: str
    name: str
    user_count: int = 0
    has_password: bool = False
    created_at: datetime | str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoomSummary:
        """Deserialize a directory listing entry."""
        created_raw = data.get("created_at")
        created_at: datetime | str | None = created_raw
        if created_raw is not None:
            try:
                created_at = parse_timestamp(created_raw)
            except ValueError:
                created_at = str(created_raw)

        try:
            user_count = int(data.get("user_count") or 0)
        except (TypeError, ValueError):
            user_count = 0

        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            user_count=user_count,
            has_password=bool(data.get("has_password", False)),
            created_at=created_at,
        )
