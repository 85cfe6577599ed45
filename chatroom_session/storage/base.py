"""
Abstract slot storage interface.

A slot is one durable record per room id whose value is the ordered list of
serialized transcript events. Slots are read on room entry and overwritten
wholesale on every append.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class SlotStorage(ABC):
    """Abstract interface for durable per-room slots.

    All storage implementations (file, memory) must implement this
    interface. Values are plain JSON-compatible lists so every backend
    round-trips the event variant set exactly.
    """

    @abstractmethod
    async def read_slot(self, room_id: str) -> list[dict[str, Any]] | None:
        """Read the slot for a room.

        Args:
            room_id: Room identifier

        Returns:
            The stored event dicts, or None if the slot has never been written

        Raises:
            StorageIOError: If the slot exists but cannot be read or parsed
        """
        ...

    @abstractmethod
    async def write_slot(self, room_id: str, entries: list[dict[str, Any]]) -> None:
        """Replace the slot for a room with the given entries.

        Args:
            room_id: Room identifier
            entries: Full ordered list of event dicts
        """
        ...

    async def close(self) -> None:
        """Release resources. No-op by default."""
        return None
