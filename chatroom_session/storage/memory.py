"""In-memory slot storage for ephemeral sessions and tests."""

from __future__ import annotations

import copy
from typing import Any

from .base import SlotStorage


class MemorySlotStorage(SlotStorage):
    """Slot storage kept in a dict.

    Values are deep-copied on read and write so callers can never mutate
    the stored slot in place, matching the file backend's semantics.
    A single instance can be shared between stores to simulate a process
    restart that keeps the durable data.
    """

    def __init__(self) -> None:
        self._slots: dict[str, list[dict[str, Any]]] = {}

    async def read_slot(self, room_id: str) -> list[dict[str, Any]] | None:
        entries = self._slots.get(room_id)
        return copy.deepcopy(entries) if entries is not None else None

    async def write_slot(self, room_id: str, entries: list[dict[str, Any]]) -> None:
        self._slots[room_id] = copy.deepcopy(entries)
