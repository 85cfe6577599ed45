"""
Ordered transcript of the active room, backed by a durable slot.

The store keeps events in arrival order and rewrites the room's slot with
the full sequence after every append, so the durable copy always equals the
in-memory one. It does not deduplicate, reorder, evict, or cap; every event
handed to it is trusted.
"""

from __future__ import annotations

import logging

from .events.types import Event, event_from_dict, event_to_dict
from .exceptions import NotLoadedError, StorageIOError, ValidationError
from .storage.base import SlotStorage

logger = logging.getLogger(__name__)


class MessageStore:
    """
    Transcript for the currently loaded room.

    Contract:
    - Inputs: room ids, events
    - Outputs: ordered event lists
    - Side Effects: slot writes on every append
    - Ownership: exactly one session controller mutates a store
    """

    def __init__(self, storage: SlotStorage) -> None:
        self._storage = storage
        self._room_id: str | None = None
        self._events: list[Event] = []

    @property
    def room_id(self) -> str | None:
        """Room whose transcript is loaded, or None."""
        return self._room_id

    @property
    def events(self) -> tuple[Event, ...]:
        """Snapshot of the loaded transcript in arrival order."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    async def load_for_room(self, room_id: str) -> list[Event]:
        """Replace the in-memory transcript with the room's durable slot.

        Args:
            room_id: Room to load

        Returns:
            The loaded events (empty when the room has no slot yet)

        Raises:
            StorageIOError: If the slot exists but its content is corrupt
        """
        entries = await self._storage.read_slot(room_id)
        events: list[Event] = []
        for index, entry in enumerate(entries or []):
            try:
                events.append(event_from_dict(entry))
            except ValidationError as e:
                raise StorageIOError(
                    "load_for_room", room_id, ValueError(f"entry {index}: {e.message}")
                ) from e

        self._room_id = room_id
        self._events = events
        logger.debug(f"Loaded {len(events)} events for room {room_id}")
        return list(events)

    async def append(self, event: Event) -> None:
        """Append an event and persist the whole transcript.

        The in-memory append happens first; if the write then fails the
        error propagates and the next successful append persists both.

        Raises:
            NotLoadedError: If no room has been loaded
            StorageIOError: If the slot write fails
        """
        if self._room_id is None:
            raise NotLoadedError("append event")

        self._events.append(event)
        await self._storage.write_slot(
            self._room_id, [event_to_dict(item) for item in self._events]
        )

    def clear(self) -> None:
        """Forget the loaded transcript; the durable slot is untouched."""
        self._room_id = None
        self._events = []
