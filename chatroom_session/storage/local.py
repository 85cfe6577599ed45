"""
Local file-based slot storage.

Stores each room transcript as one JSON file, rewritten atomically.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

from ..config import ClientConfig
from ..exceptions import StorageIOError
from ..local.file_ops import read_json, write_json_atomic
from .base import SlotStorage

logger = logging.getLogger(__name__)

SLOT_SUFFIX = ".json"


class FileSlotStorage(SlotStorage):
    """Local file-based slot storage.

    Directory structure:
    {base_path}/
      rooms/
        {quoted_room_id}.json

    Room ids are percent-encoded so any id maps to exactly one safe file
    name inside the rooms directory.
    """

    def __init__(self, base_path: Path | str | None = None) -> None:
        """Initialize local storage.

        Args:
            base_path: Root directory. Defaults to ~/.chatroom
        """
        if base_path is None:
            base_path = Path.home() / ".chatroom"
        self.base_path = Path(base_path).expanduser()
        self.rooms_dir = self.base_path / "rooms"

    @classmethod
    def from_config(cls, config: ClientConfig) -> FileSlotStorage:
        return cls(config.storage_dir)

    def _slot_file(self, room_id: str) -> Path:
        """Get the file path for a room slot."""
        return self.rooms_dir / f"{quote(room_id, safe='')}{SLOT_SUFFIX}"

    async def read_slot(self, room_id: str) -> list[dict[str, Any]] | None:
        path = self._slot_file(room_id)
        data = await read_json(path)
        if data is None:
            return None
        if not isinstance(data, list):
            raise StorageIOError(
                "read_slot", str(path), ValueError("slot content is not a list")
            )
        return data

    async def write_slot(self, room_id: str, entries: list[dict[str, Any]]) -> None:
        path = self._slot_file(room_id)
        await write_json_atomic(path, entries)
        logger.debug(f"Wrote {len(entries)} events to {path}")
