"""
Durable per-room slot storage.

Backends:
- FileSlotStorage: one JSON file per room, atomic rewrite
- MemorySlotStorage: dict-backed, for ephemeral use and tests
"""

from .base import SlotStorage
from .local import FileSlotStorage
from .memory import MemorySlotStorage

__all__ = [
    "FileSlotStorage",
    "MemorySlotStorage",
    "SlotStorage",
]
