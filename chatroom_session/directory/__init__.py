"""
Room directory service client.

Used only before a session exists: create, join-check, change password,
list rooms.
"""

from .client import RoomDirectoryClient
from .types import RoomSummary

__all__ = [
    "RoomDirectoryClient",
    "RoomSummary",
]
