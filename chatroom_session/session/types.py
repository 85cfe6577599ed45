"""Session state types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionPhase(Enum):
    """Phases of the session state machine.

    IDLE -> JOINING -> ACTIVE -> CLOSING -> IDLE, with FAILED reachable from
    JOINING or ACTIVE; FAILED only leaves through a leave/reset.
    """

    IDLE = "idle"
    JOINING = "joining"
    ACTIVE = "active"
    CLOSING = "closing"
    FAILED = "failed"


class Severity(Enum):
    """Severity of a user-visible notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class RoomSnapshot:
    """The active room as captured at join time; never mutated afterwards."""

    id: str
    name: str
