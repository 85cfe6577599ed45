"""
Presentation-layer callback surface.

The session controller pushes everything a view needs through a
:class:`SessionObserver`; views never read the message store directly.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..events.types import Event
from .types import RoomSnapshot, SessionPhase, Severity


class SessionObserver:
    """Receives session callbacks. Every hook is a no-op by default.

    Subclass and override the hooks a view cares about. Hooks run inside the
    controller's driver task and must not block; exceptions raised by a hook
    are logged and swallowed by the controller.
    """

    def on_phase_change(self, phase: SessionPhase) -> None:
        """The session moved to a new phase."""

    def on_event_appended(self, event: Event) -> None:
        """An event was appended to the active room's transcript."""

    def on_notification(self, message: str, severity: Severity) -> None:
        """A user-visible notice (success, warning, error, ...)."""

    def on_transcript_loaded(self, room: RoomSnapshot, events: Sequence[Event]) -> None:
        """The persisted transcript for a room was loaded on entry."""
