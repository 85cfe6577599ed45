"""
Session state machine.

One SessionController per client: it owns the message store and the
transport for the current join attempt and reports to a SessionObserver.
"""

from .controller import SessionController, TransportFactory
from .observer import SessionObserver
from .types import RoomSnapshot, SessionPhase, Severity

__all__ = [
    "RoomSnapshot",
    "SessionController",
    "SessionObserver",
    "SessionPhase",
    "Severity",
    "TransportFactory",
]
