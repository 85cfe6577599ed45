"""
Abstract transport channel.

A channel wraps a single connection attempt and its lifetime. Lifecycle
notifications and inbound payloads are delivered as one ordered stream of
:class:`TransportEvent` values, consumed through :meth:`TransportChannel.events`.
``CLOSED`` and ``ERROR`` are terminal: nothing is delivered after either.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TransportState(Enum):
    """Phases of a single channel."""

    NEW = "new"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class TransportEventType(Enum):
    """Types of transport events."""

    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TransportEventType.CLOSED, TransportEventType.ERROR)


@dataclass(frozen=True)
class TransportEvent:
    """An event observed on a channel."""

    event_type: TransportEventType
    payload: str | None = None
    error: str | None = None

    @classmethod
    def opened(cls) -> TransportEvent:
        return cls(TransportEventType.OPENED)

    @classmethod
    def message(cls, payload: str) -> TransportEvent:
        return cls(TransportEventType.MESSAGE, payload=payload)

    @classmethod
    def closed(cls, reason: str | None = None) -> TransportEvent:
        return cls(TransportEventType.CLOSED, error=reason)

    @classmethod
    def failed(cls, error: str) -> TransportEvent:
        return cls(TransportEventType.ERROR, error=error)


class TransportChannel(ABC):
    """Abstract interface for one bidirectional connection.

    Implementations call :meth:`_emit` from their connect/read paths; this
    base class owns the event queue and enforces the terminal rule.

    A channel is single-use: open it once, close it once (closing again is
    a no-op), then discard it.
    """

    def __init__(self) -> None:
        self._state = TransportState.NEW
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._terminated = False

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is TransportState.OPEN

    @property
    def pending_events(self) -> int:
        """Events emitted but not yet consumed from :meth:`events`."""
        return self._events.qsize()

    @abstractmethod
    async def open(self, url: str) -> None:
        """Connect to the server.

        Emits ``OPENED`` on success or ``ERROR`` on failure; connection
        failures are reported as events, not raised.
        """
        ...

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """Send one JSON message.

        Raises:
            NotConnectedError: If the channel is not open
            TransportError: If the underlying send fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Idempotent."""
        ...

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Yield events in delivery order, ending after the terminal one."""
        while True:
            event = await self._events.get()
            yield event
            if event.event_type.is_terminal:
                return

    def _emit(self, event: TransportEvent) -> bool:
        """Queue an event unless the channel already terminated.

        Returns:
            True if the event was queued
        """
        if self._terminated:
            logger.debug(f"Dropping {event.event_type.value} after terminal event")
            return False
        if event.event_type.is_terminal:
            self._terminated = True
            self._state = TransportState.CLOSED
        self._events.put_nowait(event)
        return True
