"""
Transcript event types.

Events are the unit stored by the message store and pushed to the
presentation layer.
"""

from .types import (
    ChatEvent,
    Event,
    EventKind,
    SystemEvent,
    event_from_dict,
    event_to_dict,
    joined_notice,
    left_notice,
    parse_timestamp,
    utc_now,
)

__all__ = [
    "ChatEvent",
    "Event",
    "EventKind",
    "SystemEvent",
    "event_from_dict",
    "event_to_dict",
    "joined_notice",
    "left_notice",
    "parse_timestamp",
    "utc_now",
]
