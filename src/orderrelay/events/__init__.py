"""Change events — what the store emits and what goes out on the bus."""

from orderrelay.events.models import (
    ChangeEvent,
    OpaqueEvent,
    RawChangeEvent,
    SequencedEvent,
    parse_notification,
)

__all__ = [
    "ChangeEvent",
    "OpaqueEvent",
    "RawChangeEvent",
    "SequencedEvent",
    "parse_notification",
]
