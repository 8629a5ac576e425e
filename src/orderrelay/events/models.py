"""Event models — a tagged union instead of an untyped dict.

Learn: A Postgres NOTIFY payload is just a string. Usually it is a JSON
object like {"operation": "UPDATE", "id": 7, ...}, but nothing enforces
that. So a raw change event is one of two variants:

- ChangeEvent  — the payload decoded to a JSON object
- OpaqueEvent  — anything else; carried verbatim under "raw" with
                 operation "UNKNOWN" so it is never dropped

SequencedEvent wraps either variant with the durable sequence id, the
publish timestamp and the source tag. Its JSON form is the decoded
object plus three additive underscore fields:

    {"operation": "UPDATE", "id": 7,
     "_pub_id": 42, "_published_at": "2025-01-01T12:00:00.000Z",
     "_source": "postgres_notify"}
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog

from orderrelay.events.types import (
    FIELD_PUBLISHED_AT,
    FIELD_SEQUENCE_ID,
    FIELD_SOURCE,
    UNKNOWN_OPERATION,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ChangeEvent:
    """A notification whose payload decoded to a JSON object."""

    payload: dict[str, Any]

    @property
    def operation(self) -> Optional[str]:
        op = self.payload.get("operation")
        return op if isinstance(op, str) else None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)


@dataclass(frozen=True)
class OpaqueEvent:
    """A notification whose payload was not a JSON object."""

    raw: str
    operation: str = field(default=UNKNOWN_OPERATION, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"operation": self.operation, "raw": self.raw}


RawChangeEvent = Union[ChangeEvent, OpaqueEvent]


def parse_notification(payload: str) -> RawChangeEvent:
    """Turn a NOTIFY payload into a raw change event. Never raises."""
    try:
        decoded = json.loads(payload)
    except (TypeError, ValueError):
        logger.warning("capture.non_json_payload", raw=payload)
        return OpaqueEvent(raw=payload)

    if not isinstance(decoded, dict):
        logger.warning("capture.non_object_payload", raw=payload)
        return OpaqueEvent(raw=payload)

    return ChangeEvent(payload=decoded)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


@dataclass(frozen=True)
class SequencedEvent:
    """A raw change event stamped for publication on the bus."""

    event: RawChangeEvent
    sequence_id: int
    published_at: str
    source: str

    @property
    def operation(self) -> Optional[str]:
        return self.event.operation

    def to_dict(self) -> dict[str, Any]:
        data = self.event.to_dict()
        data[FIELD_SEQUENCE_ID] = self.sequence_id
        data[FIELD_PUBLISHED_AT] = self.published_at
        data[FIELD_SOURCE] = self.source
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)
