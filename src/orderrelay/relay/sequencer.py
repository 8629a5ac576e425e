"""Sequencer — stamp each change event with a durable id, then publish.

Learn: The sequence id comes from Redis INCR on a fixed key. INCR is
atomic on the Redis server and the counter lives in Redis, not here, so:
- two events never get the same id, even across relay restarts
- a restart never rewinds the counter

Events are processed one at a time by a single worker draining a FIFO
queue. That is what keeps bus order equal to NOTIFY arrival order: event
N+1 is not INCR'd until event N has been published (or dropped).

Failure policy is deliberately lossy (at-most-once):
- INCR fails (Redis down)     → event dropped, logged
- PUBLISH fails after INCR    → event dropped, id is burned (a gap)
Neither is retried; a slow or broken bus must never stall the pipeline.
Consumers see gaps in _pub_id, never duplicates or reordering.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from redis.exceptions import RedisError

from orderrelay.events import RawChangeEvent, SequencedEvent
from orderrelay.events.models import utc_timestamp
from orderrelay.relay.publisher import BusPublisher

logger = structlog.get_logger()


@dataclass
class SequencerStats:
    """Runtime counters for monitoring."""
    published: int = 0
    dropped: int = 0
    last_sequence_id: Optional[int] = None


class Sequencer:
    """Assigns sequence ids and publishes events on the bus topic."""

    def __init__(
        self,
        publisher: BusPublisher,
        topic: str,
        counter_key: str,
        source: str,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.publisher = publisher
        self.topic = topic
        self.counter_key = counter_key
        self.source = source
        self.clock = clock
        self.stats = SequencerStats()
        self._queue: asyncio.Queue[RawChangeEvent] = asyncio.Queue()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def on_event(self, raw: RawChangeEvent) -> None:
        """Inbound interface for ChangeCapture. Never blocks."""
        self._queue.put_nowait(raw)

    async def run(self) -> None:
        """Drain the queue forever, in arrival order."""
        while True:
            raw = await self._queue.get()
            try:
                await self.handle(raw)
            except Exception:
                self.stats.dropped += 1
                logger.exception("relay.event_failed", op=raw.operation or "N/A")
            finally:
                self._queue.task_done()

    async def handle(self, raw: RawChangeEvent) -> Optional[SequencedEvent]:
        """Sequence and publish one event. Returns it, or None if dropped."""
        client = self.publisher.client
        if client is None:
            self._drop(raw, "bus disconnected")
            return None

        try:
            sequence_id = int(await client.incr(self.counter_key))
        except (RedisError, OSError) as e:
            self._drop(raw, f"sequence increment failed: {e}")
            return None

        event = SequencedEvent(
            event=raw,
            sequence_id=sequence_id,
            published_at=self.clock(),
            source=self.source,
        )

        try:
            receivers = await client.publish(self.topic, event.to_json())
        except (RedisError, OSError) as e:
            self._drop(raw, f"publish failed: {e}", sequence_id=sequence_id)
            return None

        self.stats.published += 1
        self.stats.last_sequence_id = sequence_id
        logger.info(
            "relay.published",
            id=sequence_id,
            receivers=receivers,
            op=event.operation or "N/A",
        )
        return event

    def _drop(self, raw: RawChangeEvent, reason: str, sequence_id: Optional[int] = None):
        self.stats.dropped += 1
        logger.warning(
            "relay.event_dropped",
            reason=reason,
            id=sequence_id,
            op=raw.operation or "N/A",
        )
