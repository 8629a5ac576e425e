"""Relay service — wires ChangeCapture → Sequencer → BusPublisher.

Learn: Three concurrent tasks run until shutdown:
1. Store listener supervisor — LISTEN, liveness, reconnect
2. Bus publisher supervisor — PING, liveness, reconnect
3. Sequencer worker — drains events in arrival order

The supervisors return when the Shutdown token fires. The worker loops
forever, so we cancel it once both supervisors have stopped.
"""

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Optional

import structlog

from orderrelay.config import Settings
from orderrelay.connection import Shutdown
from orderrelay.relay.capture import ChangeCapture
from orderrelay.relay.publisher import BusPublisher
from orderrelay.relay.sequencer import Sequencer

logger = structlog.get_logger()


class RelayService:
    """The whole relay process in one object."""

    def __init__(self, settings: Settings, shutdown: Shutdown):
        self.settings = settings
        self.shutdown = shutdown
        self.started_at: Optional[datetime] = None

        timing = dict(
            backoff=settings.make_backoff(),
            liveness_interval=settings.liveness_interval_seconds,
            probe_timeout=settings.probe_timeout_seconds,
            close_timeout=settings.close_timeout_seconds,
        )
        self.publisher = BusPublisher(settings.redis_url, shutdown, **timing)
        self.sequencer = Sequencer(
            self.publisher,
            topic=settings.bus_topic,
            counter_key=settings.counter_key,
            source=settings.event_source,
        )
        self.capture = ChangeCapture(
            settings.database_url,
            settings.store_channel,
            sink=self.sequencer.on_event,
            shutdown=shutdown,
            **timing,
        )

    async def run(self) -> None:
        """Run until the Shutdown token is triggered."""
        self.started_at = datetime.now(timezone.utc)
        logger.info(
            "relay.starting",
            channel=self.settings.store_channel,
            topic=self.settings.bus_topic,
            counter_key=self.settings.counter_key,
        )

        worker = asyncio.create_task(self.sequencer.run())
        try:
            await asyncio.gather(self.capture.run(), self.publisher.run())
        finally:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
            if self.sequencer.pending:
                logger.warning("relay.unpublished_on_shutdown", count=self.sequencer.pending)
            logger.info("relay.stopped", **self.get_stats())

    def get_stats(self) -> dict:
        """Return relay statistics for monitoring."""
        stats = self.sequencer.stats
        return {
            "store": self.capture.supervisor.state.value,
            "bus": self.publisher.supervisor.state.value,
            "received": self.capture.received,
            "published": stats.published,
            "dropped": stats.dropped,
            "last_sequence_id": stats.last_sequence_id,
            "pending": self.sequencer.pending,
            "started_at": (
                self.started_at.isoformat() if self.started_at else None
            ),
        }
