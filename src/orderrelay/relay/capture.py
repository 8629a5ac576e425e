"""Change capture — a supervised Postgres LISTEN connection.

Learn: asyncpg delivers notifications by calling a plain (synchronous)
callback on the event loop. We parse the payload right there and hand the
event to the sink, which must not block. Keeping the hand-off synchronous
is what preserves arrival order: callbacks for one connection run in the
order Postgres sent the notifications.

The LISTEN is issued in subscribe(), so it is re-issued after every
reconnect — a fresh connection has no subscriptions.
"""

import asyncio
from typing import Callable, Optional

import asyncpg
import structlog

from orderrelay.connection import Backoff, ConnectionSupervisor, Shutdown
from orderrelay.events import RawChangeEvent, parse_notification

logger = structlog.get_logger()


class ChangeCapture:
    """Connector that turns Postgres notifications into RawChangeEvents."""

    def __init__(
        self,
        database_url: str,
        channel: str,
        sink: Callable[[RawChangeEvent], None],
        shutdown: Shutdown,
        backoff: Optional[Backoff] = None,
        liveness_interval: float = 2.0,
        probe_timeout: float = 5.0,
        close_timeout: float = 5.0,
    ):
        self.database_url = database_url
        self.channel = channel
        self.sink = sink
        self.close_timeout = close_timeout
        self.received = 0
        self.supervisor = ConnectionSupervisor(
            "store-listener",
            self,
            shutdown,
            backoff=backoff,
            liveness_interval=liveness_interval,
            probe_timeout=probe_timeout,
        )

    async def run(self) -> None:
        await self.supervisor.run()

    # ─── Connector ────────────────────────────────────────

    async def connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self.database_url)
        # Cheap round-trip so a half-open connection fails here, not later
        await conn.fetchval("SELECT 1")
        return conn

    async def subscribe(self, conn: asyncpg.Connection) -> None:
        await conn.add_listener(self.channel, self._on_notification)
        logger.info("capture.listening", channel=self.channel)

    async def is_alive(self, conn: asyncpg.Connection) -> bool:
        if conn.is_closed():
            logger.warning("capture.connection_closed")
            return False
        await conn.fetchval("SELECT 1")
        return True

    async def close(self, conn: asyncpg.Connection) -> None:
        if conn.is_closed():
            return
        try:
            await conn.close(timeout=self.close_timeout)
        except Exception as e:
            logger.warning("capture.close_forced", error=str(e))
            conn.terminate()

    # ─── Notification handler ─────────────────────────────

    def _on_notification(self, conn, pid, channel, payload):
        """Called by asyncpg for every NOTIFY on our channel."""
        self.received += 1
        event = parse_notification(payload)
        logger.debug(
            "capture.notification",
            channel=channel,
            pid=pid,
            op=event.operation,
        )
        try:
            self.sink(event)
        except Exception:
            logger.exception("capture.sink_failed", op=event.operation)
