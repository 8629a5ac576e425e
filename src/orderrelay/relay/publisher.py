"""Bus publisher — a supervised Redis connection for INCR + PUBLISH.

Learn: redis.asyncio connects lazily, so connect() sends a PING to make
sure the server is actually there before we report CONNECTED. The same
PING doubles as the periodic liveness probe.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from orderrelay.connection import Backoff, ConnectionSupervisor, Shutdown

logger = structlog.get_logger()


class BusPublisher:
    """Connector owning the relay's Redis client."""

    def __init__(
        self,
        redis_url: str,
        shutdown: Shutdown,
        backoff: Optional[Backoff] = None,
        liveness_interval: float = 2.0,
        probe_timeout: float = 5.0,
        close_timeout: float = 5.0,
    ):
        self.redis_url = redis_url
        self.close_timeout = close_timeout
        self.supervisor = ConnectionSupervisor(
            "bus-publisher",
            self,
            shutdown,
            backoff=backoff,
            liveness_interval=liveness_interval,
            probe_timeout=probe_timeout,
        )

    @property
    def client(self) -> Optional[aioredis.Redis]:
        """The live client, or None while disconnected."""
        return self.supervisor.connection

    async def run(self) -> None:
        await self.supervisor.run()

    # ─── Connector ────────────────────────────────────────

    async def connect(self) -> aioredis.Redis:
        client = aioredis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except BaseException:
            await client.aclose()
            raise
        return client

    async def subscribe(self, conn: aioredis.Redis) -> None:
        """Publishing needs no subscription."""

    async def is_alive(self, conn: aioredis.Redis) -> bool:
        return bool(await conn.ping())

    async def close(self, conn: aioredis.Redis) -> None:
        try:
            await asyncio.wait_for(conn.aclose(), timeout=self.close_timeout)
        except (asyncio.TimeoutError, RedisError, OSError) as e:
            logger.warning("publisher.close_forced", error=str(e))
            await conn.connection_pool.disconnect(inuse_connections=True)
