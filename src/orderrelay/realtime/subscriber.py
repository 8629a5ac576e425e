"""Bus subscriber — a supervised Redis SUBSCRIBE on the relay's topic.

Learn: Redis PubSub is pull-style: someone has to sit in listen() and
read frames. That loop is this connector's pump(). When the socket dies,
listen() raises, pump() ends, and the supervisor reconnects and
SUBSCRIBEs again.

Liveness uses PubSub PING, which goes over the subscribed socket itself.
Its reply comes back through listen() as a "pong" frame. Every frame pump()
reads, pongs included, stamps `last_frame`. The probe fails once nothing
has arrived for a liveness interval plus the probe timeout.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union

import redis.asyncio as aioredis
import structlog
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from orderrelay.connection import Backoff, ConnectionSupervisor, Shutdown

logger = structlog.get_logger()

MessageHandler = Callable[[Union[str, bytes]], Awaitable[object]]


@dataclass
class BusConnection:
    client: aioredis.Redis
    pubsub: PubSub
    last_frame: float = field(default_factory=time.monotonic)


class BusSubscriber:
    """Connector that feeds bus messages to a handler."""

    def __init__(
        self,
        redis_url: str,
        topic: str,
        handler: MessageHandler,
        shutdown: Shutdown,
        backoff: Optional[Backoff] = None,
        liveness_interval: float = 2.0,
        probe_timeout: float = 5.0,
        close_timeout: float = 5.0,
    ):
        self.redis_url = redis_url
        self.topic = topic
        self.handler = handler
        self.close_timeout = close_timeout
        self.stale_after = liveness_interval + probe_timeout
        self.supervisor = ConnectionSupervisor(
            "bus-subscriber",
            self,
            shutdown,
            backoff=backoff,
            liveness_interval=liveness_interval,
            probe_timeout=probe_timeout,
        )

    async def run(self) -> None:
        await self.supervisor.run()

    # ─── Connector ────────────────────────────────────────

    async def connect(self) -> BusConnection:
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
        return BusConnection(client=client, pubsub=client.pubsub())

    async def subscribe(self, conn: BusConnection) -> None:
        await conn.pubsub.subscribe(self.topic)
        logger.info("fanout.subscribed", topic=self.topic)

    async def pump(self, conn: BusConnection) -> None:
        async for message in conn.pubsub.listen():
            conn.last_frame = time.monotonic()
            if message["type"] != "message":
                continue
            try:
                await self.handler(message["data"])
            except Exception:
                logger.exception("fanout.handler_failed")

    async def is_alive(self, conn: BusConnection) -> bool:
        silent_for = time.monotonic() - conn.last_frame
        if silent_for > self.stale_after:
            logger.warning("fanout.subscriber_stale", silent_for=round(silent_for, 3))
            return False
        await conn.pubsub.ping()
        return True

    async def close(self, conn: BusConnection) -> None:
        try:
            await asyncio.wait_for(self._close_gracefully(conn), self.close_timeout)
        except (asyncio.TimeoutError, RedisError, OSError) as e:
            logger.warning("fanout.close_forced", error=str(e))
            await conn.client.connection_pool.disconnect(inuse_connections=True)

    async def _close_gracefully(self, conn: BusConnection) -> None:
        await conn.pubsub.aclose()
        await conn.client.aclose()
