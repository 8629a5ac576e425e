"""Connection supervisor — connect, subscribe, monitor, back off, repeat.

Learn: A supervised connection moves through four states:

    DISCONNECTED → CONNECTING → CONNECTED ⇄ DEGRADED
          ↑______________________________________|

DEGRADED means the connection object still claims to be open but the
periodic liveness probe failed (or timed out). It is not a separate retry
path — the supervisor closes the connection and reconnects like any other
failure.

Subscriptions never survive a reconnect (Postgres LISTEN and Redis
SUBSCRIBE both live on the socket), so subscribe() is called again after
every successful connect.

The loop only ends when the Shutdown token is triggered. There is no
maximum retry count.
"""

import asyncio
import contextlib
import enum
from typing import Any, Optional, Protocol

import structlog

from orderrelay.connection.backoff import Backoff
from orderrelay.connection.shutdown import Shutdown

logger = structlog.get_logger()


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


class Connector(Protocol):
    """What a component supplies to get a self-healing connection.

    pump() is optional: push-style transports (asyncpg listeners) deliver
    messages via callbacks registered in subscribe(); pull-style transports
    (Redis PubSub) run their read loop in pump(). When pump() returns or
    raises, the connection is treated as dead.
    """

    async def connect(self) -> Any: ...

    async def subscribe(self, conn: Any) -> None: ...

    async def is_alive(self, conn: Any) -> bool: ...

    async def close(self, conn: Any) -> None: ...


class ConnectionSupervisor:
    """Keeps one external connection alive until shutdown."""

    def __init__(
        self,
        name: str,
        connector: Connector,
        shutdown: Shutdown,
        backoff: Optional[Backoff] = None,
        liveness_interval: float = 2.0,
        probe_timeout: float = 5.0,
    ):
        self.name = name
        self.connector = connector
        self.shutdown = shutdown
        self.backoff = backoff or Backoff()
        self.liveness_interval = liveness_interval
        self.probe_timeout = probe_timeout
        self.state = ConnectionState.DISCONNECTED
        self.connection: Any = None
        self.connects = 0
        self.log = logger.bind(connection=name)

    @property
    def attempt(self) -> int:
        return self.backoff.attempt

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            self.log.debug("connection.state", old=self.state.value, new=state.value)
        self.state = state

    async def run(self) -> None:
        """Connect-listen-monitor loop. Returns only on shutdown."""
        self.log.info("connection.supervisor_started")
        try:
            while not self.shutdown.is_set:
                conn = await self._connect_once()
                if conn is None:
                    if await self._wait_backoff():
                        break
                    continue

                self.backoff = self.backoff.reset()
                self.connects += 1
                self.connection = conn
                self._set_state(ConnectionState.CONNECTED)
                self.log.info("connection.connected", connects=self.connects)

                try:
                    await self._monitor(conn)
                finally:
                    self.connection = None
                    await self._close(conn)
                    self._set_state(ConnectionState.DISCONNECTED)

                if self.shutdown.is_set:
                    break
                if await self._wait_backoff():
                    break
        finally:
            self._set_state(ConnectionState.DISCONNECTED)
            self.log.info("connection.supervisor_stopped", connects=self.connects)

    async def _connect_once(self) -> Any:
        """One connect + subscribe attempt. Returns the connection or None."""
        self._set_state(ConnectionState.CONNECTING)
        self.log.info("connection.connecting", attempt=self.backoff.attempt + 1)
        conn = None
        try:
            conn = await self.connector.connect()
            await self.connector.subscribe(conn)
            return conn
        except asyncio.CancelledError:
            if conn is not None:
                await self._close(conn)
            raise
        except Exception as e:
            self.log.warning(
                "connection.connect_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            if conn is not None:
                await self._close(conn)
            self._set_state(ConnectionState.DISCONNECTED)
            return None

    async def _monitor(self, conn: Any) -> None:
        """Block until the connection dies or shutdown is triggered.

        Learn: Liveness is checked on a fixed interval, independent of
        traffic. A quiet channel is not a dead channel, and a dead channel
        may not raise anything until we try to use it.
        """
        pump = None
        pump_fn = getattr(self.connector, "pump", None)
        if pump_fn is not None:
            pump = asyncio.create_task(pump_fn(conn))

        try:
            while not self.shutdown.is_set:
                if pump is None:
                    if await self.shutdown.wait(self.liveness_interval):
                        return
                else:
                    stop = asyncio.create_task(self.shutdown.wait())
                    done, _ = await asyncio.wait(
                        {pump, stop},
                        timeout=self.liveness_interval,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                    if stop not in done:
                        stop.cancel()
                    if self.shutdown.is_set:
                        return
                    if pump in done:
                        error = None if pump.cancelled() else pump.exception()
                        self.log.warning(
                            "connection.stream_ended",
                            error=str(error) if error else None,
                        )
                        return

                if not await self._probe(conn):
                    self._set_state(ConnectionState.DEGRADED)
                    self.log.warning("connection.liveness_failed")
                    return
        finally:
            if pump is not None and not pump.done():
                pump.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await pump

    async def _probe(self, conn: Any) -> bool:
        try:
            return bool(
                await asyncio.wait_for(
                    self.connector.is_alive(conn), timeout=self.probe_timeout
                )
            )
        except asyncio.TimeoutError:
            self.log.warning("connection.probe_timeout", timeout=self.probe_timeout)
            return False
        except Exception as e:
            self.log.warning("connection.probe_failed", error=str(e))
            return False

    async def _close(self, conn: Any) -> None:
        try:
            await self.connector.close(conn)
        except Exception as e:
            self.log.warning("connection.close_failed", error=str(e))

    async def _wait_backoff(self) -> bool:
        """Sleep for the next backoff delay. Returns True if shutdown fired."""
        if self.shutdown.is_set:
            return True
        delay, self.backoff = self.backoff.next_delay()
        self.log.info(
            "connection.reconnecting",
            delay=round(delay, 3),
            attempt=self.backoff.attempt,
        )
        return await self.shutdown.wait(delay)
