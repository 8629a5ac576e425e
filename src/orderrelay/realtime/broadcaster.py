"""Fan-out broadcaster — forward one bus message to every open client.

Learn: Delivery is fire-and-forget per client:
- sockets that are not in the CONNECTED state are skipped silently
- a send that raises only affects that client, which is dropped from the
  registry on the spot
- nothing is buffered or retried

Sends run concurrently with gather(return_exceptions=True), so one slow
or broken socket cannot hold up the others.
"""

import asyncio
from typing import Union

import structlog
from starlette.websockets import WebSocketState

from orderrelay.realtime.registry import ClientConnection, ClientRegistry

logger = structlog.get_logger()


def _is_open(conn: ClientConnection) -> bool:
    ws = conn.websocket
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class FanoutBroadcaster:
    def __init__(self, registry: ClientRegistry):
        self.registry = registry
        self.forwarded = 0

    async def on_message(self, data: Union[str, bytes]) -> int:
        """Send `data` unmodified to every open client. Returns delivered count."""
        targets = [conn for conn in self.registry.snapshot() if _is_open(conn)]
        if not targets:
            logger.debug("fanout.no_clients")
            return 0

        results = await asyncio.gather(
            *(self._send(conn, data) for conn in targets),
            return_exceptions=True,
        )

        delivered = 0
        for conn, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.debug(
                    "fanout.send_failed",
                    client_id=conn.id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                self.registry.remove(conn)
            else:
                delivered += 1

        self.forwarded += 1
        logger.info("fanout.forwarded", clients=delivered, failed=len(targets) - delivered)
        return delivered

    async def _send(self, conn: ClientConnection, data: Union[str, bytes]) -> None:
        if isinstance(data, bytes):
            await conn.websocket.send_bytes(data)
        else:
            await conn.websocket.send_text(data)
