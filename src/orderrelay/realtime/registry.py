"""Client registry — the set of currently open WebSocket connections.

Learn: A connection is in the registry if and only if its socket has not
reported close/error since it was added. Removal happens synchronously in
the close/error path; there is no grace period and no deferred cleanup.

Everything runs on one event loop, so no lock is needed. snapshot()
returns a frozen copy so a broadcast can iterate while clients come and
go underneath it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger()


@dataclass(eq=False)
class ClientConnection:
    """One open client socket."""

    websocket: Any
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ClientRegistry:
    def __init__(self) -> None:
        self._clients: dict[str, ClientConnection] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, conn: ClientConnection) -> bool:
        return self._clients.get(conn.id) is conn

    def add(self, conn: ClientConnection) -> None:
        self._clients[conn.id] = conn
        logger.info("fanout.client_connected", client_id=conn.id, clients=len(self))

    def remove(self, conn: ClientConnection) -> None:
        """Idempotent — removing an absent connection is a no-op."""
        if self._clients.pop(conn.id, None) is not None:
            logger.info(
                "fanout.client_disconnected", client_id=conn.id, clients=len(self)
            )

    def snapshot(self) -> frozenset[ClientConnection]:
        return frozenset(self._clients.values())
