"""Self-healing connections — one reconnect loop shared by every component.

Learn: The store listener, the bus publisher and the bus subscriber all
need the same thing: connect, subscribe, watch for death, back off, retry.
Instead of three hand-rolled while-loops, each component implements the
small Connector protocol and hands it to a ConnectionSupervisor.
"""

from orderrelay.connection.backoff import Backoff
from orderrelay.connection.shutdown import Shutdown
from orderrelay.connection.supervisor import (
    ConnectionState,
    ConnectionSupervisor,
    Connector,
)

__all__ = [
    "Backoff",
    "ConnectionState",
    "ConnectionSupervisor",
    "Connector",
    "Shutdown",
]
