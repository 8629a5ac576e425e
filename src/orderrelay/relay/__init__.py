"""Relay process — Postgres NOTIFY → sequence id → Redis PUBLISH.

Learn: The relay is its own process, separate from the fan-out server.
It owns two independent connections, each with its own supervisor:
1. The Postgres LISTEN connection (ChangeCapture)
2. The Redis connection used for INCR + PUBLISH (BusPublisher)

Either can drop and reconnect without touching the other.
"""
