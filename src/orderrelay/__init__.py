"""Order Relay — Postgres change events to WebSocket clients, in order.

The relay process LISTENs for Postgres notifications, stamps each one with a
durable sequence number from Redis, and publishes it on a Redis channel.
The fan-out server subscribes to that channel and forwards every message to
all connected WebSocket clients.
"""

__version__ = "0.1.0"
