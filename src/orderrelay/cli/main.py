"""Order Relay CLI — run the relay, the fan-out server, or tap the bus.

Usage:
    orderrelay relay                  # Postgres NOTIFY → Redis (sequenced)
    orderrelay serve --port 8080      # Redis → WebSocket clients
    orderrelay tap                    # Print every message on the bus topic

All configuration comes from the environment (DATABASE_URL, REDIS_URL,
PORT, RELAY_*). Missing connection strings exit with status 1 before any
connection is attempted.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click

from orderrelay import __version__
from orderrelay.config import ConfigError, Settings, get_settings
from orderrelay.log import configure_logging

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    """Load settings or exit 1 with a readable message."""
    try:
        settings = get_settings()
    except ConfigError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    configure_logging(settings.log_level, settings.log_json)
    return settings


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="orderrelay")
def main():
    """Order Relay — ordered change events from Postgres to WebSocket clients."""


# ---------------------------------------------------------------------------
# orderrelay relay
# ---------------------------------------------------------------------------


@main.command()
def relay():
    """Run the relay: LISTEN on Postgres, sequence, PUBLISH to Redis."""
    from orderrelay.relay.main import run

    settings = _settings()
    asyncio.run(run(settings))


# ---------------------------------------------------------------------------
# orderrelay serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: RELAY_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Listen port (default: PORT)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the fan-out server: Redis SUBSCRIBE → WebSocket clients."""
    import uvicorn

    from orderrelay.main import create_app

    settings = _settings()
    if host:
        settings = settings.model_copy(update={"host": host})
    if port:
        settings = settings.model_copy(update={"port": port})

    click.echo(
        f"Fan-out on ws://{settings.host}:{settings.port}/ "
        f"(topic {settings.bus_topic})"
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# orderrelay tap
# ---------------------------------------------------------------------------


@main.command()
@click.option("--topic", default=None, help="Channel to tap (default: RELAY_BUS_TOPIC)")
def tap(topic: Optional[str]):
    """Print every message published on the bus topic."""
    settings = _settings()
    try:
        asyncio.run(_tap(settings.redis_url, topic or settings.bus_topic))
    except KeyboardInterrupt:
        pass


async def _tap(redis_url: str, topic: str) -> None:
    import redis.asyncio as aioredis

    client = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = client.pubsub()
    try:
        await pubsub.subscribe(topic)
        click.secho(f"Subscribed to {topic}", fg="green", err=True)
        async for message in pubsub.listen():
            if message["type"] == "message":
                click.echo(message["data"])
    finally:
        await pubsub.aclose()
        await client.aclose()


if __name__ == "__main__":
    main()
