"""Relay entry point — run as a separate process.

Learn: The relay is its own process, separate from the fan-out server.
If the WebSocket server dies, events keep getting sequenced and published;
if the relay dies, connected clients simply stop receiving messages.

Usage:
    python -m orderrelay.relay.main

Or via the CLI:
    orderrelay relay
    orderrelay-relay
"""

import asyncio
import signal
import sys

import structlog

from orderrelay.config import ConfigError, Settings, get_settings
from orderrelay.connection import Shutdown
from orderrelay.log import configure_logging
from orderrelay.relay.service import RelayService

logger = structlog.get_logger()


async def run(settings: Settings) -> None:
    """Run the relay until SIGINT/SIGTERM."""
    shutdown = Shutdown()
    service = RelayService(settings, shutdown)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _on_signal, sig, shutdown)

    await service.run()


def _on_signal(sig: signal.Signals, shutdown: Shutdown) -> None:
    logger.info("relay.signal_received", signal=sig.name)
    shutdown.trigger()


def main():
    """Console-script entry point."""
    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    configure_logging(settings.log_level, settings.log_json)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
