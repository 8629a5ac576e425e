"""Shutdown token — the explicit replacement for a global `running` flag.

Every long-running loop receives the same Shutdown instance at
construction and checks it around each wait. Triggering it is safe to do
from a signal handler installed with loop.add_signal_handler().
"""

import asyncio


class Shutdown:
    """Process-wide cancellation token."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def trigger(self) -> None:
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to `timeout` seconds; return True if shutdown was triggered.

        Learn: This doubles as the interruptible sleep for backoff and
        liveness intervals — a 30s backoff ends the moment Ctrl+C arrives.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
