"""Exponential backoff — a pure value, no timers, no I/O.

Learn: Backoff is a frozen dataclass. next_delay() returns the delay to
wait AND the new state instead of mutating anything, so the reconnect
math can be unit tested without sleeping:

    b = Backoff(base=1.0, cap=30.0, multiplier=1.5)
    d1, b = b.next_delay()   # 1.0   (attempt 1)
    d2, b = b.next_delay()   # 1.5   (attempt 2)
    b = b.reset()            # attempt 0 again after a good connect
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Backoff:
    """Capped exponential retry delay, in seconds."""

    attempt: int = 0
    base: float = 1.0
    cap: float = 30.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay for the k-th consecutive failure (k >= 1)."""
        if attempt < 1:
            return 0.0
        return min(self.base * self.multiplier ** (attempt - 1), self.cap)

    def next_delay(self) -> tuple[float, "Backoff"]:
        """Record one more failure; return (delay, new_state)."""
        attempt = self.attempt + 1
        return self.delay_for(attempt), replace(self, attempt=attempt)

    def reset(self) -> "Backoff":
        """Back to attempt 0 — called after every successful connect."""
        return replace(self, attempt=0)
