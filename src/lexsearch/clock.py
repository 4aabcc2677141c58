"""Clock capability and deadlines.

Everything that depends on wall-clock time (recency bonus, cache expiry,
feedback decay) takes a ``Clock`` so tests can pin time.
"""

from __future__ import annotations

import time
from typing import Optional, Protocol

from lexsearch.exceptions import SearchTimeoutError

SECONDS_PER_DAY = 86_400.0


class Clock(Protocol):
    """Minimal time source: seconds since the epoch."""

    def now(self) -> float: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, value: float) -> None:
        self._now = float(value)


class Deadline:
    """A point in time after which bounded work should stop.

    ``timeout=None`` never expires.
    """

    def __init__(self, clock: Clock, timeout: Optional[float]) -> None:
        self._clock = clock
        self._expires_at = None if timeout is None else clock.now() + timeout

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock.now() >= self._expires_at

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock.now())

    def check(self, what: str = "operation") -> None:
        """Raise ``SearchTimeoutError`` once the deadline has passed."""
        if self.expired:
            raise SearchTimeoutError(f"{what} exceeded its deadline")
