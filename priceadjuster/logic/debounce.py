"""Per-product admission lock with timed expiry."""

from __future__ import annotations

import asyncio
import time
from typing import Callable


class DebounceCoordinator:
    """Collapses bursts of change events for the same product.

    ``try_admit`` takes the lock for ``ttl`` seconds; further attempts inside
    the window are rejected without extending it. Expiry is checked against
    ``clock`` on every admission and, inside a running event loop, a timer
    also drops the entry once the window closes.
    """

    def __init__(self, ttl: float = 30.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._expires: dict[str, float] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._expires)

    def is_pending(self, key: str) -> bool:
        expires = self._expires.get(key)
        return expires is not None and expires > self._clock()

    def try_admit(self, key: str) -> bool:
        if self.is_pending(key):
            return False
        self.release(key)
        self._expires[key] = self._clock() + self.ttl
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return True
        self._timers[key] = loop.call_later(self.ttl, self._expire, key)
        return True

    def release(self, key: str) -> None:
        self._expires.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, key: str) -> None:
        self._timers.pop(key, None)
        self._expires.pop(key, None)
