"""Admin API call pacing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

CALL_LIMIT_HEADER = "X-Shopify-Shop-Api-Call-Limit"


class RateLimiter:
    """Leaky bucket per shop, shaped like the REST Admin API limit.

    Shopify lets a shop burst up to ``burst`` calls and then drains the bucket
    at ``rate`` calls per second. ``observe`` folds the server's own count from
    the call-limit header back in, so other clients sharing the shop are
    accounted for.
    """

    def __init__(
        self,
        *,
        rate: float = 2.0,
        burst: int = 40,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tokens: dict[str, float] = {}
        self._updated: dict[str, float] = {}

    def available(self, shop: str) -> float:
        now = self._clock()
        tokens = self._tokens.get(shop, float(self.burst))
        elapsed = now - self._updated.get(shop, now)
        return min(float(self.burst), tokens + elapsed * self.rate)

    async def wait(self, shop: str) -> None:
        if self.rate <= 0:
            return
        async with self._locks[shop]:
            tokens = self.available(shop)
            now = self._clock()
            if tokens < 1:
                delay = (1 - tokens) / self.rate
                logger.debug("Bucket for %s is empty; waiting %.2fs", shop, delay)
                await self._sleep(delay)
                tokens, now = 1.0, now + delay
            self._tokens[shop] = tokens - 1
            self._updated[shop] = now

    def observe(self, shop: str, header: str | None) -> None:
        """Sync with a ``used/limit`` value such as ``32/40``."""
        if not header or self.rate <= 0:
            return
        try:
            used, limit = (int(part) for part in header.split("/", 1))
        except ValueError:
            logger.debug("Ignoring malformed call limit %r for %s", header, shop)
            return
        self._tokens[shop] = min(self.available(shop), float(limit - used))
        self._updated[shop] = self._clock()
