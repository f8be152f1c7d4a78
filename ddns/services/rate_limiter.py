"""Write rate limiter – sliding window per source address, backed by Redis."""

from __future__ import annotations

import logging
import time
import uuid

import redis.asyncio as aioredis

from ddns.services.errors import RateLimited

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class WriteRateLimiter:
    """Caps claim/update attempts per source address.

    Every attempt counts, successful or not, so a client cannot grind
    signatures against an alias faster than *limit* per window.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        limit: int,
        window: float = WINDOW_SECONDS,
    ) -> None:
        self._redis = redis
        self._limit = limit
        self._window = window

    @property
    def enabled(self) -> bool:
        return self._limit > 0

    async def acquire(self, source: str) -> None:
        """Record an attempt from *source*; raise ``RateLimited`` over the limit."""
        if not self.enabled:
            return

        key = f"rate:write:{source}"
        now = time.time()
        pipe = self._redis.pipeline()
        # Drop attempts that left the window
        pipe.zremrangebyscore(key, 0, now - self._window)
        pipe.zcard(key)
        results = await pipe.execute()
        count = results[1]

        if count >= self._limit:
            logger.warning("Write rate limit hit for %s (%d in %ds)", source, count, self._window)
            raise RateLimited(
                f"Too many write requests; at most {self._limit} per "
                f"{int(self._window)} seconds are allowed."
            )

        await self._redis.zadd(key, {str(uuid.uuid4()): now})
        await self._redis.expire(key, int(self._window) + 1)
