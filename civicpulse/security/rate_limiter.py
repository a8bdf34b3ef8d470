"""Redis-backed fixed-window rate limiter for chat posting.

Uses INCR + EXPIRE. Checked in the chat route before any DB work.

Usage:
    from civicpulse.security.rate_limiter import rate_limiter

    allowed, retry_after = await rate_limiter.check(f"rate:{user.id}:chat", limit=20, window=60)
"""

from __future__ import annotations

import logging

from civicpulse.db.engine import redis_client

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window rate limiter backed by Redis INCR + EXPIRE."""

    def __init__(self, redis: object) -> None:
        self._redis = redis

    async def check(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """Check if a request is within the rate limit.

        Returns:
            (allowed, retry_after) — retry_after is seconds until the window
            resets (0 if allowed).
        """
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window)

            if count > limit:
                ttl = await self._redis.ttl(key)
                return False, max(ttl, 1)

            return True, 0
        except Exception:
            logger.exception("Rate limiter Redis error for key %s", key)
            # Fail open: chat keeps working when Redis is down
            return True, 0


# Module-level singleton
rate_limiter = RateLimiter(redis_client)
