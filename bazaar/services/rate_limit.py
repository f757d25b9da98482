"""Fixed-window rate limits in Redis, keyed by client identifier.

Counters live in Redis so limits survive restarts and hold across instances.
"""

import time

from bazaar.core.logging import get_logger

log = get_logger(__name__)

KEY_PREFIX = "rl:v1"


class RateLimiter:
    def __init__(self, redis, scope: str, limit: int, window_seconds: int) -> None:
        self.redis = redis
        self.scope = scope
        self.limit = max(1, int(limit))
        self.window_seconds = max(1, int(window_seconds))

    def _key(self, identifier: str, now: int) -> str:
        return f"{KEY_PREFIX}:{self.scope}:{identifier}:{now // self.window_seconds}"

    async def hit(self, identifier: str) -> tuple[bool, int]:
        """Count one request. Returns (allowed, retry_after_seconds).

        Fails open when Redis is unreachable.
        """
        now = int(time.time())
        key = self._key(identifier, now)
        try:
            n = await self.redis.incr(key)
            if n == 1:
                await self.redis.expire(key, self.window_seconds + 1)
        except Exception as e:
            log.warning("rate_limit_unavailable", scope=self.scope, error=str(e))
            return True, 0
        if n <= self.limit:
            return True, 0
        retry_after = max(1, self.window_seconds - (now % self.window_seconds))
        log.info("rate_limited", scope=self.scope, identifier=identifier, count=n, limit=self.limit)
        return False, retry_after
