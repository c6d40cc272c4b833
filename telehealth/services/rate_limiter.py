import logging
import time
from typing import Dict, Optional, Tuple

from redis.asyncio import Redis as AsyncRedisClient

from telehealth.config import settings
from telehealth.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request counter keyed by scope and user.

    Uses Redis INCR/EXPIRE when REDIS_URL is set so limits hold across workers,
    otherwise counts in process.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url if redis_url is not None else settings.REDIS_URL
        self._redis: Optional[AsyncRedisClient] = None
        self._windows: Dict[str, Tuple[int, int]] = {}

    @property
    def redis(self) -> Optional[AsyncRedisClient]:
        if self._redis is None and self.redis_url:
            self._redis = AsyncRedisClient.from_url(self.redis_url)
        return self._redis

    async def hit(self, scope: str, key: str, limit: int, window: int) -> int:
        """
        Count one request and return the count within the current window

        Raises:
            RateLimitExceededError: when the count goes over the limit
        """
        now = int(time.time())
        window_start = now - now % window
        retry_after = max(window_start + window - now, 1)
        bucket = f"rate:{scope}:{key}:{window_start}"

        if self.redis is not None:
            count = await self.redis.incr(bucket)
            if count == 1:
                await self.redis.expire(bucket, window)
        else:
            started, count = self._windows.get(f"{scope}:{key}", (window_start, 0))
            if started != window_start:
                count = 0
            count += 1
            self._windows[f"{scope}:{key}"] = (window_start, count)

        if count > limit:
            logger.info("Rate limit hit for %s by %s (%d/%d)", scope, key, count, limit)
            raise RateLimitExceededError(
                f"Too many requests. Please try again in {retry_after} seconds.",
                retry_after=retry_after,
            )
        return count

    def reset(self) -> None:
        self._windows.clear()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# Singleton instance
rate_limiter = RateLimiter()
