"""Rate limiting for the unauthenticated whistleblowing endpoints.

Redis-backed sliding window. Each limiter is a FastAPI dependency attached
to the routes it protects, keyed by client address.
"""

import logging
import math
import time
from collections.abc import Callable
from uuid import uuid4

from fastapi import Depends, Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import Settings, get_settings
from app.database import get_redis
from app.exceptions import RateLimitError

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """At most `limit` hits per `window_seconds` for each key.

    Rejected hits are not recorded, so a throttled client regains capacity
    as soon as its oldest accepted hit leaves the window.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize rate limiter.

        Args:
            name: Prefix separating this limiter's keys from others
            limit: Max hits per window per client
            window_seconds: Window length
            clock: Wall clock in seconds, replaceable in tests
        """
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    def _key(self, client: str) -> str:
        return f"rl:{self.name}:{client}"

    async def check(self, redis: Redis, client: str) -> tuple[bool, int | None]:
        """Check and record a hit.

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        key = self._key(client)
        now_ms = int(self._clock() * 1000)
        window_ms = self.window_seconds * 1000
        cutoff = now_ms - window_ms

        pipe = redis.pipeline()
        pipe.zremrangebyscore(key, 0, cutoff)
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        results = await pipe.execute()

        count = results[1]
        if count >= self.limit:
            oldest = results[2]
            if oldest:
                oldest_ms = int(oldest[0][1])
                retry_after = max(1, math.ceil((oldest_ms + window_ms - now_ms) / 1000))
            else:
                retry_after = self.window_seconds
            return False, retry_after

        pipe = redis.pipeline()
        pipe.zadd(key, {f"{now_ms}:{uuid4().hex[:8]}": now_ms})
        pipe.expire(key, self.window_seconds + 1)
        await pipe.execute()

        return True, None


def get_client_identifier(request: Request, trust_forwarded_for: bool = False) -> str:
    """Extract client identifier for rate limiting.

    X-Forwarded-For is honoured only behind a trusted proxy.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


class RateLimit:
    """Route dependency enforcing one of the configured limits.

    Limits are read from settings per request so overrides apply in tests.
    If Redis is unreachable the request is allowed and the error logged.
    """

    def __init__(self, name: str, limit_setting: str, window_setting: str):
        self.name = name
        self.limit_setting = limit_setting
        self.window_setting = window_setting

    def limiter(self, settings: Settings) -> SlidingWindowLimiter:
        return SlidingWindowLimiter(
            name=self.name,
            limit=getattr(settings, self.limit_setting),
            window_seconds=getattr(settings, self.window_setting),
        )

    async def __call__(
        self,
        request: Request,
        redis: Redis = Depends(get_redis),
        settings: Settings = Depends(get_settings),
    ) -> None:
        if not settings.rate_limit_enabled:
            return

        client = get_client_identifier(request, settings.trust_forwarded_for)
        try:
            allowed, retry_after = await self.limiter(settings).check(redis, client)
        except (RedisError, OSError) as e:
            logger.error("Rate limiting error on %s: %s", self.name, e)
            return

        if not allowed:
            logger.warning("Rate limit exceeded on %s", self.name)
            raise RateLimitError(retry_after=retry_after)


report_rate_limit = RateLimit(
    "wb_report", "wb_report_rate_limit", "wb_report_rate_window_seconds"
)
message_rate_limit = RateLimit(
    "wb_message", "wb_message_rate_limit", "wb_message_rate_window_seconds"
)

# Signed-in reporters get their own buckets so employees behind a shared
# address cannot exhaust the anonymous quota.
identified_report_rate_limit = RateLimit(
    "wb_report_identified", "wb_report_rate_limit", "wb_report_rate_window_seconds"
)
identified_message_rate_limit = RateLimit(
    "wb_message_identified", "wb_message_rate_limit", "wb_message_rate_window_seconds"
)
