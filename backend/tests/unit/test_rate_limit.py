"""Unit tests for the sliding window rate limiter."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from app.exceptions import RateLimitError
from app.middleware.rate_limit import (
    RateLimit,
    SlidingWindowLimiter,
    get_client_identifier,
    identified_report_rate_limit,
    report_rate_limit,
)


pytestmark = pytest.mark.unit


def make_request(client_host: str = "10.0.0.1", headers: dict[str, str] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/v1/wb/anon/reports",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (client_host, 12345),
    }
    return Request(scope)


class TestSlidingWindowLimiter:
    """Tests for the Redis sorted-set window."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, fake_redis, fake_clock):
        limiter = SlidingWindowLimiter("wb_report", limit=5, window_seconds=3600, clock=fake_clock)

        for _ in range(5):
            allowed, retry_after = await limiter.check(fake_redis, "ip:1")
            assert allowed is True
            assert retry_after is None
            fake_clock.advance(1)

        allowed, retry_after = await limiter.check(fake_redis, "ip:1")

        assert allowed is False
        assert retry_after == 3600 - 5

    @pytest.mark.asyncio
    async def test_window_slides(self, fake_redis, fake_clock):
        limiter = SlidingWindowLimiter("wb_report", limit=5, window_seconds=3600, clock=fake_clock)
        for _ in range(5):
            await limiter.check(fake_redis, "ip:1")

        fake_clock.advance(3660)

        allowed, _ = await limiter.check(fake_redis, "ip:1")
        assert allowed is True

    @pytest.mark.asyncio
    async def test_rejected_hits_are_not_recorded(self, fake_redis, fake_clock):
        limiter = SlidingWindowLimiter("wb_message", limit=2, window_seconds=60, clock=fake_clock)
        await limiter.check(fake_redis, "ip:1")
        await limiter.check(fake_redis, "ip:1")

        for _ in range(10):
            fake_clock.advance(1)
            allowed, _ = await limiter.check(fake_redis, "ip:1")
            assert allowed is False

        fake_clock.advance(51)
        allowed, _ = await limiter.check(fake_redis, "ip:1")
        assert allowed is True

    @pytest.mark.asyncio
    async def test_clients_are_independent(self, fake_redis, fake_clock):
        limiter = SlidingWindowLimiter("wb_report", limit=1, window_seconds=3600, clock=fake_clock)

        assert (await limiter.check(fake_redis, "ip:1"))[0] is True
        assert (await limiter.check(fake_redis, "ip:2"))[0] is True
        assert (await limiter.check(fake_redis, "ip:1"))[0] is False

    @pytest.mark.asyncio
    async def test_key_expiry_set(self, fake_redis, fake_clock):
        limiter = SlidingWindowLimiter("wb_report", limit=5, window_seconds=3600, clock=fake_clock)
        await limiter.check(fake_redis, "ip:1")

        assert fake_redis.expiries == {"rl:wb_report:ip:1": 3601}


class TestClientIdentifier:
    def test_uses_socket_address(self):
        request = make_request("192.0.2.7", {"X-Forwarded-For": "203.0.113.9"})

        assert get_client_identifier(request) == "ip:192.0.2.7"

    def test_forwarded_for_when_trusted(self):
        request = make_request("10.0.0.1", {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

        assert get_client_identifier(request, trust_forwarded_for=True) == "ip:203.0.113.9"


class TestRateLimitDependency:
    """Tests for the route dependency wrapper."""

    @pytest.mark.asyncio
    async def test_raises_when_exhausted(self, fake_redis, test_settings):
        settings = test_settings.model_copy(update={"wb_report_rate_limit": 1})
        dependency = RateLimit("wb_report", "wb_report_rate_limit", "wb_report_rate_window_seconds")

        await dependency(make_request(), redis=fake_redis, settings=settings)
        with pytest.raises(RateLimitError) as exc_info:
            await dependency(make_request(), redis=fake_redis, settings=settings)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after >= 1

    @pytest.mark.asyncio
    async def test_identified_bucket_is_separate(self, fake_redis, test_settings):
        settings = test_settings.model_copy(update={"wb_report_rate_limit": 1})

        await report_rate_limit(make_request(), redis=fake_redis, settings=settings)
        await identified_report_rate_limit(make_request(), redis=fake_redis, settings=settings)

        assert set(fake_redis.zsets) == {"rl:wb_report:ip:10.0.0.1", "rl:wb_report_identified:ip:10.0.0.1"}

    @pytest.mark.asyncio
    async def test_disabled(self, fake_redis, test_settings):
        settings = test_settings.model_copy(
            update={"rate_limit_enabled": False, "wb_report_rate_limit": 1}
        )
        dependency = RateLimit("wb_report", "wb_report_rate_limit", "wb_report_rate_window_seconds")

        for _ in range(3):
            await dependency(make_request(), redis=fake_redis, settings=settings)

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_down(self, test_settings):
        class DownRedis:
            def pipeline(self):
                raise RedisConnectionError("connection refused")

        dependency = RateLimit("wb_report", "wb_report_rate_limit", "wb_report_rate_window_seconds")

        await dependency(make_request(), redis=DownRedis(), settings=test_settings)
