"""Tests for rate limiting functionality."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from binify.config import Settings
from binify.core.rate_limiter import (
    InMemoryBackend,
    RateLimiter,
    RateLimitExceeded,
    RateLimitResult,
    RedisBackend,
    build_rate_limiter,
    client_address,
)

from conftest import FakeClock


class TestInMemoryBackend:
    """Tests for the in-memory fixed-window backend."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def backend(self, clock):
        return InMemoryBackend(clock=clock.time)

    @pytest.mark.asyncio
    async def test_counts_within_window(self, backend):
        """Hits in one window are counted."""
        assert await backend.hit("k", 60) == (1, 60)
        assert (await backend.hit("k", 60))[0] == 2
        assert (await backend.hit("k", 60))[0] == 3

    @pytest.mark.asyncio
    async def test_window_resets(self, backend, clock):
        """The count restarts once the window has passed."""
        await backend.hit("k", 60)
        await backend.hit("k", 60)

        clock.advance(seconds=30)
        count, reset_in = await backend.hit("k", 60)
        assert (count, reset_in) == (3, 30)

        clock.advance(seconds=31)
        assert (await backend.hit("k", 60))[0] == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, backend):
        await backend.hit("a", 60)
        await backend.hit("a", 60)

        assert (await backend.hit("b", 60))[0] == 1

    @pytest.mark.asyncio
    async def test_reset(self, backend):
        await backend.hit("k", 60)
        await backend.reset("k")

        assert (await backend.hit("k", 60))[0] == 1


class TestRedisBackend:
    """Tests for the Redis backend against a mocked client."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_first_hit_sets_expiry(self, client):
        """The first hit in a window sets the window's expiry."""
        client.incr.return_value = 1
        backend = RedisBackend(client)

        assert await backend.hit("k", 3600) == (1, 3600)
        client.incr.assert_awaited_once_with("ratelimit:k")
        client.expire.assert_awaited_once_with("ratelimit:k", 3600)

    @pytest.mark.asyncio
    async def test_later_hits_read_ttl(self, client):
        client.incr.return_value = 4
        client.ttl.return_value = 120
        backend = RedisBackend(client)

        assert await backend.hit("k", 3600) == (4, 120)
        client.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_expiry_is_restored(self, client):
        """A counter without an expiry gets a fresh window."""
        client.incr.return_value = 4
        client.ttl.return_value = -1
        backend = RedisBackend(client)

        assert await backend.hit("k", 3600) == (4, 3600)
        client.expire.assert_awaited_once_with("ratelimit:k", 3600)


class TestRateLimiter:
    """Tests for the rate limiter."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        limiter = RateLimiter(InMemoryBackend(), limit=3, window_seconds=60)

        results = [await limiter.check("1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results[:3]] == [2, 1, 0]
        assert results[3].retry_after > 0

    @pytest.mark.asyncio
    async def test_enforce_raises(self):
        limiter = RateLimiter(InMemoryBackend(), limit=1, window_seconds=60)
        await limiter.enforce("1.2.3.4")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.enforce("1.2.3.4")

        assert exc_info.value.limit == 1
        assert 0 < exc_info.value.retry_after <= 60

    @pytest.mark.asyncio
    async def test_disabled(self):
        limiter = RateLimiter(InMemoryBackend(), limit=1, window_seconds=60, enabled=False)

        for _ in range(5):
            assert (await limiter.check("1.2.3.4")).allowed is True

    @pytest.mark.asyncio
    async def test_fails_open_on_redis_error(self):
        """A broken backend never blocks requests."""
        client = AsyncMock()
        client.incr.side_effect = RedisConnectionError("connection refused")
        limiter = RateLimiter(RedisBackend(client), limit=1, window_seconds=60)

        for _ in range(3):
            assert (await limiter.check("1.2.3.4")).allowed is True

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = RateLimiter(InMemoryBackend(), limit=1, window_seconds=60)
        await limiter.check("1.2.3.4")
        await limiter.reset("1.2.3.4")

        assert (await limiter.check("1.2.3.4")).allowed is True

    def test_headers(self):
        blocked = RateLimitResult(allowed=False, limit=10, remaining=-1, retry_after=30)
        allowed = RateLimitResult(allowed=True, limit=10, remaining=9, retry_after=0)

        assert blocked.headers == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "0",
            "Retry-After": "30",
        }
        assert "Retry-After" not in allowed.headers

    def test_build_from_settings(self):
        settings = Settings(
            dev_mode=True,
            redis_url=None,
            rate_limit_requests=5,
            rate_limit_window_seconds=120,
        )

        limiter = build_rate_limiter(settings)

        assert limiter.limit == 5
        assert limiter.window_seconds == 120


class TestClientAddress:
    """Tests for resolving the rate limit key."""

    def test_forwarded_for_first_hop(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.2"}
        assert client_address(headers, "127.0.0.1") == "203.0.113.7"

    def test_real_ip(self):
        assert client_address({"x-real-ip": "198.51.100.3"}, "127.0.0.1") == "198.51.100.3"

    def test_peer(self):
        assert client_address({}, "127.0.0.1") == "127.0.0.1"

    def test_unknown(self):
        assert client_address({}, None) == "unknown"
