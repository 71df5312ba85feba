"""Rate limiting for paste creation.

Fixed-window counters keyed by client address, with support for:
- In-memory storage (development/single instance)
- Redis storage (production/distributed)

Each window is a counter created with INCR and given an expiry on its
first hit; once the count passes the limit the client is rejected until
the window key expires.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    """Rate limit exceeded."""

    def __init__(self, message: str, limit: int, retry_after: int):
        super().__init__(message)
        self.message = message
        self.limit = limit
        self.retry_after = retry_after


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # Seconds until the window resets (0 if allowed)

    @property
    def headers(self) -> dict[str, str]:
        """Generate standard rate limit headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitBackend(ABC):
    """Abstract backend for fixed-window counters."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Count one request against a window.

        Args:
            key: Unique identifier for the window
            window_seconds: Window length in seconds

        Returns:
            (count including this request, seconds until the window resets)
        """
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Reset the window for a key."""
        pass

    async def close(self) -> None:
        pass


class InMemoryBackend(RateLimitBackend):
    """In-memory fixed-window storage.

    Suitable for development and single-instance deployments.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        async with self._lock:
            now = self._clock()
            count, reset_at = self._windows.get(key, (0, 0.0))

            if now >= reset_at:
                count, reset_at = 0, now + window_seconds

            count += 1
            self._windows[key] = (count, reset_at)
            return count, max(1, math.ceil(reset_at - now))

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)


class RedisBackend(RateLimitBackend):
    """Redis-based fixed-window storage for distributed deployments."""

    def __init__(self, client, key_prefix: str = "ratelimit:"):
        self._redis = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "ratelimit:") -> "RedisBackend":
        import redis.asyncio as redis

        return cls(
            redis.from_url(redis_url, encoding="utf-8", decode_responses=True),
            key_prefix=key_prefix,
        )

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        full_key = f"{self._prefix}{key}"
        count = int(await self._redis.incr(full_key))
        if count == 1:
            await self._redis.expire(full_key, window_seconds)
            return count, window_seconds

        ttl = int(await self._redis.ttl(full_key))
        if ttl < 0:
            # Counter lost its expiry; restart the window
            await self._redis.expire(full_key, window_seconds)
            ttl = window_seconds
        return count, max(1, ttl)

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"{self._prefix}{key}")

    async def close(self) -> None:
        await self._redis.aclose()


class RateLimiter:
    """Fixed-window rate limiter for paste creation."""

    def __init__(
        self,
        backend: Optional[RateLimitBackend] = None,
        limit: int = 10,
        window_seconds: int = 3600,
        enabled: bool = True,
    ):
        self._backend = backend or InMemoryBackend()
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled

    async def check(self, client_id: str) -> RateLimitResult:
        """Count a request for a client and report whether it is allowed.

        Backend failures fail open.
        """
        if not self.enabled:
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                retry_after=0,
            )

        try:
            count, reset_in = await self._backend.hit(f"create:{client_id}", self.window_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"Rate limit backend unavailable, allowing request: {e}")
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                retry_after=0,
            )

        allowed = count <= self.limit
        return RateLimitResult(
            allowed=allowed,
            limit=self.limit,
            remaining=self.limit - count,
            retry_after=0 if allowed else reset_in,
        )

    async def enforce(self, client_id: str) -> RateLimitResult:
        """Like check(), but raise when the limit is exceeded.

        Raises:
            RateLimitExceeded: If the client is over the limit
        """
        result = await self.check(client_id)
        if not result.allowed:
            raise RateLimitExceeded(
                "Rate limit exceeded. Please try again later.",
                limit=result.limit,
                retry_after=result.retry_after,
            )
        return result

    async def reset(self, client_id: str) -> None:
        """Reset the window for a client."""
        await self._backend.reset(f"create:{client_id}")

    async def close(self) -> None:
        await self._backend.close()


def build_rate_limiter(settings) -> RateLimiter:
    """Create the rate limiter from settings.

    Uses Redis if configured, otherwise in-memory.
    """
    if settings.redis_url:
        backend: RateLimitBackend = RedisBackend.from_url(settings.redis_url)
    else:
        backend = InMemoryBackend()
    return RateLimiter(
        backend=backend,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        enabled=settings.rate_limit_enabled,
    )


def client_address(headers, peer: Optional[str]) -> str:
    """Resolve the client address used as the rate limit key.

    Prefers the first X-Forwarded-For hop, then X-Real-IP, then the peer.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer or "unknown"
