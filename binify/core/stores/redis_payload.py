"""Redis payload store.

Payloads are stored as JSON strings under `<prefix><paste_id>` with a
native EX expiry. Requires Redis >= 6.2 for GETDEL.
"""

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from .base import PayloadRecord, PayloadStore, StoreError

logger = logging.getLogger(__name__)


class RedisPayloadStore(PayloadStore):
    """Payload store backed by a Redis client.

    The client is created once by the caller and owned by this store;
    close() releases its connection pool.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "paste:"):
        self._redis = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "paste:") -> "RedisPayloadStore":
        """Build a store with its own connection pool."""
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, paste_id: str) -> str:
        return f"{self._prefix}{paste_id}"

    def _error(self, operation: str, e: Exception) -> StoreError:
        return StoreError(
            f"Payload store {operation} failed: {e}",
            store="payload",
            operation=operation,
        )

    def _decode(self, paste_id: str, raw: str | None) -> PayloadRecord | None:
        """Parse a stored payload; corrupted values read as absent."""
        if raw is None:
            return None
        try:
            return PayloadRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupted payload for paste {paste_id}: {e}")
            return None

    async def put(
        self,
        paste_id: str,
        record: PayloadRecord,
        ttl_seconds: int | None = None,
    ) -> None:
        value = json.dumps(record.to_dict())
        # EX must be positive; a zero TTL still gets one second
        ex = max(1, ttl_seconds) if ttl_seconds is not None else None
        try:
            await self._redis.set(self._key(paste_id), value, ex=ex)
        except (RedisError, OSError) as e:
            raise self._error("put", e) from e

    async def get(self, paste_id: str) -> PayloadRecord | None:
        try:
            raw = await self._redis.get(self._key(paste_id))
        except (RedisError, OSError) as e:
            raise self._error("get", e) from e
        return self._decode(paste_id, raw)

    async def take(self, paste_id: str) -> PayloadRecord | None:
        try:
            raw = await self._redis.getdel(self._key(paste_id))
        except (RedisError, OSError) as e:
            raise self._error("take", e) from e
        return self._decode(paste_id, raw)

    async def delete(self, paste_id: str) -> bool:
        try:
            removed = await self._redis.delete(self._key(paste_id))
        except (RedisError, OSError) as e:
            raise self._error("delete", e) from e
        return removed > 0

    async def delete_many(self, paste_ids: list[str]) -> int:
        if not paste_ids:
            return 0
        try:
            return await self._redis.delete(*(self._key(p) for p in paste_ids))
        except (RedisError, OSError) as e:
            raise self._error("delete_many", e) from e

    async def remaining_ttl(self, paste_id: str) -> int:
        try:
            return int(await self._redis.ttl(self._key(paste_id)))
        except (RedisError, OSError) as e:
            raise self._error("remaining_ttl", e) from e

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise self._error("ping", e) from e

    async def close(self) -> None:
        await self._redis.aclose()
