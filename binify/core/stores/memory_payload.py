"""In-memory payload store for development.

WARNING: This store is for DEVELOPMENT and TESTS ONLY.
Payloads live in a per-process dict, so multiple workers do not share
them and everything is lost on restart. Use Redis in production.

TTL is enforced lazily on access, like Redis passive expiry.
"""

import asyncio
import math
import time
from typing import Callable

from .base import (
    PayloadRecord,
    PayloadStore,
    TTL_MISSING,
    TTL_NO_EXPIRY,
)


class InMemoryPayloadStore(PayloadStore):
    """Dict-backed payload store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            clock: Returns the current time in seconds; injectable for tests
        """
        self._clock = clock
        self._entries: dict[str, tuple[PayloadRecord, float | None]] = {}
        self._lock = asyncio.Lock()

    def _live(self, paste_id: str) -> tuple[PayloadRecord, float | None] | None:
        """Return the entry if present and unexpired, evicting it otherwise."""
        entry = self._entries.get(paste_id)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() > expires_at:
            del self._entries[paste_id]
            return None
        return entry

    async def put(
        self,
        paste_id: str,
        record: PayloadRecord,
        ttl_seconds: int | None = None,
    ) -> None:
        async with self._lock:
            expires_at = None
            if ttl_seconds is not None:
                expires_at = self._clock() + max(1, ttl_seconds)
            self._entries[paste_id] = (record, expires_at)

    async def get(self, paste_id: str) -> PayloadRecord | None:
        async with self._lock:
            entry = self._live(paste_id)
            return entry[0] if entry else None

    async def take(self, paste_id: str) -> PayloadRecord | None:
        async with self._lock:
            if self._live(paste_id) is None:
                return None
            record, _ = self._entries.pop(paste_id)
            return record

    async def delete(self, paste_id: str) -> bool:
        async with self._lock:
            if self._live(paste_id) is None:
                return False
            del self._entries[paste_id]
            return True

    async def delete_many(self, paste_ids: list[str]) -> int:
        async with self._lock:
            removed = 0
            for paste_id in paste_ids:
                if self._live(paste_id) is not None:
                    del self._entries[paste_id]
                    removed += 1
            return removed

    async def remaining_ttl(self, paste_id: str) -> int:
        async with self._lock:
            entry = self._live(paste_id)
            if entry is None:
                return TTL_MISSING
            _, expires_at = entry
            if expires_at is None:
                return TTL_NO_EXPIRY
            return max(0, math.ceil(expires_at - self._clock()))

    def __len__(self) -> int:
        return len(self._entries)
