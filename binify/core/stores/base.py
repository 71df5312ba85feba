"""Base store interfaces.

The lifecycle orchestrator talks to two independently-failing stores:

- A durable metadata store holding the authoritative lifecycle record
  (expiry rules, view counts, deletion token).
- A volatile payload store with native per-key TTL holding the opaque
  ciphertext.

Neither store offers a transaction spanning both. Implementations must
raise StoreError for any backend failure so the orchestrator can decide
whether to compensate, swallow, or surface it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class PayloadBackend(str, Enum):
    """Supported payload store backends."""
    REDIS = "redis"      # Production - native TTL, shared across workers
    MEMORY = "memory"    # Development only - per-process dict


# Sentinels returned by PayloadStore.remaining_ttl, mirroring Redis TTL semantics
TTL_NO_EXPIRY = -1
TTL_MISSING = -2


@dataclass
class PayloadRecord:
    """Opaque encrypted payload as produced by the client.

    All fields are URL-safe base64 text. The server never decodes them.
    """
    ciphertext: str
    iv: str
    auth_tag: str
    salt: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Serialize using the client's wire field names."""
        data = {
            "ciphertext": self.ciphertext,
            "iv": self.iv,
            "authTag": self.auth_tag,
        }
        if self.salt is not None:
            data["salt"] = self.salt
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PayloadRecord":
        """Deserialize from the client's wire field names.

        Raises:
            KeyError: If a required field is absent
        """
        return cls(
            ciphertext=data["ciphertext"],
            iv=data["iv"],
            auth_tag=data["authTag"],
            salt=data.get("salt"),
        )


@dataclass
class PasteMetadata:
    """Snapshot of a paste's lifecycle record."""
    id: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None
    max_views: int | None = None
    view_count: int = 0
    burned: bool = False
    has_password: bool = False
    deletion_token: str | None = None
    display_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ViewClaim:
    """Outcome of atomically recording one view.

    Attributes:
        view_count: View count after this view
        burned: True if this view consumed the last permitted read
        max_views: View limit at the time of the claim
    """
    view_count: int
    burned: bool
    max_views: int | None = None


class MetadataStore(ABC):
    """Abstract durable store for paste metadata rows."""

    @abstractmethod
    async def create(self, paste: PasteMetadata) -> None:
        """Insert a new metadata row.

        Raises:
            StoreError: If the write fails (including id collision)
        """
        pass

    @abstractmethod
    async def get(self, paste_id: str) -> PasteMetadata | None:
        """Get a metadata row, or None if it does not exist."""
        pass

    @abstractmethod
    async def record_view(self, paste_id: str, now: datetime) -> ViewClaim | None:
        """Atomically count one view and burn on reaching the limit.

        Increments view_count and sets burned when the new count reaches
        max_views, in a single conditional write. Only rows that are still
        readable at `now` (not burned, under the view limit, not past
        expires_at) are claimed.

        Returns:
            The claim, or None if no readable row matched (another reader
            took the last view, or the row is gone)
        """
        pass

    @abstractmethod
    async def relocate(self, old_id: str, new_id: str, now: datetime) -> bool:
        """Move a row to a new id in place, keeping all lifecycle state.

        Returns:
            True if the row was moved, False if old_id did not exist
        """
        pass

    @abstractmethod
    async def delete(self, paste_id: str) -> bool:
        """Delete a row. Returns True if a row was removed."""
        pass

    @abstractmethod
    async def list_expired_ids(self, now: datetime, limit: int) -> list[str]:
        """List ids of rows matching the expiry predicate at `now`."""
        pass

    async def ping(self) -> None:
        """Verify the store is reachable.

        Raises:
            StoreError: If the store does not respond
        """
        pass

    async def close(self) -> None:
        """Close any open connections."""
        pass


class PayloadStore(ABC):
    """Abstract volatile keyed store with native per-key TTL."""

    @abstractmethod
    async def put(
        self,
        paste_id: str,
        record: PayloadRecord,
        ttl_seconds: int | None = None,
    ) -> None:
        """Store a payload, replacing any existing one.

        Args:
            paste_id: Paste id
            record: Encrypted payload
            ttl_seconds: Seconds until eviction, or None for no expiry
        """
        pass

    @abstractmethod
    async def get(self, paste_id: str) -> PayloadRecord | None:
        """Get a payload, or None if absent or evicted."""
        pass

    @abstractmethod
    async def take(self, paste_id: str) -> PayloadRecord | None:
        """Delete a payload and return what was stored, atomically.

        Returns:
            The deleted payload, or None if it was absent or evicted
        """
        pass

    @abstractmethod
    async def delete(self, paste_id: str) -> bool:
        """Delete a payload. Idempotent; returns True if a key was removed."""
        pass

    @abstractmethod
    async def delete_many(self, paste_ids: list[str]) -> int:
        """Delete several payloads. Returns the number removed."""
        pass

    @abstractmethod
    async def remaining_ttl(self, paste_id: str) -> int:
        """Get remaining TTL in seconds.

        Returns:
            Seconds left, TTL_NO_EXPIRY if the key never expires, or
            TTL_MISSING if the key does not exist
        """
        pass

    async def ping(self) -> None:
        """Verify the store is reachable.

        Raises:
            StoreError: If the store does not respond
        """
        pass

    async def close(self) -> None:
        """Close any open connections."""
        pass


class StoreError(Exception):
    """Base exception for store operations."""

    def __init__(self, message: str, store: str = "", operation: str = ""):
        super().__init__(message)
        self.store = store
        self.operation = operation
