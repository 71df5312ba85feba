"""Store adapters for paste metadata and encrypted payloads."""

from .base import (
    MetadataStore,
    PasteMetadata,
    PayloadBackend,
    PayloadRecord,
    PayloadStore,
    StoreError,
    TTL_MISSING,
    TTL_NO_EXPIRY,
    ViewClaim,
)
from .factory import Stores, build_payload_store, build_stores
from .memory_payload import InMemoryPayloadStore
from .redis_payload import RedisPayloadStore
from .sql_metadata import SQLMetadataStore

__all__ = [
    # Interfaces
    "MetadataStore",
    "PayloadStore",
    "PayloadBackend",
    # Types
    "PasteMetadata",
    "PayloadRecord",
    "ViewClaim",
    "TTL_MISSING",
    "TTL_NO_EXPIRY",
    # Implementations
    "SQLMetadataStore",
    "RedisPayloadStore",
    "InMemoryPayloadStore",
    # Factory
    "Stores",
    "build_stores",
    "build_payload_store",
    # Errors
    "StoreError",
]
