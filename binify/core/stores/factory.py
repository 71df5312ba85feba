"""Store factory.

Builds the metadata and payload stores from settings. Called once at
process start (FastAPI lifespan or CLI); the resulting instances are
passed by reference to the lifecycle orchestrator.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from binify.config import Settings
from binify.database import close_db, create_engine, create_session_maker

from .base import MetadataStore, PayloadBackend, PayloadStore, StoreError
from .memory_payload import InMemoryPayloadStore
from .redis_payload import RedisPayloadStore
from .sql_metadata import SQLMetadataStore

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    """The pair of stores a process runs against."""
    engine: AsyncEngine
    metadata: MetadataStore
    payload: PayloadStore
    payload_backend: PayloadBackend

    async def close(self) -> None:
        """Close both stores and dispose the engine."""
        await self.payload.close()
        await self.metadata.close()
        await close_db(self.engine)


def build_payload_store(settings: Settings) -> tuple[PayloadStore, PayloadBackend]:
    """Create the payload store for the configured backend.

    Raises:
        StoreError: If no usable backend is configured
    """
    if settings.redis_url:
        store = RedisPayloadStore.from_url(
            settings.redis_url,
            key_prefix=settings.payload_key_prefix,
        )
        return store, PayloadBackend.REDIS

    if settings.dev_mode:
        logger.warning(
            "No REDIS_URL configured; using in-memory payload store. "
            "Payloads are per-process and lost on restart."
        )
        return InMemoryPayloadStore(), PayloadBackend.MEMORY

    raise StoreError("REDIS_URL is required outside dev mode", store="payload")


def build_stores(settings: Settings) -> Stores:
    """Create both stores from settings."""
    engine = create_engine(settings)
    metadata = SQLMetadataStore(create_session_maker(engine))
    payload, backend = build_payload_store(settings)
    logger.info(f"Created stores: metadata=sql payload={backend.value}")
    return Stores(
        engine=engine,
        metadata=metadata,
        payload=payload,
        payload_backend=backend,
    )
