"""Test configuration and fixtures."""

import os
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

# Set up test environment variables BEFORE importing app modules
os.environ.setdefault("DEV_MODE", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from binify.config import Settings
from binify.core.lifecycle import PasteDraft, PasteLifecycle
from binify.core.expiration import ExpirationPolicy
from binify.core.rate_limiter import InMemoryBackend, RateLimiter
from binify.core.stores import (
    InMemoryPayloadStore,
    PayloadBackend,
    PayloadRecord,
    SQLMetadataStore,
    StoreError,
    Stores,
)
from binify.database import Base, create_session_maker


class FakeClock:
    """Controllable clock shared by the orchestrator and the payload store."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.current.timestamp()

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def injected_failure(store: str, operation: str) -> StoreError:
    return StoreError(f"injected {operation} failure", store=store, operation=operation)


class FlakyPayloadStore(InMemoryPayloadStore):
    """In-memory payload store that fails the operations named in fail_on."""

    def __init__(self, clock=None):
        super().__init__(clock=clock.time if clock else time.time)
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise injected_failure("payload", operation)

    async def put(self, paste_id, record, ttl_seconds=None):
        self._check("put")
        return await super().put(paste_id, record, ttl_seconds)

    async def get(self, paste_id):
        self._check("get")
        return await super().get(paste_id)

    async def take(self, paste_id):
        self._check("take")
        return await super().take(paste_id)

    async def delete(self, paste_id):
        self._check("delete")
        return await super().delete(paste_id)

    async def delete_many(self, paste_ids):
        self._check("delete_many")
        return await super().delete_many(paste_ids)

    async def remaining_ttl(self, paste_id):
        self._check("remaining_ttl")
        return await super().remaining_ttl(paste_id)

    async def ping(self):
        self._check("ping")


class FlakySQLMetadataStore(SQLMetadataStore):
    """SQL metadata store that fails the operations named in fail_on."""

    def __init__(self, session_maker):
        super().__init__(session_maker)
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise injected_failure("metadata", operation)

    async def create(self, paste):
        self._check("create")
        return await super().create(paste)

    async def get(self, paste_id):
        self._check("get")
        return await super().get(paste_id)

    async def record_view(self, paste_id, now):
        self._check("record_view")
        return await super().record_view(paste_id, now)

    async def relocate(self, old_id, new_id, now):
        self._check("relocate")
        return await super().relocate(old_id, new_id, now)

    async def delete(self, paste_id):
        self._check("delete")
        return await super().delete(paste_id)

    async def list_expired_ids(self, now, limit):
        self._check("list_expired_ids")
        return await super().list_expired_ids(now, limit)

    async def ping(self):
        self._check("ping")
        return await super().ping()


def make_payload(salt: str | None = None) -> PayloadRecord:
    """A well-formed opaque payload."""
    return PayloadRecord(
        ciphertext="q83vEjRWeJA-_x2zS0xCyw",
        iv="AAECAwQFBgcICQoL",
        auth_tag="3q2-7wABAgMEBQYHCAkKCw",
        salt=salt,
    )


def make_draft(policy: ExpirationPolicy | None = None, **kwargs) -> PasteDraft:
    return PasteDraft(
        payload=kwargs.pop("payload", make_payload()),
        policy=policy or ExpirationPolicy.never(),
        **kwargs,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pastes.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def metadata_store(engine) -> FlakySQLMetadataStore:
    return FlakySQLMetadataStore(create_session_maker(engine))


@pytest.fixture
def payload_store(clock) -> FlakyPayloadStore:
    return FlakyPayloadStore(clock=clock)


@pytest.fixture
def lifecycle(metadata_store, payload_store, clock) -> PasteLifecycle:
    return PasteLifecycle(metadata_store, payload_store, clock=clock.now)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        dev_mode=True,
        redis_url=None,
        database_url="sqlite+aiosqlite:///:memory:",
        max_paste_bytes=4096,
        init_secret="init-secret-for-tests",
    )


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryBackend(), limit=3, window_seconds=60)


@pytest.fixture
def app(settings, engine, metadata_store, payload_store, rate_limiter):
    """Application wired to the test stores."""
    from binify.main import create_app

    stores = Stores(
        engine=engine,
        metadata=metadata_store,
        payload=payload_store,
        payload_backend=PayloadBackend.MEMORY,
    )
    return create_app(settings=settings, stores=stores, rate_limiter=rate_limiter)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
