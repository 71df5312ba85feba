"""SQLAlchemy metadata store.

Works against any async SQLAlchemy dialect with UPDATE ... RETURNING
support (PostgreSQL, SQLite >= 3.35).
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy import and_, case, delete, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binify.models import Paste

from .base import MetadataStore, PasteMetadata, StoreError, ViewClaim

logger = logging.getLogger(__name__)


def _to_metadata(row: Paste) -> PasteMetadata:
    return PasteMetadata(
        id=row.id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        expires_at=row.expires_at,
        max_views=row.max_views,
        view_count=row.view_count,
        burned=bool(row.burned),
        has_password=bool(row.has_password),
        deletion_token=row.deletion_token,
        display_metadata=row.display_metadata or {},
    )


def expired_clause(now: datetime):
    """SQL form of the expiry predicate."""
    return or_(
        Paste.burned.is_(True),
        and_(Paste.expires_at.is_not(None), Paste.expires_at < now),
        and_(Paste.max_views.is_not(None), Paste.view_count >= Paste.max_views),
    )


class SQLMetadataStore(MetadataStore):
    """Metadata store backed by the `pastes` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session and translate driver errors into StoreError."""
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreError(
                f"Metadata store {operation} failed: {e}",
                store="metadata",
                operation=operation,
            ) from e
        except OSError as e:
            raise StoreError(
                f"Metadata store unreachable during {operation}: {e}",
                store="metadata",
                operation=operation,
            ) from e

    async def create(self, paste: PasteMetadata) -> None:
        async with self._session("create") as session:
            session.add(
                Paste(
                    id=paste.id,
                    created_at=paste.created_at,
                    updated_at=paste.updated_at,
                    expires_at=paste.expires_at,
                    max_views=paste.max_views,
                    view_count=paste.view_count,
                    burned=paste.burned,
                    has_password=paste.has_password,
                    deletion_token=paste.deletion_token,
                    display_metadata=paste.display_metadata or None,
                )
            )
            await session.commit()

    async def get(self, paste_id: str) -> PasteMetadata | None:
        async with self._session("get") as session:
            row = await session.get(Paste, paste_id)
            if row is None:
                return None
            return _to_metadata(row)

    async def record_view(self, paste_id: str, now: datetime) -> ViewClaim | None:
        # SET expressions see pre-update values on every supported dialect
        crosses_limit = and_(
            Paste.max_views.is_not(None),
            Paste.view_count + 1 >= Paste.max_views,
        )
        stmt = (
            update(Paste)
            .where(
                Paste.id == paste_id,
                Paste.burned.is_(False),
                or_(Paste.max_views.is_(None), Paste.view_count < Paste.max_views),
                or_(Paste.expires_at.is_(None), Paste.expires_at >= now),
            )
            .values(
                view_count=Paste.view_count + 1,
                burned=case((crosses_limit, True), else_=False),
                updated_at=now,
            )
            .returning(Paste.view_count, Paste.burned, Paste.max_views)
            .execution_options(synchronize_session=False)
        )
        async with self._session("record_view") as session:
            result = await session.execute(stmt)
            row = result.one_or_none()
            await session.commit()

        if row is None:
            return None
        return ViewClaim(view_count=row[0], burned=bool(row[1]), max_views=row[2])

    async def relocate(self, old_id: str, new_id: str, now: datetime) -> bool:
        stmt = (
            update(Paste)
            .where(Paste.id == old_id)
            .values(id=new_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session("relocate") as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def delete(self, paste_id: str) -> bool:
        stmt = (
            delete(Paste)
            .where(Paste.id == paste_id)
            .execution_options(synchronize_session=False)
        )
        async with self._session("delete") as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0

    async def list_expired_ids(self, now: datetime, limit: int) -> list[str]:
        stmt = select(Paste.id).where(expired_clause(now)).limit(limit)
        async with self._session("list_expired_ids") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def ping(self) -> None:
        async with self._session("ping") as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
