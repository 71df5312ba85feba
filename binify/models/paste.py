"""Paste metadata model, the authoritative lifecycle record."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from binify.database import Base, JSONType, UTCDateTime


class Paste(Base):
    """Lifecycle metadata for one paste.

    The ciphertext itself lives in the payload store under the same id.
    This row decides whether the paste is still readable; the payload is
    expendable and may vanish first (TTL eviction, burn, revoke).
    """

    __tablename__ = "pastes"
    __table_args__ = (
        Index("idx_expires_at", "expires_at"),
        Index("idx_burned", "burned"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    max_views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    burned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_password: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deletion_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    display_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Paste id={self.id} views={self.view_count}/{self.max_views} burned={self.burned}>"
