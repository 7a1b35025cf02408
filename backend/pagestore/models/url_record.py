"""UrlRecord model — one row per normalised URL, shared across tenants."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pagestore.db import Base, UTCDateTime, utcnow


class UrlRecord(Base):
    """Index entry pointing at the newest snapshot of a URL."""

    __tablename__ = "url_records"

    url_hash: Mapped[str] = mapped_column(String(16), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    latest_snapshot_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    latest_fetched_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, index=True
    )
    snapshot_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cookie_consent_override: Mapped[str | None] = mapped_column(
        String(32), nullable=True, comment="null = inherit from domain config"
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UrlRecord hash={self.url_hash} url={self.url[:60]!r} count={self.snapshot_count}>"

class UrlRecordTenant(Base):
    """Tenants that have ever requested a URL (the access set)."""

    __tablename__ = "url_record_tenants"

    url_hash: Mapped[str] = mapped_column(
        String(16), ForeignKey("url_records.url_hash", ondelete="CASCADE"), primary_key=True
    )
    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    granted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
