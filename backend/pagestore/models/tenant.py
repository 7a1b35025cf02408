"""Tenant model — per-tenant cache settings."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pagestore.db import Base, UTCDateTime, utcnow


class Tenant(Base):
    """Agency client whose users request pages."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    page_freshness_hours: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Max snapshot age before refetch; null = default"
    )
    max_snapshots_per_url: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Retention window; null = default"
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id!r} name={self.name!r}>"
