"""Snapshot model — one fetch result, immutable after creation."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pagestore.db import Base, UTCDateTime


class Snapshot(Base):
    """Timestamped HTML (+ optional screenshots) for a URL."""

    __tablename__ = "page_snapshots"
    __table_args__ = (
        Index("ix_page_snapshots_hash_fetched", "url_hash", "fetched_at"),
        Index("ix_page_snapshots_tenant_fetched", "tenant_id", "fetched_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    url_hash: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    fetched_by: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tool_id: Mapped[str] = mapped_column(String(64), nullable=False)

    blob_url: Mapped[str] = mapped_column(Text, nullable=False, comment="HTML body location")
    content_size: Mapped[int] = mapped_column(Integer, nullable=False)
    http_status: Mapped[int] = mapped_column(Integer, nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    screenshot_desktop_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    screenshot_mobile_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    screenshot_desktop_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    screenshot_mobile_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    render_method: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="fetch | scraping-tiered"
    )
    js_rendered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    render_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolved_url: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Only set when a redirect occurred"
    )
    proxy_tier_used: Mapped[str | None] = mapped_column(String(16), nullable=True)

    def blob_urls(self) -> list[str]:
        """Every blob owned by this snapshot, HTML first."""
        return [
            u
            for u in (self.blob_url, self.screenshot_desktop_url, self.screenshot_mobile_url)
            if u
        ]

    def __repr__(self) -> str:
        return f"<Snapshot id={self.id} url={self.url[:60]!r}>"
