"""Per-tenant cookie consent provider for a domain."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pagestore.db import Base, UTCDateTime, utcnow


class DomainConsentConfig(Base):
    __tablename__ = "domain_consent_configs"
    __table_args__ = (UniqueConstraint("domain", "tenant_id", name="uq_domain_consent_tenant"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Lowercase host without www."
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    cookie_consent_provider: Mapped[str] = mapped_column(String(32), default="none", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<DomainConsentConfig domain={self.domain!r} tenant={self.tenant_id!r}>"
