"""Persistence for url records, snapshots, consent configs and tenants.

Every write to the shared `url_records` row is a single atomic statement
(increment, conditional set, insert-if-absent) so concurrent fetches of the
same URL never lose an update through read-modify-write.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pagestore.db import utcnow
from pagestore.models.domain_consent import DomainConsentConfig
from pagestore.models.snapshot import Snapshot
from pagestore.models.tenant import Tenant
from pagestore.models.url_record import UrlRecord, UrlRecordTenant

logger = logging.getLogger(__name__)


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Unsupported database dialect: {dialect_name}")
    return insert


class PageRepository:
    """Async data access over one SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._insert = _insert_for(engine.dialect.name)

    def session(self) -> AsyncSession:
        return self._session_factory()

    async def _insert_ignore(self, session: AsyncSession, model: type, values: dict[str, Any]) -> None:
        stmt = self._insert(model).values(**values).on_conflict_do_nothing()
        await session.execute(stmt)

    # ── Tenants ──

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        async with self.session() as session:
            return await session.get(Tenant, tenant_id)

    async def upsert_tenant(
        self,
        tenant_id: str,
        name: str,
        *,
        page_freshness_hours: int | None = None,
        max_snapshots_per_url: int | None = None,
    ) -> Tenant:
        for field_name, value in (
            ("page_freshness_hours", page_freshness_hours),
            ("max_snapshots_per_url", max_snapshots_per_url),
        ):
            if value is not None and value < 1:
                raise ValueError(f"{field_name} must be at least 1, got {value}")
        async with self.session() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                tenant = Tenant(id=tenant_id, name=name)
                session.add(tenant)
            tenant.name = name
            tenant.page_freshness_hours = page_freshness_hours
            tenant.max_snapshots_per_url = max_snapshots_per_url
            await session.commit()
            return tenant

    # ── Url records ──

    async def get_url_record(self, url_hash: str) -> UrlRecord | None:
        async with self.session() as session:
            return await session.get(UrlRecord, url_hash)

    async def get_latest_snapshot_id(self, url_hash: str) -> int | None:
        async with self.session() as session:
            return (
                await session.execute(
                    select(UrlRecord.latest_snapshot_id).where(UrlRecord.url_hash == url_hash)
                )
            ).scalar()

    async def record_fetch(self, *, url_hash: str, url: str, snapshot: Snapshot, tenant_id: str) -> None:
        """Point the url record at `snapshot`, bump its count and grant `tenant_id` access."""
        async with self.session() as session:
            await self._insert_ignore(
                session,
                UrlRecord,
                {
                    "url_hash": url_hash,
                    "url": url,
                    "snapshot_count": 0,
                    "created_at": utcnow(),
                    "updated_at": utcnow(),
                },
            )
            await session.execute(
                update(UrlRecord)
                .where(UrlRecord.url_hash == url_hash)
                .values(
                    latest_snapshot_id=snapshot.id,
                    latest_fetched_at=snapshot.fetched_at,
                    snapshot_count=UrlRecord.snapshot_count + 1,
                    updated_at=utcnow(),
                )
            )
            await self._insert_ignore(
                session,
                UrlRecordTenant,
                {"url_hash": url_hash, "tenant_id": tenant_id, "granted_at": utcnow()},
            )
            await session.commit()

    async def add_tenant_access(self, url_hash: str, tenant_id: str) -> None:
        async with self.session() as session:
            await self._insert_ignore(
                session,
                UrlRecordTenant,
                {"url_hash": url_hash, "tenant_id": tenant_id, "granted_at": utcnow()},
            )
            await session.commit()

    async def tenant_has_access(self, url_hash: str, tenant_id: str) -> bool:
        async with self.session() as session:
            found = (
                await session.execute(
                    select(UrlRecordTenant.url_hash)
                    .where(UrlRecordTenant.url_hash == url_hash, UrlRecordTenant.tenant_id == tenant_id)
                    .limit(1)
                )
            ).scalar()
            return found is not None

    async def tenants_with_access(self, url_hash: str) -> list[str]:
        async with self.session() as session:
            rows = (
                await session.execute(
                    select(UrlRecordTenant.tenant_id)
                    .where(UrlRecordTenant.url_hash == url_hash)
                    .order_by(UrlRecordTenant.tenant_id)
                )
            ).scalars().all()
            return list(rows)

    async def remove_tenant_access(self, url_hash: str, tenant_id: str) -> None:
        async with self.session() as session:
            await session.execute(
                delete(UrlRecordTenant).where(
                    UrlRecordTenant.url_hash == url_hash, UrlRecordTenant.tenant_id == tenant_id
                )
            )
            await session.commit()

    async def list_tenant_url_records(self, tenant_id: str) -> Sequence[UrlRecord]:
        async with self.session() as session:
            return (
                await session.execute(
                    select(UrlRecord)
                    .join(UrlRecordTenant, UrlRecordTenant.url_hash == UrlRecord.url_hash)
                    .where(UrlRecordTenant.tenant_id == tenant_id)
                    .order_by(desc(UrlRecord.latest_fetched_at))
                )
            ).scalars().all()

    async def delete_url_record(self, url_hash: str) -> None:
        async with self.session() as session:
            await session.execute(delete(UrlRecordTenant).where(UrlRecordTenant.url_hash == url_hash))
            await session.execute(delete(UrlRecord).where(UrlRecord.url_hash == url_hash))
            await session.commit()

    async def decrement_snapshot_count(self, url_hash: str, by: int) -> None:
        if by <= 0:
            return
        async with self.session() as session:
            await session.execute(
                update(UrlRecord)
                .where(UrlRecord.url_hash == url_hash)
                .values(snapshot_count=UrlRecord.snapshot_count - by, updated_at=utcnow())
            )
            await session.commit()

    async def set_url_consent_override(self, url_hash: str, provider: str | None) -> bool:
        async with self.session() as session:
            result = await session.execute(
                update(UrlRecord)
                .where(UrlRecord.url_hash == url_hash)
                .values(cookie_consent_override=provider, updated_at=utcnow())
            )
            await session.commit()
            return bool(result.rowcount)

    # ── Snapshots ──

    async def create_snapshot(self, **fields: Any) -> Snapshot:
        async with self.session() as session:
            snapshot = Snapshot(**fields)
            session.add(snapshot)
            await session.commit()
            return snapshot

    async def get_snapshot(self, snapshot_id: int) -> Snapshot | None:
        async with self.session() as session:
            return await session.get(Snapshot, snapshot_id)

    async def list_snapshots(self, url_hash: str, limit: int | None = None) -> Sequence[Snapshot]:
        """Snapshots for `url_hash`, newest first."""
        stmt = (
            select(Snapshot)
            .where(Snapshot.url_hash == url_hash)
            .order_by(desc(Snapshot.fetched_at), desc(Snapshot.id))
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session() as session:
            return (await session.execute(stmt)).scalars().all()

    async def delete_snapshot(self, snapshot_id: int) -> None:
        async with self.session() as session:
            await session.execute(delete(Snapshot).where(Snapshot.id == snapshot_id))
            await session.commit()

    # ── Domain consent configs ──

    async def get_domain_config(self, domain: str, tenant_id: str) -> DomainConsentConfig | None:
        async with self.session() as session:
            return (
                await session.execute(
                    select(DomainConsentConfig).where(
                        DomainConsentConfig.domain == domain,
                        DomainConsentConfig.tenant_id == tenant_id,
                    )
                )
            ).scalar()

    async def list_domain_configs(self, tenant_id: str) -> Sequence[DomainConsentConfig]:
        async with self.session() as session:
            return (
                await session.execute(
                    select(DomainConsentConfig)
                    .where(DomainConsentConfig.tenant_id == tenant_id)
                    .order_by(DomainConsentConfig.domain)
                )
            ).scalars().all()

    async def upsert_domain_config(self, domain: str, tenant_id: str, provider: str) -> DomainConsentConfig:
        async with self.session() as session:
            config = (
                await session.execute(
                    select(DomainConsentConfig).where(
                        DomainConsentConfig.domain == domain,
                        DomainConsentConfig.tenant_id == tenant_id,
                    )
                )
            ).scalar()
            if config is None:
                config = DomainConsentConfig(domain=domain, tenant_id=tenant_id)
                session.add(config)
            config.cookie_consent_provider = provider
            await session.commit()
            return config

    async def delete_domain_config(self, domain: str, tenant_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(
                delete(DomainConsentConfig).where(
                    DomainConsentConfig.domain == domain,
                    DomainConsentConfig.tenant_id == tenant_id,
                )
            )
            await session.commit()
            return bool(result.rowcount)

    # ── Credit usage ──

    async def sum_credits(self, *, since: datetime | None = None) -> int:
        stmt = select(func.coalesce(func.sum(Snapshot.credits_used), 0)).where(
            Snapshot.render_method == "scraping-tiered"
        )
        if since is not None:
            stmt = stmt.where(Snapshot.fetched_at >= since)
        async with self.session() as session:
            return int((await session.execute(stmt)).scalar() or 0)

    async def credits_grouped_by(self, column_name: str, *, limit: int | None = None) -> list[tuple[str | None, int]]:
        """(group value, credits) pairs for a Snapshot column, largest first."""
        column = getattr(Snapshot, column_name)
        total = func.coalesce(func.sum(Snapshot.credits_used), 0).label("credits")
        stmt = (
            select(column, total)
            .where(Snapshot.render_method == "scraping-tiered")
            .group_by(column)
            .order_by(desc("credits"))
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session() as session:
            return [(row[0], int(row[1] or 0)) for row in (await session.execute(stmt)).all()]

    async def credit_rows_since(self, since: datetime) -> list[tuple[datetime, int]]:
        """(fetched_at, credits) for tiered snapshots since `since`; bucketed by the caller."""
        stmt = (
            select(Snapshot.fetched_at, Snapshot.credits_used)
            .where(Snapshot.render_method == "scraping-tiered", Snapshot.fetched_at >= since)
            .order_by(Snapshot.fetched_at)
        )
        async with self.session() as session:
            return [(row[0], int(row[1] or 0)) for row in (await session.execute(stmt)).all()]
