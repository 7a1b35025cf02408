"""Models package — re-export all ORM classes for Alembic auto-detection."""
from pagestore.models.tenant import Tenant  # noqa: F401
from pagestore.models.url_record import UrlRecord, UrlRecordTenant  # noqa: F401
from pagestore.models.snapshot import Snapshot  # noqa: F401
from pagestore.models.domain_consent import DomainConsentConfig  # noqa: F401
