"""Request / response bodies for the HTTP API."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pagestore.schemas.page import ConsentProvider, ProxyTier


class SnapshotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    url_hash: str
    fetched_at: datetime
    fetched_by: str
    tenant_id: str
    tool_id: str
    content_size: int
    http_status: int
    content_type: Optional[str] = None
    screenshot_desktop_url: Optional[str] = None
    screenshot_mobile_url: Optional[str] = None
    render_method: str
    js_rendered: bool
    render_time_ms: Optional[int] = None
    credits_used: Optional[int] = None
    resolved_url: Optional[str] = None
    proxy_tier_used: Optional[str] = None


class UrlRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    url_hash: str
    url: str
    latest_snapshot_id: Optional[int] = None
    latest_fetched_at: Optional[datetime] = None
    snapshot_count: int
    cookie_consent_override: Optional[str] = None


class GetPagePayload(BaseModel):
    url: str = Field(min_length=1)
    tenant_id: str
    requester_id: str
    tool_id: str = "page-library"
    force_refresh: bool = False
    max_age_override_hours: Optional[float] = Field(default=None, gt=0)


class PageOut(BaseModel):
    html: str
    snapshot: SnapshotOut
    was_cached: bool


class RescanPayload(BaseModel):
    url: str = Field(min_length=1)
    tenant_id: str
    requester_id: str
    screenshots: bool = True


class BulkPayload(BaseModel):
    tenant_id: str
    requester_id: str
    mode: Literal["urls", "sitemap"] = "urls"
    urls: list[str] = Field(default_factory=list)
    sitemap_url: Optional[str] = None
    force_refresh: bool = False

    @model_validator(mode="after")
    def check_source(self) -> "BulkPayload":
        if self.mode == "sitemap" and not self.sitemap_url:
            raise ValueError("sitemap_url is required in sitemap mode")
        if self.mode == "urls" and not self.urls:
            raise ValueError("urls must not be empty")
        return self


class DeleteUrlsPayload(BaseModel):
    tenant_id: str
    url_hashes: list[str] = Field(min_length=1)


class UrlConsentPayload(BaseModel):
    tenant_id: str
    provider: Optional[ConsentProvider] = None


class DomainConfigPayload(BaseModel):
    tenant_id: str
    domain: str = Field(min_length=1)
    cookie_consent_provider: ConsentProvider


class DomainConfigDeletePayload(BaseModel):
    tenant_id: str
    domain: str = Field(min_length=1)


class DomainConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain: str
    tenant_id: str
    cookie_consent_provider: str


class CreditEstimatePayload(BaseModel):
    proxy_tier: ProxyTier = ProxyTier.STANDARD
    js_rendering: bool = True
    screenshot: bool = True
    dual_device: bool = True
