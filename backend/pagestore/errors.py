"""Exception hierarchy for the fetch / cache layer."""
from __future__ import annotations


class PageStoreError(Exception):
    """Base class for every error raised by the page store."""


class ConfigurationError(PageStoreError):
    """A required setting (e.g. provider credentials) is missing."""


class TenantNotFoundError(PageStoreError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class StorageError(PageStoreError):
    """Blob upload / fetch / delete failed."""


class ScrapeError(PageStoreError):
    """A single scraping attempt failed.

    `credits_used` is what the provider charged for this attempt;
    `credits_spent` accumulates across escalated attempts of one logical call.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        credits_used: int = 0,
        tier: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.credits_used = credits_used
        self.credits_spent = credits_used
        self.tier = tier


class ScrapeTimeoutError(ScrapeError):
    """The provider (or plain fetch) did not answer within its bound."""


class DualFetchError(PageStoreError):
    """Both the desktop and the mobile fetch failed."""

    def __init__(self, url: str, desktop_error: BaseException, mobile_error: BaseException):
        super().__init__(
            f"Both desktop and mobile fetches failed for {url}. "
            f"Desktop error: {desktop_error}. Mobile error: {mobile_error}."
        )
        self.url = url
        self.desktop_error = desktop_error
        self.mobile_error = mobile_error
