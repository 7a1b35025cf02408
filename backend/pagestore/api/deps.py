"""FastAPI dependencies."""
from __future__ import annotations

from functools import lru_cache

from pagestore.service import PageStoreService


@lru_cache(maxsize=1)
def get_page_store_service() -> PageStoreService:
    return PageStoreService.from_settings()
