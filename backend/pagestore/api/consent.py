"""Per-domain cookie consent configuration API."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pagestore.api.deps import get_page_store_service
from pagestore.api.schemas import DomainConfigDeletePayload, DomainConfigOut, DomainConfigPayload
from pagestore.service import PageStoreService

router = APIRouter(prefix="/cookie-domain-config", tags=["cookie-consent"])


@router.get("")
async def list_domain_configs(
    tenant_id: str,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, list[DomainConfigOut]]:
    configs = await service.get_domain_configs(tenant_id)
    return {"configs": [DomainConfigOut.model_validate(c) for c in configs]}


@router.post("")
async def set_domain_config(
    payload: DomainConfigPayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, DomainConfigOut]:
    config = await service.set_domain_config(payload.domain, payload.tenant_id, payload.cookie_consent_provider)
    return {"config": DomainConfigOut.model_validate(config)}


@router.delete("")
async def delete_domain_config(
    payload: DomainConfigDeletePayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, bool]:
    if not await service.delete_domain_config(payload.domain, payload.tenant_id):
        raise HTTPException(status_code=404, detail="Domain config not found")
    return {"success": True}
