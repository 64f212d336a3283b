from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from pathtracker.api.deps import require_session
from pathtracker.models.tenants import TenantSettingsUpdate
from pathtracker.services.auth.sessions import SessionIdentity
from pathtracker.services.auth.tenants import TenantService

router = APIRouter(prefix="/settings", tags=["settings"])


def _tenants(request: Request) -> TenantService:
    return request.app.state.tenant_service


@router.get("")
async def get_tenant_settings(
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    view = await _tenants(request).get_settings(identity.tenant_id)
    return {"settings": view.model_dump()}


@router.patch("")
async def update_tenant_settings(
    payload: TenantSettingsUpdate,
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    view = await _tenants(request).update_settings(identity.tenant_id, payload)
    return {"success": True, "settings": view.model_dump()}
