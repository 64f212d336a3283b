from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from pathtracker.api.deps import require_session
from pathtracker.models.keys import CreateApiKeyRequest, CreatedApiKey, RenameApiKeyRequest
from pathtracker.services.auth.api_keys import ApiKeyManager
from pathtracker.services.auth.sessions import SessionIdentity

router = APIRouter(prefix="/keys", tags=["keys"])


def _manager(request: Request) -> ApiKeyManager:
    return request.app.state.api_key_manager


@router.post("", response_model=CreatedApiKey, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    payload: CreateApiKeyRequest,
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> CreatedApiKey:
    return await _manager(request).create(
        tenant_id=identity.tenant_id,
        name=payload.name,
        expires_at=payload.expires_at,
    )


@router.get("")
async def list_api_keys(
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    keys = await _manager(request).list_keys(tenant_id=identity.tenant_id)
    return {"keys": [key.model_dump() for key in keys]}


@router.patch("/{key_id}")
async def rename_api_key(
    key_id: str,
    payload: RenameApiKeyRequest,
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    key = await _manager(request).rename(tenant_id=identity.tenant_id, key_id=key_id, name=payload.name)
    return {"success": True, "key": key.model_dump()}


@router.delete("/{key_id}")
async def revoke_api_key(
    key_id: str,
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    return await _manager(request).revoke(tenant_id=identity.tenant_id, key_id=key_id)
