from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from pathtracker.api.deps import require_session
from pathtracker.core.errors import ErrorCode, TrackerError
from pathtracker.services.auth.sessions import SessionIdentity
from pathtracker.services.query.paths import PathReconstructor

router = APIRouter(prefix="/v1/paths", tags=["paths"])


def _reconstructor(request: Request) -> PathReconstructor:
    return request.app.state.path_reconstructor


@router.get("/{request_id}")
async def get_request_path(
    request_id: str,
    request: Request,
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    path = await _reconstructor(request).get_path(tenant_id=identity.tenant_id, request_id=request_id)
    if path is None:
        raise TrackerError(ErrorCode.NOT_FOUND, f"No events found for request_id: {request_id}")
    return path
