from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request

from pathtracker.api.deps import require_session
from pathtracker.core.config import settings
from pathtracker.services.auth.sessions import SessionIdentity
from pathtracker.services.query.logs import LogQuery, LogQueryEngine

router = APIRouter(prefix="/v1/logs", tags=["logs"])


def _engine(request: Request) -> LogQueryEngine:
    return request.app.state.log_query_engine


@router.get("")
async def query_logs(
    request: Request,
    start_time: datetime = Query(),
    end_time: datetime = Query(),
    type: Literal["rest", "llm"] | None = Query(default=None),
    request_id: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    service: str | None = Query(default=None),
    environment: str | None = Query(default=None),
    status_code: int | None = Query(default=None),
    original_request_id: str | None = Query(default=None),
    conversation_id: str | None = Query(default=None),
    finish_reason: str | None = Query(default=None),
    include_bodies: bool = Query(default=False),
    limit: int = Query(default=settings.logs_default_limit, ge=1, le=settings.logs_max_limit),
    offset: int = Query(default=0, ge=0, le=settings.logs_max_offset),
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    params = LogQuery(
        start_time=start_time,
        end_time=end_time,
        type=type,
        request_id=request_id,
        user_id=user_id,
        service=service,
        environment=environment,
        status_code=status_code,
        original_request_id=original_request_id,
        conversation_id=conversation_id,
        finish_reason=finish_reason,
        include_bodies=include_bodies,
        limit=limit,
        offset=offset,
    )
    return await _engine(request).query(tenant_id=identity.tenant_id, params=params)
