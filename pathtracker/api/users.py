from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Query, Request

from pathtracker.api.deps import require_session
from pathtracker.core.config import settings
from pathtracker.services.auth.sessions import SessionIdentity
from pathtracker.services.query.users import UserAnalytics

router = APIRouter(prefix="/users", tags=["users"])


def _analytics(request: Request) -> UserAnalytics:
    return request.app.state.user_analytics


@router.get("")
async def get_user_analytics(
    request: Request,
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    now = datetime.now(UTC)
    return await _analytics(request).summarize(
        tenant_id=identity.tenant_id,
        start_time=start_time or now - timedelta(days=settings.users_default_window_days),
        end_time=end_time or now,
        limit=limit,
    )
