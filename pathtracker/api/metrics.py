from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from pathtracker.api.deps import require_session
from pathtracker.services.auth.sessions import SessionIdentity
from pathtracker.services.query.metrics import MetricsAggregator

router = APIRouter(prefix="/v1/metrics", tags=["metrics"])


def _aggregator(request: Request) -> MetricsAggregator:
    return request.app.state.metrics_aggregator


@router.get("")
async def get_metrics(
    request: Request,
    start_time: datetime = Query(),
    end_time: datetime = Query(),
    identity: SessionIdentity = Depends(require_session),
) -> dict:
    return await _aggregator(request).get_metrics(
        tenant_id=identity.tenant_id,
        start_time=start_time,
        end_time=end_time,
    )
