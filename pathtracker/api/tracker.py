from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from pathtracker.api.deps import require_api_key
from pathtracker.models.events import (
    BatchTrackRequest,
    BatchTrackResponse,
    LlmEventInput,
    RestEventInput,
    TrackResponse,
)
from pathtracker.services.auth.api_keys import ApiKeyIdentity
from pathtracker.services.tracking.writer import EventWriter

router = APIRouter(prefix="/v1/tracker", tags=["tracker"])


def _writer(request: Request) -> EventWriter:
    return request.app.state.event_writer


@router.post("/rest", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
async def track_rest_event(
    payload: RestEventInput,
    request: Request,
    identity: ApiKeyIdentity = Depends(require_api_key),
) -> TrackResponse:
    event_id = await _writer(request).track_rest(identity.tenant_id, payload)
    return TrackResponse(event_id=event_id)


@router.post("/llm", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
async def track_llm_event(
    payload: LlmEventInput,
    request: Request,
    identity: ApiKeyIdentity = Depends(require_api_key),
) -> TrackResponse:
    event_id = await _writer(request).track_llm(identity.tenant_id, payload)
    return TrackResponse(event_id=event_id)


@router.post("/batch", response_model=BatchTrackResponse, status_code=status.HTTP_201_CREATED)
async def track_event_batch(
    payload: BatchTrackRequest,
    request: Request,
    identity: ApiKeyIdentity = Depends(require_api_key),
) -> BatchTrackResponse:
    event_ids = await _writer(request).track_batch(identity.tenant_id, payload.events)
    return BatchTrackResponse(events_processed=len(event_ids), event_ids=event_ids)
