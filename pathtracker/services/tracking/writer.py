from __future__ import annotations

from datetime import timedelta
from typing import Any, assert_never

from pathtracker.core.errors import ErrorCode, TrackerError, storage_operation
from pathtracker.core.logging import logger
from pathtracker.db.database import Database
from pathtracker.db.tables import LlmEvent, RestEvent, TrackedEvent
from pathtracker.models.events import (
    BatchLlmEvent,
    BatchRestEvent,
    EventInput,
    LlmEventInput,
    RestEventInput,
)
from pathtracker.services.auth.tenants import TenantService
from pathtracker.services.query.metrics import round_half_up
from pathtracker.services.tracking.body import process_body

_LLM_FIELDS = (
    "provider",
    "model",
    "endpoint",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "cost_usd",
    "temperature",
    "max_tokens",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "finish_reason",
    "is_streaming",
    "time_to_first_token_ms",
    "conversation_id",
    "function_calls",
    "warnings",
)


def latency_ms(payload: EventInput) -> int:
    """Milliseconds from request to response; negative when the client clocks disagree."""
    delta = payload.response_timestamp - payload.request_timestamp
    return round_half_up(delta / timedelta(milliseconds=1))


class EventWriter:
    """Persists validated REST and LLM events for one tenant at a time."""

    def __init__(self, database: Database, *, tenants: TenantService, max_batch_events: int) -> None:
        self._database = database
        self._tenants = tenants
        self.max_batch_events = max_batch_events

    async def track_rest(self, tenant_id: str, payload: RestEventInput) -> str:
        limit = await self._tenants.body_size_limit(tenant_id)
        row = self._rest_row(tenant_id, payload, limit)
        return (await self._insert([row], tenant_id=tenant_id, operation="track_rest_event"))[0]

    async def track_llm(self, tenant_id: str, payload: LlmEventInput) -> str:
        limit = await self._tenants.body_size_limit(tenant_id)
        row = self._llm_row(tenant_id, payload, limit)
        return (await self._insert([row], tenant_id=tenant_id, operation="track_llm_event"))[0]

    async def track_batch(self, tenant_id: str, events: list[BatchRestEvent | BatchLlmEvent]) -> list[str]:
        """Insert a tagged batch in one transaction; ids come back in input order."""
        if len(events) > self.max_batch_events:
            raise TrackerError(
                ErrorCode.INVALID_REQUEST,
                f"Batch size exceeds maximum of {self.max_batch_events} events",
            )

        limit = await self._tenants.body_size_limit(tenant_id)
        rows: list[TrackedEvent] = []
        for event in events:
            if isinstance(event, BatchRestEvent):
                rows.append(self._rest_row(tenant_id, event, limit))
            elif isinstance(event, BatchLlmEvent):
                rows.append(self._llm_row(tenant_id, event, limit))
            else:
                assert_never(event)
        return await self._insert(rows, tenant_id=tenant_id, operation="track_batch")

    async def _insert(self, rows: list[TrackedEvent], *, tenant_id: str, operation: str) -> list[str]:
        async with storage_operation(operation, tenant_id=tenant_id):
            async with self._database.session() as session:
                session.add_all(rows)
                await session.flush()
                event_ids = [str(row.event_id) for row in rows]

        for row, event_id in zip(rows, event_ids):
            logger.info(
                "event_tracked",
                tenant_id=tenant_id,
                event_type=row.event_type,
                event_id=event_id,
                request_id=row.request_id,
                service=row.service,
            )
        return event_ids

    def _rest_row(self, tenant_id: str, payload: RestEventInput, limit: int) -> RestEvent:
        return RestEvent(
            **self._common_columns(tenant_id, payload, limit),
            method=payload.method,
            request_size_bytes=payload.request_size_bytes,
            response_size_bytes=payload.response_size_bytes,
        )

    def _llm_row(self, tenant_id: str, payload: LlmEventInput, limit: int) -> LlmEvent:
        return LlmEvent(
            **self._common_columns(tenant_id, payload, limit),
            **{field_name: getattr(payload, field_name) for field_name in _LLM_FIELDS},
        )

    @staticmethod
    def _common_columns(tenant_id: str, payload: EventInput, limit: int) -> dict[str, Any]:
        request_body = process_body(payload.request_body, limit)
        response_body = process_body(payload.response_body, limit)
        return {
            "tenant_id": tenant_id,
            "request_id": payload.request_id,
            "user_id": payload.user_id,
            "environment": payload.environment,
            "correlation_id": payload.correlation_id,
            "request_timestamp": payload.request_timestamp,
            "response_timestamp": payload.response_timestamp,
            "service": payload.service,
            "url": payload.url,
            "status_code": payload.status_code,
            "latency_ms": latency_ms(payload),
            "attempt_number": payload.attempt_number or 1,
            "original_request_id": payload.original_request_id,
            "event_metadata": payload.metadata,
            "request_body": request_body.body,
            "request_body_truncated": request_body.truncated,
            "request_body_size_bytes": request_body.size_bytes,
            "response_body": response_body.body,
            "response_body_truncated": response_body.truncated,
            "response_body_size_bytes": response_body.size_bytes,
        }
