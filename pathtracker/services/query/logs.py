"""
Log browsing across the REST and LLM event tables.

Each table is queried for its newest ``offset + limit`` matching rows, the
two streams are merged by request time and the requested page is sliced
from the merge. Pages are exact, but every call reads up to
``offset + limit`` rows per table, so very deep pages get progressively
more expensive.

``total`` counts both tables over the window and the common filters. The
``type`` selector and the LLM-only filters narrow the page but not the total.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass
from datetime import datetime
from typing import Any, assert_never

from sqlalchemy import func, select

from pathtracker.core.errors import storage_operation
from pathtracker.db.database import Database
from pathtracker.db.tables import EventType, LlmEvent, RestEvent, TrackedEvent

_COMMON_FILTERS = ("request_id", "user_id", "service", "environment", "status_code", "original_request_id")
_LLM_ONLY_FILTERS = ("conversation_id", "finish_reason")


@dataclass(frozen=True)
class LogQuery:
    start_time: datetime
    end_time: datetime
    type: EventType | None = None
    request_id: str | None = None
    user_id: str | None = None
    service: str | None = None
    environment: str | None = None
    status_code: int | None = None
    original_request_id: str | None = None
    conversation_id: str | None = None
    finish_reason: str | None = None
    include_bodies: bool = False
    limit: int = 100
    offset: int = 0

    def tables(self) -> list[type[TrackedEvent]]:
        tables: list[type[TrackedEvent]] = []
        wants_llm_fields = any(getattr(self, name) is not None for name in _LLM_ONLY_FILTERS)
        if self.type in (None, "rest") and not wants_llm_fields:
            tables.append(RestEvent)
        if self.type in (None, "llm"):
            tables.append(LlmEvent)
        return tables


def log_entry(event: TrackedEvent, *, include_bodies: bool) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "event_id": str(event.event_id),
        "type": event.event_type,
        "request_id": event.request_id,
        "user_id": event.user_id,
        "environment": event.environment,
        "request_timestamp": event.request_timestamp,
        "response_timestamp": event.response_timestamp,
        "service": event.service,
        "url": event.url,
        "status_code": event.status_code,
        "latency_ms": event.latency_ms,
        "attempt_number": event.attempt_number,
        "original_request_id": event.original_request_id,
    }
    if isinstance(event, RestEvent):
        entry["method"] = event.method
    elif isinstance(event, LlmEvent):
        entry.update(
            provider=event.provider,
            model=event.model,
            total_tokens=event.total_tokens,
            cost_usd=event.cost_usd,
            finish_reason=event.finish_reason,
            conversation_id=event.conversation_id,
        )
    else:
        assert_never(event)

    if include_bodies:
        entry["request_body"] = event.request_body
        entry["response_body"] = event.response_body
    return entry


class LogQueryEngine:
    def __init__(self, database: Database) -> None:
        self._database = database

    async def query(self, *, tenant_id: str, params: LogQuery) -> dict[str, Any]:
        tables = params.tables()
        window = params.offset + params.limit

        async with storage_operation("query_logs", tenant_id=tenant_id):
            async with self._database.session() as session:
                total = 0
                for table in (RestEvent, LlmEvent):
                    counted = self._conditions(table, tenant_id, params, type_specific=False)
                    total += await session.scalar(select(func.count()).select_from(table).where(*counted)) or 0

                streams: list[list[TrackedEvent]] = []
                for table in tables:
                    conditions = self._conditions(table, tenant_id, params)
                    result = await session.execute(
                        select(table)
                        .where(*conditions)
                        .order_by(table.request_timestamp.desc(), table.event_id.desc())
                        .limit(window)
                    )
                    streams.append(list(result.scalars()))

        merged = heapq.merge(*streams, key=lambda event: event.request_timestamp, reverse=True)
        page = list(merged)[params.offset : window]
        return {
            "logs": [log_entry(event, include_bodies=params.include_bodies) for event in page],
            "total": total,
            "limit": params.limit,
            "offset": params.offset,
        }

    @staticmethod
    def _conditions(
        table: type[TrackedEvent], tenant_id: str, params: LogQuery, *, type_specific: bool = True
    ) -> list[Any]:
        conditions: list[Any] = [
            table.tenant_id == tenant_id,
            table.request_timestamp >= params.start_time,
            table.request_timestamp <= params.end_time,
        ]
        filters = _COMMON_FILTERS
        if type_specific and table is LlmEvent:
            filters += _LLM_ONLY_FILTERS
        for name in filters:
            value = getattr(params, name)
            if value is not None:
                conditions.append(getattr(table, name) == value)
        return conditions
