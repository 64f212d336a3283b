from __future__ import annotations

from datetime import timedelta
from typing import Any, assert_never

from sqlalchemy import select

from pathtracker.core.errors import storage_operation
from pathtracker.db.database import Database
from pathtracker.db.tables import LlmEvent, RestEvent, TrackedEvent
from pathtracker.services.query.metrics import round_half_up


def path_entry(event: TrackedEvent) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "event_id": str(event.event_id),
        "type": event.event_type,
        "service": event.service,
        "url": event.url,
        "status_code": event.status_code,
        "latency_ms": event.latency_ms,
        "request_timestamp": event.request_timestamp,
        "response_timestamp": event.response_timestamp,
        "attempt_number": event.attempt_number,
        "request_body": event.request_body,
        "response_body": event.response_body,
        "metadata": event.event_metadata,
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
        )
    else:
        assert_never(event)
    return entry


class PathReconstructor:
    """Stitches every event sharing one ``request_id`` into a single timeline."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_path(self, *, tenant_id: str, request_id: str) -> dict[str, Any] | None:
        async with storage_operation("fetch_request_path", tenant_id=tenant_id):
            async with self._database.session() as session:
                events: list[TrackedEvent] = []
                for table in (RestEvent, LlmEvent):
                    result = await session.execute(
                        select(table)
                        .where(table.tenant_id == tenant_id, table.request_id == request_id)
                        .order_by(table.request_timestamp.asc(), table.event_id.asc())
                    )
                    events.extend(result.scalars())

        if not events:
            return None

        # sorted() is stable, so equal timestamps keep fetch order
        ordered = sorted(events, key=lambda event: event.request_timestamp)
        started = min(event.request_timestamp for event in ordered)
        finished = max(event.response_timestamp for event in ordered)
        user_id = next((event.user_id for event in ordered if event.user_id is not None), None)

        return {
            "request_id": request_id,
            "user_id": user_id,
            "total_duration_ms": round_half_up((finished - started) / timedelta(milliseconds=1)),
            "event_count": len(ordered),
            "path": [path_entry(event) for event in ordered],
        }
