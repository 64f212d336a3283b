from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from pathtracker.core.errors import storage_operation
from pathtracker.db.database import Database
from pathtracker.db.tables import LlmEvent, RestEvent


class UserAnalytics:
    """Per end-user request, token and cost rollups for one tenant."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def summarize(
        self,
        *,
        tenant_id: str,
        start_time: datetime,
        end_time: datetime,
        limit: int,
    ) -> dict[str, Any]:
        async with storage_operation("fetch_user_analytics", tenant_id=tenant_id):
            async with self._database.session() as session:
                rest_rows = (
                    await session.execute(
                        select(
                            RestEvent.user_id,
                            func.count(),
                            func.min(RestEvent.request_timestamp),
                            func.max(RestEvent.request_timestamp),
                        )
                        .where(*self._window(RestEvent, tenant_id, start_time, end_time))
                        .group_by(RestEvent.user_id)
                    )
                ).all()
                llm_rows = (
                    await session.execute(
                        select(
                            LlmEvent.user_id,
                            func.count(),
                            func.min(LlmEvent.request_timestamp),
                            func.max(LlmEvent.request_timestamp),
                            func.coalesce(func.sum(LlmEvent.total_tokens), 0),
                            func.coalesce(func.sum(LlmEvent.cost_usd), 0),
                        )
                        .where(*self._window(LlmEvent, tenant_id, start_time, end_time))
                        .group_by(LlmEvent.user_id)
                    )
                ).all()

        stats: dict[str, dict[str, Any]] = {}
        for user_id, count, first_seen, last_seen in rest_rows:
            entry = self._entry(stats, user_id)
            entry["rest_requests"] = int(count)
            self._widen(entry, first_seen, last_seen)
        for user_id, count, first_seen, last_seen, tokens, cost in llm_rows:
            entry = self._entry(stats, user_id)
            entry["llm_requests"] = int(count)
            entry["total_tokens"] = int(tokens)
            entry["total_cost"] = round(float(cost), 8)
            self._widen(entry, first_seen, last_seen)

        for entry in stats.values():
            entry["total_requests"] = entry["rest_requests"] + entry["llm_requests"]

        users = sorted(stats.values(), key=lambda item: (-item["total_requests"], item["user_id"]))[:limit]
        return {
            "users": users,
            "period": {"start": start_time, "end": end_time},
            "total": len(users),
        }

    @staticmethod
    def _window(table: type[RestEvent] | type[LlmEvent], tenant_id: str, start_time: datetime, end_time: datetime) -> list[Any]:
        return [
            table.tenant_id == tenant_id,
            table.user_id.is_not(None),
            table.request_timestamp >= start_time,
            table.request_timestamp <= end_time,
        ]

    @staticmethod
    def _entry(stats: dict[str, dict[str, Any]], user_id: str) -> dict[str, Any]:
        return stats.setdefault(
            user_id,
            {
                "user_id": user_id,
                "total_requests": 0,
                "rest_requests": 0,
                "llm_requests": 0,
                "total_tokens": 0,
                "total_cost": 0.0,
                "first_seen": None,
                "last_seen": None,
            },
        )

    @staticmethod
    def _widen(entry: dict[str, Any], first_seen: datetime, last_seen: datetime) -> None:
        if entry["first_seen"] is None or first_seen < entry["first_seen"]:
            entry["first_seen"] = first_seen
        if entry["last_seen"] is None or last_seen > entry["last_seen"]:
            entry["last_seen"] = last_seen
