from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pathtracker.core.errors import storage_operation
from pathtracker.db.database import Database
from pathtracker.db.tables import LlmEvent, RestEvent, TrackedEvent

LATENCY_PERCENTILES = (50.0, 95.0, 99.0)


def percentile(values: list[int] | list[float], pct: float) -> float:
    """Continuous percentile with linear interpolation between closest ranks."""
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return float(ordered[0])
    rank = (len(ordered) - 1) * (pct / 100.0)
    low = int(rank)
    high = min(low + 1, len(ordered) - 1)
    fraction = rank - low
    return ordered[low] * (1.0 - fraction) + ordered[high] * fraction


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded towards +inf (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def latency_summary(values: list[int]) -> dict[str, int]:
    return {f"p{int(pct)}": round_half_up(percentile(values, pct)) for pct in LATENCY_PERCENTILES}


class MetricsAggregator:
    """Grouped counts, latency percentiles and cost rollups over a time window.

    REST and LLM traffic are summarised independently. Both window bounds are
    inclusive and an empty window yields zeros everywhere.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_metrics(self, *, tenant_id: str, start_time: datetime, end_time: datetime) -> dict[str, Any]:
        async with storage_operation("fetch_metrics", tenant_id=tenant_id):
            async with self._database.session() as session:
                rest = await self._rest_block(session, tenant_id, start_time, end_time)
                llm = await self._llm_block(session, tenant_id, start_time, end_time)

        return {
            "period": {"start": start_time, "end": end_time},
            "metrics": {"rest_requests": rest, "llm_requests": llm},
        }

    async def _rest_block(
        self, session: AsyncSession, tenant_id: str, start_time: datetime, end_time: datetime
    ) -> dict[str, Any]:
        window = self._window(RestEvent, tenant_id, start_time, end_time)
        by_service = await self._grouped(session, RestEvent.service, window)
        by_status = await self._grouped(session, RestEvent.status_code, window)
        latencies = list(await session.scalars(select(RestEvent.latency_ms).where(*window)))

        return {
            "total": len(latencies),
            "by_service": by_service,
            "by_status": {str(status): count for status, count in by_status.items()},
            "latency": latency_summary(latencies),
        }

    async def _llm_block(
        self, session: AsyncSession, tenant_id: str, start_time: datetime, end_time: datetime
    ) -> dict[str, Any]:
        window = self._window(LlmEvent, tenant_id, start_time, end_time)
        by_provider = await self._grouped(session, LlmEvent.provider, window)
        by_model = await self._grouped(session, LlmEvent.model, window)
        totals = (
            await session.execute(
                select(
                    func.coalesce(func.sum(LlmEvent.total_tokens), 0),
                    func.coalesce(func.sum(LlmEvent.cost_usd), 0),
                ).where(*window)
            )
        ).one()
        latencies = list(await session.scalars(select(LlmEvent.latency_ms).where(*window)))

        return {
            "total": len(latencies),
            "by_provider": by_provider,
            "by_model": by_model,
            "total_tokens": int(totals[0]),
            "total_cost_usd": round(float(totals[1]), 8),
            "latency": latency_summary(latencies),
        }

    @staticmethod
    def _window(table: type[TrackedEvent], tenant_id: str, start_time: datetime, end_time: datetime) -> list[Any]:
        return [
            table.tenant_id == tenant_id,
            table.request_timestamp >= start_time,
            table.request_timestamp <= end_time,
        ]

    @staticmethod
    async def _grouped(session: AsyncSession, column: Any, window: list[Any]) -> dict[Any, int]:
        result = await session.execute(
            select(column, func.count()).where(*window).group_by(column).order_by(func.count().desc(), column)
        )
        return {key: int(count) for key, count in result.all()}
