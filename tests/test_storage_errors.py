from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from pathtracker.services.query.metrics import MetricsAggregator


class _BrokenDatabase:
    def __init__(self, exc: SQLAlchemyError) -> None:
        self._exc = exc

    @asynccontextmanager
    async def session(self) -> AsyncIterator[None]:
        raise self._exc
        yield


@pytest.mark.parametrize(
    ("exc", "status", "expected"),
    [
        (
            OperationalError("SELECT 1", {}, Exception("driver says: disk I/O error")),
            500,
            {"code": "INTERNAL_ERROR", "message": "Failed to fetch metrics"},
        ),
        (
            PoolTimeoutError("QueuePool limit of size 20 overflow 10 reached"),
            503,
            {"code": "STORE_UNAVAILABLE", "message": "Storage is temporarily unavailable"},
        ),
    ],
)
def test_storage_failures_use_the_error_envelope(
    client: TestClient, tenant, window, exc: SQLAlchemyError, status: int, expected: dict  # noqa: ANN001
) -> None:
    client.app.state.metrics_aggregator = MetricsAggregator(_BrokenDatabase(exc))

    resp = client.get("/api/v1/metrics", params=window, headers=tenant.session_headers)
    assert resp.status_code == status
    assert resp.json() == {"error": expected}
    assert "driver" not in resp.text
    assert "QueuePool" not in resp.text
