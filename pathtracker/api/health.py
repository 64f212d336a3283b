from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from pathtracker.core.config import settings
from pathtracker.db.database import Database

router = APIRouter(tags=["health"])


def _database(request: Request) -> Database:
    return request.app.state.database


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    database = await _database(request).ping()
    healthy = database["status"] == "healthy"
    payload = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": settings.app_name,
        "version": settings.version,
        "environment": settings.env,
        "dependencies": {"database": database},
    }
    return JSONResponse(
        payload,
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
