from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from pathtracker.core.logging import logger


class ErrorCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    API_KEY_REVOKED = "API_KEY_REVOKED"
    API_KEY_EXPIRED = "API_KEY_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


_STATUS_BY_CODE = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.API_KEY_REVOKED: 401,
    ErrorCode.API_KEY_EXPIRED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE_NAME: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


class TrackerError(RuntimeError):
    def __init__(self, code: ErrorCode, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return _STATUS_BY_CODE[self.code]

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


def _is_unavailable(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, PoolTimeoutError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@asynccontextmanager
async def storage_operation(operation: str, *, tenant_id: str | None = None) -> AsyncIterator[None]:
    """Map store failures raised inside the block onto the public error taxonomy."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "storage_operation_failed",
            operation=operation,
            tenant_id=tenant_id,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )
        if _is_unavailable(exc):
            raise TrackerError(
                ErrorCode.STORE_UNAVAILABLE,
                "Storage is temporarily unavailable",
            ) from exc
        raise TrackerError(ErrorCode.INTERNAL_ERROR, f"Failed to {operation.replace('_', ' ')}") from exc
