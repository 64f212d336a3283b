from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pathtracker.api.health import router as health_router
from pathtracker.api.keys import router as keys_router
from pathtracker.api.logs import router as logs_router
from pathtracker.api.metrics import router as metrics_router
from pathtracker.api.paths import router as paths_router
from pathtracker.api.settings import router as settings_router
from pathtracker.api.tracker import router as tracker_router
from pathtracker.api.users import router as users_router
from pathtracker.core.config import settings
from pathtracker.core.errors import ErrorCode, TrackerError
from pathtracker.core.logging import configure_logging, logger
from pathtracker.db.database import build_database
from pathtracker.services.auth.api_keys import ApiKeyAuthenticator, ApiKeyManager, UsageRecorder
from pathtracker.services.auth.sessions import SessionResolver
from pathtracker.services.auth.tenants import TenantService
from pathtracker.services.query.logs import LogQueryEngine
from pathtracker.services.query.metrics import MetricsAggregator
from pathtracker.services.query.paths import PathReconstructor
from pathtracker.services.query.users import UserAnalytics
from pathtracker.services.tracking.writer import EventWriter

configure_logging()


async def _tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    error = TrackerError(ErrorCode.INVALID_REQUEST, "Invalid request", details=details)
    return JSONResponse(error.to_payload(), status_code=status.HTTP_400_BAD_REQUEST)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_request_error", path=request.url.path, error_type=type(exc).__name__)
    error = TrackerError(ErrorCode.INTERNAL_ERROR, "Internal server error")
    return JSONResponse(error.to_payload(), status_code=error.status_code)


def create_application(
    *,
    database_url: str | None = None,
    bcrypt_rounds: int | None = None,
) -> FastAPI:
    database = build_database(database_url)
    resolved_rounds = bcrypt_rounds or settings.api_key_bcrypt_rounds

    usage_recorder = UsageRecorder(database)
    tenant_service = TenantService(
        database,
        default_body_size_limit=settings.default_body_size_limit_bytes,
        bcrypt_rounds=resolved_rounds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        database.open()
        if settings.create_schema_on_startup:
            await database.create_schema()
        try:
            yield
        finally:
            await usage_recorder.drain()
            await database.close()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    app.state.database = database
    app.state.session_user_header = settings.session_user_header
    app.state.usage_recorder = usage_recorder
    app.state.tenant_service = tenant_service
    app.state.api_key_authenticator = ApiKeyAuthenticator(
        database,
        usage_recorder=usage_recorder,
        bcrypt_rounds=resolved_rounds,
    )
    app.state.api_key_manager = ApiKeyManager(database, bcrypt_rounds=resolved_rounds)
    app.state.session_resolver = SessionResolver(database)
    app.state.event_writer = EventWriter(
        database,
        tenants=tenant_service,
        max_batch_events=settings.max_batch_events,
    )
    app.state.path_reconstructor = PathReconstructor(database)
    app.state.metrics_aggregator = MetricsAggregator(database)
    app.state.log_query_engine = LogQueryEngine(database)
    app.state.user_analytics = UserAnalytics(database)

    app.add_exception_handler(TrackerError, _tracker_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(health_router, prefix=settings.api_prefix)
    app.include_router(tracker_router, prefix=settings.api_prefix)
    app.include_router(logs_router, prefix=settings.api_prefix)
    app.include_router(paths_router, prefix=settings.api_prefix)
    app.include_router(metrics_router, prefix=settings.api_prefix)
    app.include_router(keys_router, prefix=settings.api_prefix)
    app.include_router(settings_router, prefix=settings.api_prefix)
    app.include_router(users_router, prefix=settings.api_prefix)

    return app


app = create_application()
