from __future__ import annotations

import argparse
import asyncio
import importlib.util
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass
class Runtime:
    database: Any
    tenant_service: Any
    api_key_manager: Any
    create_schema: bool


REQUIRED_DEPENDENCIES = [
    "fastapi",
    "uvicorn",
    "pydantic",
    "pydantic_settings",
    "structlog",
    "orjson",
    "sqlalchemy",
    "aiosqlite",
    "psycopg",
    "bcrypt",
]


def _missing_dependency_payload(exc: ModuleNotFoundError) -> dict[str, Any]:
    missing_module = getattr(exc, "name", None) or str(exc)
    return {
        "status": "error",
        "error_code": "MISSING_DEPENDENCY",
        "missing_module": missing_module,
        "message": (
            f"Missing Python dependency '{missing_module}'. "
            "Activate the project virtual environment and install dependencies."
        ),
        "fix": ["pip install -e .[test]"],
    }


def _create_runtime(args: argparse.Namespace) -> Runtime:
    from pathtracker.core.config import settings
    from pathtracker.core.logging import configure_logging
    from pathtracker.db.database import build_database
    from pathtracker.services.auth.api_keys import ApiKeyManager
    from pathtracker.services.auth.tenants import TenantService

    configure_logging()
    database = build_database(args.database_url)
    rounds = args.bcrypt_rounds or settings.api_key_bcrypt_rounds
    return Runtime(
        database=database,
        tenant_service=TenantService(
            database,
            default_body_size_limit=settings.default_body_size_limit_bytes,
            bcrypt_rounds=rounds,
        ),
        api_key_manager=ApiKeyManager(database, bcrypt_rounds=rounds),
        create_schema=settings.create_schema_on_startup,
    )


def _emit(payload: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return
    for key, value in payload.items():
        print(f"{key}: {value}")


def _with_database(runtime: Runtime, operation: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    async def scoped() -> dict[str, Any]:
        runtime.database.open()
        try:
            if runtime.create_schema:
                await runtime.database.create_schema()
            return await operation()
        finally:
            await runtime.database.close()

    return asyncio.run(scoped())


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _run_health(args: argparse.Namespace, runtime: Runtime) -> int:
    database = _with_database(runtime, runtime.database.ping)
    healthy = database["status"] == "healthy"
    _emit(
        {
            "status": "healthy" if healthy else "unhealthy",
            "component": "pathtracker-cli",
            "timestamp_utc": datetime.now(UTC).isoformat(),
            "database": database,
        },
        as_json=args.output_json,
    )
    return 0 if healthy else 2


def _run_deps_check(args: argparse.Namespace, runtime: Runtime | None) -> int:
    del runtime
    checks = [
        {"module": module, "installed": importlib.util.find_spec(module) is not None}
        for module in REQUIRED_DEPENDENCIES
    ]
    missing = [row["module"] for row in checks if not row["installed"]]
    payload = {
        "status": "ok" if not missing else "error",
        "checked": len(checks),
        "missing_count": len(missing),
        "checks": checks,
        "missing_modules": missing,
        "fix": ["pip install -e .[test]"] if missing else [],
    }
    _emit(payload, as_json=args.output_json)
    return 0 if not missing else 2


def _run_db_init(args: argparse.Namespace, runtime: Runtime) -> int:
    async def operation() -> dict[str, Any]:
        await runtime.database.create_schema()
        return {"status": "ok", "schema_created": True}

    _emit(_with_database(runtime, operation), as_json=args.output_json)
    return 0


def _run_tenants_provision(args: argparse.Namespace, runtime: Runtime) -> int:
    async def operation() -> dict[str, Any]:
        provisioned = await runtime.tenant_service.provision(
            external_user_id=args.external_user_id,
            email=args.email,
            name=args.name,
        )
        return {
            "status": "ok",
            "tenant_id": provisioned.tenant_id,
            "account_user_id": provisioned.account_user_id,
            "key_id": provisioned.key_id,
            "api_key": provisioned.api_key,
        }

    _emit(_with_database(runtime, operation), as_json=args.output_json)
    return 0


def _run_keys_create(args: argparse.Namespace, runtime: Runtime) -> int:
    expires_at = _parse_timestamp(args.expires_at) if args.expires_at else None

    async def operation() -> dict[str, Any]:
        created = await runtime.api_key_manager.create(
            tenant_id=args.tenant_id,
            name=args.name,
            expires_at=expires_at,
        )
        return created.model_dump()

    _emit(_with_database(runtime, operation), as_json=args.output_json)
    return 0


def _run_keys_list(args: argparse.Namespace, runtime: Runtime) -> int:
    async def operation() -> dict[str, Any]:
        keys = await runtime.api_key_manager.list_keys(tenant_id=args.tenant_id)
        return {"count": len(keys), "keys": [key.model_dump() for key in keys]}

    _emit(_with_database(runtime, operation), as_json=args.output_json)
    return 0


def _run_keys_revoke(args: argparse.Namespace, runtime: Runtime) -> int:
    async def operation() -> dict[str, Any]:
        return await runtime.api_key_manager.revoke(tenant_id=args.tenant_id, key_id=args.key_id)

    _emit(_with_database(runtime, operation), as_json=args.output_json)
    return 0


def _run_serve(args: argparse.Namespace, runtime: Runtime | None) -> int:
    del runtime
    import uvicorn

    uvicorn.run("pathtracker.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pathtracker")
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--bcrypt-rounds", type=int, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    health = subparsers.add_parser("health")
    health.add_argument("--output-json", action="store_true")
    health.set_defaults(handler=_run_health)

    deps = subparsers.add_parser("deps")
    deps_sub = deps.add_subparsers(dest="deps_command", required=True)
    deps_check = deps_sub.add_parser("check")
    deps_check.add_argument("--output-json", action="store_true")
    deps_check.set_defaults(handler=_run_deps_check, requires_runtime=False)

    db = subparsers.add_parser("db")
    db_sub = db.add_subparsers(dest="db_command", required=True)
    db_init = db_sub.add_parser("init")
    db_init.add_argument("--output-json", action="store_true")
    db_init.set_defaults(handler=_run_db_init)

    tenants = subparsers.add_parser("tenants")
    tenants_sub = tenants.add_subparsers(dest="tenants_command", required=True)
    tenants_provision = tenants_sub.add_parser("provision")
    tenants_provision.add_argument("--external-user-id", required=True)
    tenants_provision.add_argument("--email", required=True)
    tenants_provision.add_argument("--name", default=None)
    tenants_provision.add_argument("--output-json", action="store_true")
    tenants_provision.set_defaults(handler=_run_tenants_provision)

    keys = subparsers.add_parser("keys")
    keys_sub = keys.add_subparsers(dest="keys_command", required=True)
    keys_create = keys_sub.add_parser("create")
    keys_create.add_argument("--tenant-id", required=True)
    keys_create.add_argument("--name", required=True)
    keys_create.add_argument("--expires-at", default=None)
    keys_create.add_argument("--output-json", action="store_true")
    keys_create.set_defaults(handler=_run_keys_create)

    keys_list = keys_sub.add_parser("list")
    keys_list.add_argument("--tenant-id", required=True)
    keys_list.add_argument("--output-json", action="store_true")
    keys_list.set_defaults(handler=_run_keys_list)

    keys_revoke = keys_sub.add_parser("revoke")
    keys_revoke.add_argument("--tenant-id", required=True)
    keys_revoke.add_argument("--key-id", required=True)
    keys_revoke.add_argument("--output-json", action="store_true")
    keys_revoke.set_defaults(handler=_run_keys_revoke)

    serve = subparsers.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(handler=_run_serve, requires_runtime=False)

    return parser


def _execute_handler(
    args: argparse.Namespace,
    runtime: Runtime | None,
    *,
    init_error: dict[str, Any] | None = None,
) -> int:
    as_json = bool(getattr(args, "output_json", False))
    if not bool(getattr(args, "requires_runtime", True)):
        return int(args.handler(args, runtime))

    if runtime is None:
        payload = init_error or {
            "status": "error",
            "error_code": "RUNTIME_UNAVAILABLE",
            "message": "Runtime is not initialized. Run 'deps check' and install missing packages.",
        }
        _emit(payload, as_json=as_json)
        return 2

    from pathtracker.core.errors import TrackerError

    try:
        return int(args.handler(args, runtime))
    except TrackerError as error:
        _emit({"status": "error", "error_code": error.code.value, "message": error.message}, as_json=as_json)
        return 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    runtime: Runtime | None = None
    init_error: dict[str, Any] | None = None

    if bool(getattr(args, "requires_runtime", True)):
        try:
            runtime = _create_runtime(args)
        except ModuleNotFoundError as exc:
            init_error = _missing_dependency_payload(exc)

    return _execute_handler(args, runtime, init_error=init_error)


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    raise SystemExit(main())
