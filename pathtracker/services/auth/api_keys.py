from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from pathtracker.core.errors import ErrorCode, TrackerError, storage_operation
from pathtracker.core.logging import logger
from pathtracker.core.security import (
    API_KEY_PREFIX,
    generate_api_key,
    hash_secret,
    lookup_prefix,
    verify_secret,
)
from pathtracker.db.database import Database
from pathtracker.db.tables import ApiKey
from pathtracker.models.keys import ApiKeyView, CreatedApiKey

_DUPLICATE_NAME_MARKERS = ("uq_api_keys_tenant_name", "api_keys.tenant_id, api_keys.name")


@dataclass(frozen=True)
class ApiKeyIdentity:
    tenant_id: str
    key_id: str


class UsageRecorder:
    """Detached usage-counter updates for successfully validated keys.

    Each update runs as its own task; callers never await it and a failure is
    only logged.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def record(self, key_id: str) -> None:
        task = asyncio.create_task(self._increment(key_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _increment(self, key_id: str) -> None:
        try:
            async with self._database.session() as session:
                await session.execute(
                    update(ApiKey)
                    .where(ApiKey.key_id == key_id)
                    .values(usage_count=ApiKey.usage_count + 1, last_used_at=datetime.now(UTC))
                )
        except Exception as exc:
            logger.warning(
                "api_key_usage_update_failed",
                key_id=key_id,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )


class ApiKeyAuthenticator:
    """Validates ``Authorization: Bearer pwtrk_...`` headers against stored key hashes."""

    def __init__(self, database: Database, *, usage_recorder: UsageRecorder, bcrypt_rounds: int) -> None:
        self._database = database
        self._usage_recorder = usage_recorder
        self._bcrypt_rounds = bcrypt_rounds
        self._decoy_hash: str | None = None

    async def _compare_decoy(self, api_key: str) -> None:
        # a prefix miss still pays for one bcrypt comparison
        if self._decoy_hash is None:
            self._decoy_hash = await asyncio.to_thread(
                hash_secret, f"{API_KEY_PREFIX}decoy", rounds=self._bcrypt_rounds
            )
        await asyncio.to_thread(verify_secret, api_key, self._decoy_hash)

    async def validate(self, auth_header: str | None) -> ApiKeyIdentity:
        if not auth_header:
            raise self._reject(ErrorCode.UNAUTHORIZED, "Missing Authorization header")

        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise self._reject(
                ErrorCode.UNAUTHORIZED,
                "Invalid Authorization header format. Expected: Bearer <api_key>",
            )

        api_key = parts[1]
        if not api_key.startswith(API_KEY_PREFIX):
            raise self._reject(ErrorCode.UNAUTHORIZED, "Invalid API key format")

        async with storage_operation("validate_api_key"):
            async with self._database.session() as session:
                result = await session.execute(
                    select(
                        ApiKey.key_id,
                        ApiKey.tenant_id,
                        ApiKey.key_hash,
                        ApiKey.expires_at,
                        ApiKey.revoked,
                    )
                    .where(ApiKey.key_prefix == lookup_prefix(api_key))
                    .order_by(ApiKey.revoked.asc(), ApiKey.created_at.asc())
                )
                candidates = result.all()

        if not candidates:
            await self._compare_decoy(api_key)
            raise self._reject(ErrorCode.UNAUTHORIZED, "Invalid API key")

        for candidate in candidates:
            if not await asyncio.to_thread(verify_secret, api_key, candidate.key_hash):
                continue

            if candidate.revoked:
                raise self._reject(ErrorCode.API_KEY_REVOKED, "This API key has been revoked")

            if candidate.expires_at is not None and candidate.expires_at < datetime.now(UTC):
                raise self._reject(
                    ErrorCode.API_KEY_EXPIRED,
                    f"This API key expired on {candidate.expires_at.isoformat()}",
                )

            self._usage_recorder.record(candidate.key_id)
            return ApiKeyIdentity(tenant_id=candidate.tenant_id, key_id=candidate.key_id)

        raise self._reject(ErrorCode.UNAUTHORIZED, "Invalid API key")

    @staticmethod
    def _reject(code: ErrorCode, message: str) -> TrackerError:
        logger.info("api_key_rejected", code=code.value, reason=message)
        return TrackerError(code, message)


class ApiKeyManager:
    """Create, list, rename and revoke a tenant's API keys."""

    def __init__(self, database: Database, *, bcrypt_rounds: int) -> None:
        self._database = database
        self._bcrypt_rounds = bcrypt_rounds

    async def create(self, *, tenant_id: str, name: str, expires_at: datetime | None = None) -> CreatedApiKey:
        generated = await asyncio.to_thread(generate_api_key, rounds=self._bcrypt_rounds)
        record = ApiKey(
            tenant_id=tenant_id,
            name=name,
            key_hash=generated.key_hash,
            key_prefix=generated.prefix,
            expires_at=expires_at,
        )

        async with storage_operation("create_api_key", tenant_id=tenant_id):
            try:
                async with self._database.session() as session:
                    session.add(record)
                    await session.flush()
            except IntegrityError as exc:
                if not self._is_duplicate_name(exc):
                    raise
                raise TrackerError(
                    ErrorCode.DUPLICATE_NAME, "An API key with this name already exists"
                ) from exc

        logger.info("api_key_created", tenant_id=tenant_id, key_id=record.key_id)
        return CreatedApiKey(
            api_key=generated.key,
            key_id=record.key_id,
            name=record.name,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )

    async def list_keys(self, *, tenant_id: str) -> list[ApiKeyView]:
        async with storage_operation("list_api_keys", tenant_id=tenant_id):
            async with self._database.session() as session:
                result = await session.execute(
                    select(ApiKey).where(ApiKey.tenant_id == tenant_id).order_by(ApiKey.created_at.desc())
                )
                return [self._view(record) for record in result.scalars()]

    async def revoke(self, *, tenant_id: str, key_id: str) -> dict:
        async with storage_operation("revoke_api_key", tenant_id=tenant_id):
            async with self._database.session() as session:
                record = await self._owned(session, tenant_id=tenant_id, key_id=key_id)
                if not record.revoked:
                    record.revoked = True
                    record.revoked_at = datetime.now(UTC)

        logger.info("api_key_revoked", tenant_id=tenant_id, key_id=key_id)
        return {
            "success": True,
            "message": f"API key '{record.name}' has been revoked",
            "key_id": key_id,
            "revoked_at": record.revoked_at,
        }

    async def rename(self, *, tenant_id: str, key_id: str, name: str) -> ApiKeyView:
        async with storage_operation("rename_api_key", tenant_id=tenant_id):
            try:
                async with self._database.session() as session:
                    record = await self._owned(session, tenant_id=tenant_id, key_id=key_id)
                    record.name = name
                    await session.flush()
            except IntegrityError as exc:
                if not self._is_duplicate_name(exc):
                    raise
                raise TrackerError(
                    ErrorCode.DUPLICATE_NAME, "An API key with this name already exists"
                ) from exc
        return self._view(record)

    @staticmethod
    async def _owned(session, *, tenant_id: str, key_id: str) -> ApiKey:  # noqa: ANN001
        record = await session.scalar(
            select(ApiKey).where(ApiKey.key_id == key_id, ApiKey.tenant_id == tenant_id)
        )
        if record is None:
            raise TrackerError(ErrorCode.NOT_FOUND, "API key not found")
        return record

    @staticmethod
    def _is_duplicate_name(exc: IntegrityError) -> bool:
        message = str(exc.orig)
        return any(marker in message for marker in _DUPLICATE_NAME_MARKERS)

    @staticmethod
    def _view(record: ApiKey) -> ApiKeyView:
        return ApiKeyView(
            key_id=record.key_id,
            name=record.name,
            key_preview=f"{record.key_prefix}...",
            created_at=record.created_at,
            expires_at=record.expires_at,
            revoked=record.revoked,
            revoked_at=record.revoked_at,
            last_used_at=record.last_used_at,
            usage_count=record.usage_count,
        )
