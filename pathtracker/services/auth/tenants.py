from __future__ import annotations

import asyncio
from dataclasses import dataclass

from sqlalchemy import select

from pathtracker.core.errors import ErrorCode, TrackerError, storage_operation
from pathtracker.core.logging import logger
from pathtracker.core.security import generate_api_key
from pathtracker.db.database import Database
from pathtracker.db.tables import AccountUser, ApiKey, Tenant
from pathtracker.models.tenants import TenantSettingsUpdate, TenantSettingsView

DEFAULT_KEY_NAME = "Default API Key"


@dataclass(frozen=True)
class ProvisionedTenant:
    tenant_id: str
    account_user_id: str
    key_id: str
    api_key: str


class TenantService:
    def __init__(self, database: Database, *, default_body_size_limit: int, bcrypt_rounds: int) -> None:
        self._database = database
        self._default_body_size_limit = default_body_size_limit
        self._bcrypt_rounds = bcrypt_rounds

    async def body_size_limit(self, tenant_id: str) -> int:
        """Per-tenant capture ceiling, or the service default when the tenant row is gone."""
        async with storage_operation("load_tenant_settings", tenant_id=tenant_id):
            async with self._database.session() as session:
                limit = await session.scalar(
                    select(Tenant.body_size_limit_bytes).where(Tenant.tenant_id == tenant_id)
                )
        return self._default_body_size_limit if limit is None else limit

    async def get_settings(self, tenant_id: str) -> TenantSettingsView:
        async with storage_operation("load_tenant_settings", tenant_id=tenant_id):
            async with self._database.session() as session:
                tenant = await session.get(Tenant, tenant_id)
        if tenant is None:
            raise TrackerError(ErrorCode.NOT_FOUND, "Tenant not found")
        return self._view(tenant)

    async def update_settings(self, tenant_id: str, update: TenantSettingsUpdate) -> TenantSettingsView:
        changes = update.changes()
        if not changes:
            raise TrackerError(ErrorCode.INVALID_REQUEST, "No fields to update")

        async with storage_operation("update_tenant_settings", tenant_id=tenant_id):
            async with self._database.session() as session:
                tenant = await session.get(Tenant, tenant_id)
                if tenant is None:
                    raise TrackerError(ErrorCode.NOT_FOUND, "Tenant not found")
                for field_name, value in changes.items():
                    setattr(tenant, field_name, value)
                await session.flush()

        logger.info("tenant_settings_updated", tenant_id=tenant_id, fields=sorted(changes))
        return self._view(tenant)

    async def provision(self, *, external_user_id: str, email: str, name: str | None = None) -> ProvisionedTenant:
        """Create a tenant, its first account and a default key in one transaction."""
        generated = await asyncio.to_thread(generate_api_key, rounds=self._bcrypt_rounds)

        async with storage_operation("provision_tenant"):
            async with self._database.session() as session:
                existing = await session.scalar(
                    select(AccountUser.account_user_id).where(AccountUser.external_user_id == external_user_id)
                )
                if existing is not None:
                    raise TrackerError(ErrorCode.INVALID_REQUEST, "User already has an account")

                tenant = Tenant(name=f"{name or email}'s Workspace")
                session.add(tenant)
                await session.flush()

                account = AccountUser(
                    external_user_id=external_user_id,
                    tenant_id=tenant.tenant_id,
                    email=email,
                    name=name,
                )
                key = ApiKey(
                    tenant_id=tenant.tenant_id,
                    name=DEFAULT_KEY_NAME,
                    key_hash=generated.key_hash,
                    key_prefix=generated.prefix,
                )
                session.add_all([account, key])
                await session.flush()

        logger.info("tenant_provisioned", tenant_id=tenant.tenant_id, key_id=key.key_id)
        return ProvisionedTenant(
            tenant_id=tenant.tenant_id,
            account_user_id=account.account_user_id,
            key_id=key.key_id,
            api_key=generated.key,
        )

    @staticmethod
    def _view(tenant: Tenant) -> TenantSettingsView:
        return TenantSettingsView(
            tenant_id=tenant.tenant_id,
            name=tenant.name,
            retention_days=tenant.retention_days,
            body_size_limit_bytes=tenant.body_size_limit_bytes,
            rate_limit_per_minute=tenant.rate_limit_per_minute,
            pii_scrubbing_enabled=tenant.pii_scrubbing_enabled,
            cost_budget_usd=tenant.cost_budget_usd,
            created_at=tenant.created_at,
        )
