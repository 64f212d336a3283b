from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TenantSettingsView(BaseModel):
    tenant_id: str
    name: str
    retention_days: int
    body_size_limit_bytes: int
    rate_limit_per_minute: int
    pii_scrubbing_enabled: bool
    cost_budget_usd: float | None = None
    created_at: datetime


class TenantSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    retention_days: int | None = Field(default=None, ge=1, le=365)
    body_size_limit_bytes: int | None = Field(default=None, ge=1024, le=1048576)
    rate_limit_per_minute: int | None = Field(default=None, ge=100, le=100000)
    pii_scrubbing_enabled: bool | None = None
    cost_budget_usd: float | None = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def _only_budget_is_nullable(self) -> TenantSettingsUpdate:
        for field_name in self.model_fields_set - {"cost_budget_usd"}:
            if getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)
