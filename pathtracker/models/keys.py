from __future__ import annotations

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class CreateApiKeyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    expires_at: AwareDatetime | None = None


class RenameApiKeyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)


class ApiKeyView(BaseModel):
    key_id: str
    name: str
    key_preview: str
    created_at: datetime
    expires_at: datetime | None = None
    revoked: bool
    revoked_at: datetime | None = None
    last_used_at: datetime | None = None
    usage_count: int


class CreatedApiKey(BaseModel):
    success: bool = True
    api_key: str
    key_id: str
    name: str
    created_at: datetime
    expires_at: datetime | None = None
