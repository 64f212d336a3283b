from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from pathtracker.main import create_application


@dataclass(frozen=True)
class TenantHandle:
    tenant_id: str
    key_id: str
    api_key: str
    external_user_id: str

    @property
    def api_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @property
    def session_headers(self) -> dict[str, str]:
        return {"X-User-Id": self.external_user_id}


def _provision(client: TestClient, external_user_id: str) -> TenantHandle:
    service = client.app.state.tenant_service
    provisioned = client.portal.call(
        partial(
            service.provision,
            external_user_id=external_user_id,
            email=f"{external_user_id}@example.com",
            name=external_user_id.title(),
        )
    )
    return TenantHandle(
        tenant_id=provisioned.tenant_id,
        key_id=provisioned.key_id,
        api_key=provisioned.api_key,
        external_user_id=external_user_id,
    )


def _rest_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "request_id": "req-1",
        "service": "checkout",
        "method": "POST",
        "url": "https://api.example.com/orders",
        "status_code": 200,
        "request_timestamp": "2025-01-01T10:00:00Z",
        "response_timestamp": "2025-01-01T10:00:01Z",
    }
    payload.update(overrides)
    return payload


def _llm_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "request_id": "req-1",
        "service": "assistant",
        "url": "https://api.openai.com/v1/chat/completions",
        "status_code": 200,
        "request_timestamp": "2025-01-01T10:00:00Z",
        "response_timestamp": "2025-01-01T10:00:02Z",
        "provider": "openai",
        "model": "gpt-4o-mini",
        "endpoint": "/v1/chat/completions",
        "prompt_tokens": 100,
        "completion_tokens": 50,
        "total_tokens": 150,
        "cost_usd": 0.01,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def client(tmp_path: Path) -> Iterator[TestClient]:
    app = create_application(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'pathtracker.db'}",
        bcrypt_rounds=4,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def tenant(client: TestClient) -> TenantHandle:
    return _provision(client, "user_alpha")


@pytest.fixture()
def other_tenant(client: TestClient) -> TenantHandle:
    return _provision(client, "user_bravo")


@pytest.fixture()
def rest_event() -> Callable[..., dict[str, Any]]:
    return _rest_payload


@pytest.fixture()
def llm_event() -> Callable[..., dict[str, Any]]:
    return _llm_payload


@pytest.fixture()
def window() -> dict[str, str]:
    return {"start_time": "2025-01-01T00:00:00Z", "end_time": "2025-01-02T00:00:00Z"}
