from __future__ import annotations

from fastapi.testclient import TestClient


def test_defaults(client: TestClient, tenant) -> None:  # noqa: ANN001
    resp = client.get("/api/settings", headers=tenant.session_headers)
    assert resp.status_code == 200
    settings = resp.json()["settings"]
    assert settings["tenant_id"] == tenant.tenant_id
    assert settings["name"] == "User_Alpha's Workspace"
    assert settings["retention_days"] == 30
    assert settings["body_size_limit_bytes"] == 10240
    assert settings["rate_limit_per_minute"] == 1000
    assert settings["pii_scrubbing_enabled"] is False
    assert settings["cost_budget_usd"] is None


def test_partial_update(client: TestClient, tenant) -> None:  # noqa: ANN001
    resp = client.patch(
        "/api/settings",
        json={"retention_days": 90, "cost_budget_usd": 250.5, "pii_scrubbing_enabled": True},
        headers=tenant.session_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["settings"]["retention_days"] == 90
    assert body["settings"]["cost_budget_usd"] == 250.5
    assert body["settings"]["pii_scrubbing_enabled"] is True
    assert body["settings"]["body_size_limit_bytes"] == 10240

    cleared = client.patch("/api/settings", json={"cost_budget_usd": None}, headers=tenant.session_headers)
    assert cleared.status_code == 200
    assert cleared.json()["settings"]["cost_budget_usd"] is None
    assert cleared.json()["settings"]["retention_days"] == 90


def test_empty_update_is_rejected(client: TestClient, tenant) -> None:  # noqa: ANN001
    resp = client.patch("/api/settings", json={}, headers=tenant.session_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == {"code": "INVALID_REQUEST", "message": "No fields to update"}


def test_out_of_range_values_are_rejected(client: TestClient, tenant) -> None:  # noqa: ANN001
    for payload in (
        {"retention_days": 0},
        {"retention_days": 366},
        {"body_size_limit_bytes": 1023},
        {"body_size_limit_bytes": 1048577},
        {"rate_limit_per_minute": 99},
        {"cost_budget_usd": -1},
        {"retention_days": None},
    ):
        resp = client.patch("/api/settings", json=payload, headers=tenant.session_headers)
        assert resp.status_code == 400, payload
        assert resp.json()["error"]["code"] == "INVALID_REQUEST"


def test_settings_are_per_tenant(client: TestClient, tenant, other_tenant) -> None:  # noqa: ANN001
    client.patch("/api/settings", json={"retention_days": 7}, headers=tenant.session_headers)
    other = client.get("/api/settings", headers=other_tenant.session_headers).json()["settings"]
    assert other["retention_days"] == 30
