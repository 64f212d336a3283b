from __future__ import annotations

from fastapi.testclient import TestClient


def test_create_returns_secret_once(client: TestClient, tenant) -> None:  # noqa: ANN001
    resp = client.post("/api/keys", json={"name": "production"}, headers=tenant.session_headers)
    assert resp.status_code == 201
    created = resp.json()
    assert created["success"] is True
    assert created["api_key"].startswith("pwtrk_")
    assert len(created["api_key"]) == 38
    assert created["name"] == "production"
    assert created["expires_at"] is None

    keys = client.get("/api/keys", headers=tenant.session_headers).json()["keys"]
    listed = next(key for key in keys if key["key_id"] == created["key_id"])
    assert listed["key_preview"] == created["api_key"][:12] + "..."
    assert "api_key" not in listed
    assert "key_hash" not in listed
    assert listed["revoked"] is False
    assert listed["usage_count"] == 0


def test_list_is_newest_first_and_includes_default_key(client: TestClient, tenant) -> None:  # noqa: ANN001
    client.post("/api/keys", json={"name": "second"}, headers=tenant.session_headers)
    client.post("/api/keys", json={"name": "third"}, headers=tenant.session_headers)

    names = [key["name"] for key in client.get("/api/keys", headers=tenant.session_headers).json()["keys"]]
    assert names == ["third", "second", "Default API Key"]


def test_duplicate_names_conflict(client: TestClient, tenant) -> None:  # noqa: ANN001
    client.post("/api/keys", json={"name": "ci"}, headers=tenant.session_headers)
    resp = client.post("/api/keys", json={"name": "ci"}, headers=tenant.session_headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == {
        "code": "DUPLICATE_NAME",
        "message": "An API key with this name already exists",
    }


def test_same_name_is_allowed_across_tenants(client: TestClient, tenant, other_tenant) -> None:  # noqa: ANN001
    assert client.post("/api/keys", json={"name": "ci"}, headers=tenant.session_headers).status_code == 201
    assert client.post("/api/keys", json={"name": "ci"}, headers=other_tenant.session_headers).status_code == 201


def test_rename(client: TestClient, tenant) -> None:  # noqa: ANN001
    created = client.post("/api/keys", json={"name": "old-name"}, headers=tenant.session_headers).json()
    client.post("/api/keys", json={"name": "taken"}, headers=tenant.session_headers)

    resp = client.patch(f"/api/keys/{created['key_id']}", json={"name": "new-name"}, headers=tenant.session_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["key"]["name"] == "new-name"

    conflict = client.patch(f"/api/keys/{created['key_id']}", json={"name": "taken"}, headers=tenant.session_headers)
    assert conflict.status_code == 409
    assert conflict.json()["error"]["code"] == "DUPLICATE_NAME"

    missing = client.patch("/api/keys/not-a-key", json={"name": "x"}, headers=tenant.session_headers)
    assert missing.status_code == 404


def test_revoke_is_tenant_scoped(client: TestClient, tenant, other_tenant) -> None:  # noqa: ANN001
    resp = client.delete(f"/api/keys/{tenant.key_id}", headers=other_tenant.session_headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == {"code": "NOT_FOUND", "message": "API key not found"}

    keys = client.get("/api/keys", headers=tenant.session_headers).json()["keys"]
    assert keys[0]["revoked"] is False


def test_revoke_is_terminal(client: TestClient, tenant) -> None:  # noqa: ANN001
    resp = client.delete(f"/api/keys/{tenant.key_id}", headers=tenant.session_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["key_id"] == tenant.key_id
    assert body["message"] == "API key 'Default API Key' has been revoked"
    assert body["revoked_at"] is not None

    again = client.delete(f"/api/keys/{tenant.key_id}", headers=tenant.session_headers).json()
    assert again["revoked_at"] == body["revoked_at"]

    listed = client.get("/api/keys", headers=tenant.session_headers).json()["keys"][0]
    assert listed["revoked"] is True


def test_key_name_is_validated(client: TestClient, tenant) -> None:  # noqa: ANN001
    for name in ("", "x" * 101):
        resp = client.post("/api/keys", json={"name": name}, headers=tenant.session_headers)
        assert resp.status_code == 400


def test_key_management_requires_session(client: TestClient, tenant) -> None:  # noqa: ANN001
    assert client.get("/api/keys").status_code == 401
    assert client.get("/api/keys", headers=tenant.api_headers).status_code == 401
