from fastapi.testclient import TestClient


def test_health(client: TestClient) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["service"] == "path-tracker"
    assert body["dependencies"]["database"]["status"] == "healthy"
    assert isinstance(body["dependencies"]["database"]["latency_ms"], int)


def test_health_reports_unreachable_store(client: TestClient) -> None:
    client.portal.call(client.app.state.database.close)

    resp = client.get("/api/health")
    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["dependencies"]["database"]["error"] == "Database connection failed"
