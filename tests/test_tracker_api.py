from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient

BASE = datetime(2025, 1, 1, 10, 0, 0, tzinfo=UTC)


def _ts(seconds: float) -> str:
    return (BASE + timedelta(seconds=seconds)).isoformat()


def test_track_rest_event(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/rest",
        json=rest_event(
            request_id="req-rest",
            user_id="end-user-1",
            request_timestamp=_ts(0),
            response_timestamp=_ts(1.5),
            request_body={"cart": [1, 2, 3]},
            response_body='{"status": "created"}',
            metadata={"region": "eu-west-1"},
            request_size_bytes=128,
        ),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert isinstance(body["event_id"], str)

    logs = client.get(
        "/api/v1/logs",
        params={**window, "include_bodies": "true"},
        headers=tenant.session_headers,
    ).json()
    assert logs["total"] == 1
    entry = logs["logs"][0]
    assert entry["event_id"] == body["event_id"]
    assert entry["type"] == "rest"
    assert entry["method"] == "POST"
    assert entry["latency_ms"] == 1500
    assert entry["attempt_number"] == 1
    assert entry["request_body"] == {"cart": [1, 2, 3]}
    assert entry["response_body"] == {"status": "created"}


def test_track_llm_event(client: TestClient, tenant, llm_event) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/llm",
        json=llm_event(
            temperature=0.2,
            is_streaming=True,
            time_to_first_token_ms=120,
            conversation_id="conv-1",
            function_calls=[{"name": "lookup", "arguments": {"id": 7}}],
            finish_reason="stop",
        ),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["success"] is True

    path = client.get("/api/v1/paths/req-1", headers=tenant.session_headers).json()
    event = path["path"][0]
    assert event["type"] == "llm"
    assert event["provider"] == "openai"
    assert event["total_tokens"] == 150
    assert event["finish_reason"] == "stop"


def test_invalid_payload_is_rejected(client: TestClient, tenant, rest_event) -> None:  # noqa: ANN001
    payload = rest_event(status_code=600)
    del payload["service"]

    resp = client.post("/api/v1/tracker/rest", json=payload, headers=tenant.api_headers)
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "INVALID_REQUEST"
    fields = {tuple(detail["loc"])[-1] for detail in error["details"]}
    assert {"service", "status_code"} <= fields


def test_unknown_fields_are_rejected(client: TestClient, tenant, llm_event) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/llm",
        json=llm_event(unexpected="value"),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 400


def test_negative_latency_is_stored(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/rest",
        json=rest_event(request_timestamp=_ts(2), response_timestamp=_ts(1.5)),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 201

    logs = client.get("/api/v1/logs", params=window, headers=tenant.session_headers).json()
    assert logs["logs"][0]["latency_ms"] == -500


def test_bodies_follow_tenant_size_limit(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    update = client.patch("/api/settings", json={"body_size_limit_bytes": 1024}, headers=tenant.session_headers)
    assert update.status_code == 200

    client.post(
        "/api/v1/tracker/rest",
        json=rest_event(request_body={"blob": "y" * 4000}, response_body="\x00\x01binary"),
        headers=tenant.api_headers,
    )

    logs = client.get(
        "/api/v1/logs",
        params={**window, "include_bodies": "true"},
        headers=tenant.session_headers,
    ).json()
    entry = logs["logs"][0]
    assert entry["request_body"]["truncated"] is True
    assert entry["request_body"]["stored_bytes"] == 1024
    assert entry["request_body"]["original_size_bytes"] > 4000
    assert entry["response_body"] == {"binary": True, "content_type": "unknown"}


def test_batch_over_limit_is_rejected_before_writing(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    events = [{"type": "rest", **rest_event(request_id=f"req-{idx}")} for idx in range(101)]

    resp = client.post("/api/v1/tracker/batch", json={"events": events}, headers=tenant.api_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_REQUEST"

    logs = client.get("/api/v1/logs", params=window, headers=tenant.session_headers).json()
    assert logs["total"] == 0


def test_batch_returns_ids_in_input_order(client: TestClient, tenant, rest_event, llm_event, window) -> None:  # noqa: ANN001
    events = []
    for idx in range(100):
        if idx % 3 == 0:
            events.append({"type": "llm", **llm_event(request_id=f"req-{idx}", request_timestamp=_ts(idx))})
        else:
            events.append({"type": "rest", **rest_event(request_id=f"req-{idx}", request_timestamp=_ts(idx))})

    resp = client.post("/api/v1/tracker/batch", json={"events": events}, headers=tenant.api_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["events_processed"] == 100
    assert len(body["event_ids"]) == 100

    logs = client.get(
        "/api/v1/logs",
        params={**window, "limit": 200},
        headers=tenant.session_headers,
    ).json()
    request_by_event = {(entry["type"], entry["event_id"]): entry["request_id"] for entry in logs["logs"]}
    for idx, event_id in enumerate(body["event_ids"]):
        assert request_by_event[(events[idx]["type"], event_id)] == f"req-{idx}"


def test_batch_rejects_unknown_event_type(client: TestClient, tenant, rest_event) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/batch",
        json={"events": [{"type": "grpc", **rest_event()}]},
        headers=tenant.api_headers,
    )
    assert resp.status_code == 400


def test_half_millisecond_latency_rounds_up(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/rest",
        json=rest_event(request_timestamp=_ts(0), response_timestamp=_ts(0.0025)),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 201

    logs = client.get("/api/v1/logs", params=window, headers=tenant.session_headers).json()
    assert logs["logs"][0]["latency_ms"] == 3


def test_unserializable_body_is_rejected_before_writing(client: TestClient, tenant, rest_event, window) -> None:  # noqa: ANN001
    resp = client.post(
        "/api/v1/tracker/rest",
        json=rest_event(request_body={"id": 2**70}),
        headers=tenant.api_headers,
    )
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "INVALID_REQUEST"
    assert error["message"] == "Body could not be serialized as JSON"

    logs = client.get("/api/v1/logs", params=window, headers=tenant.session_headers).json()
    assert logs["total"] == 0
