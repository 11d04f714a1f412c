import pytest
from fastapi.testclient import TestClient

from phrase_analyzer.errors import ApiError, ApiRateLimitError, ApiTimeoutError, NetworkError
from phrase_analyzer.main import create_app
from phrase_analyzer.metrics import MetricsRegistry
from tests.fakes import analysis_reply, filter_rejection, filter_reply


def test_health(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_analyze_success(client, fake_model):
    fake_model.queue(filter_reply("I am learning English."), analysis_reply())
    resp = client.post(
        "/api/analyze",
        json={
            "englishPhrase": "I am learning English.",
            "userTranslation": "ฉันกำลังเรียนภาษาอังกฤษ",
            "options": {"includeMetadata": True},
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert "error" not in body
    assert body["data"]["correctness"] == "correct"
    assert body["data"]["grammarAnalysis"]["starRating"] == 5
    assert body["metadata"]["modelUsed"] == "gpt-4o-mini"
    assert body["metadata"]["sessionId"]


def test_analyze_fragment_is_400(client, fake_model):
    fake_model.queue(filter_rejection("This is a greeting phrase, not a complete sentence"))
    resp = client.post("/api/analyze", json={"englishPhrase": "Hello world"})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["type"] == "validation"
    assert error["retryable"] is False
    assert error["step"] == "filter"
    assert error["userMessage"]
    assert error["suggestedAction"] == "แก้ไขประโยค"


def test_analyze_too_long_is_400(client, fake_model):
    resp = client.post("/api/analyze", json={"englishPhrase": "a" * 600})
    assert resp.status_code == 400
    assert "too long" in resp.json()["error"]["message"]
    assert fake_model.calls == 0


def test_analyze_invalid_json_body_is_400(client):
    resp = client.post("/api/analyze", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["type"] == "validation"


@pytest.mark.parametrize(
    ("failure", "status", "error_type"),
    [
        (ApiTimeoutError("model timed out"), 408, "timeout"),
        (NetworkError("connection refused"), 503, "network_error"),
        (ApiError("upstream 500"), 502, "api_error"),
        ("plain prose, no braces", 502, "parsing_error"),
    ],
)
def test_analyze_failure_status_codes(client, fake_model, failure, status, error_type):
    fake_model.queue(failure, failure, failure)
    resp = client.post("/api/analyze", json={"englishPhrase": "I am learning English."})
    assert resp.status_code == status
    body = resp.json()
    assert body["success"] is False
    assert "data" not in body
    assert body["error"]["type"] == error_type
    assert body["error"]["retryable"] is True


def test_analyze_rate_limit_is_429(client, fake_model):
    limited = ApiRateLimitError("rate limit reached")
    fake_model.queue(limited, limited, limited)
    resp = client.post("/api/analyze", json={"englishPhrase": "I am learning English."})
    assert resp.status_code == 429
    assert resp.json()["error"]["suggestedAction"] == "รอ 1 นาที"


def test_analyze_health_ok(client, fake_model):
    fake_model.queue(filter_rejection("greeting"), {"correctness": "incorrect"})
    resp = client.get("/api/analyze")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["health"]["components"]["analyzer"]["isHealthy"] is True
    assert body["config"]["maxInputLength"] == 500
    assert body["config"]["steps"] == ["filter", "analyze"]


def test_analyze_health_unhealthy_is_503(client, fake_model):
    fake_model.queue(filter_rejection("greeting"), ApiError("down"))
    resp = client.get("/api/analyze")
    assert resp.status_code == 503
    assert resp.json()["status"] == "unhealthy"


def test_config_endpoint(client):
    resp = client.get("/api/config")
    assert resp.status_code == 200
    body = resp.json()
    assert body["request_timeout_ms"] == 2000
    assert body["retry_attempts"] == 3
    assert body["max_input_length"] == 500
    assert body["llm_model"] == "gpt-4o-mini"
    assert body["version"]


def test_request_id_is_generated_or_echoed(client):
    generated = client.get("/healthz")
    assert generated.headers.get("X-Request-ID")
    echoed = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert echoed.headers["X-Request-ID"] == "req-123"


def test_metrics_count_error_responses(client, fake_model):
    failure = NetworkError("connection refused")
    fake_model.queue(failure, failure, failure)
    client.post("/api/analyze", json={"englishPhrase": "I am learning English."})
    client.get("/healthz")
    paths = client.get("/metrics").json()["paths"]
    assert paths["/api/analyze"]["count"] == 1
    assert paths["/api/analyze"]["errors"] == 1
    assert paths["/api/analyze"]["status"] == {"503": 1}
    assert paths["/healthz"]["errors"] == 0


def test_lifespan_shutdown_releases_provider(app_settings, workflow, store, provider, fake_model, monkeypatch):
    released = []
    monkeypatch.setattr(provider, "shutdown", lambda: released.append(True))
    app = create_app(app_settings, workflow=workflow, store=store, registry=MetricsRegistry())
    fake_model.queue(filter_rejection("Not a complete sentence"))
    with TestClient(app) as client:
        resp = client.post("/api/analyze", json={"englishPhrase": "Hello world"})
        assert resp.status_code == 400
        assert released == []
    assert released == [True]
