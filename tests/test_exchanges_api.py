"""Tests for the exchange ingest and stats endpoints."""
import pytest
import hmac
import hashlib
import json
from fastapi.testclient import TestClient
from respstats.main import create_app
from respstats.config import settings


def compute_signature(secret: str, body: bytes) -> str:
    """Compute HMAC-SHA256 signature."""
    return hmac.new(
        secret.encode(),
        body,
        hashlib.sha256
    ).hexdigest()


@pytest.fixture
def ingest_secret():
    """Set ingest secret for testing."""
    original = settings.INGEST_SECRET
    settings.INGEST_SECRET = "testsecret"
    yield "testsecret"
    settings.INGEST_SECRET = original


@pytest.fixture
def client():
    """Client for a fresh application with empty stats."""
    return TestClient(create_app(prometheus_stats=True))


def post_exchange(client, secret, exchange):
    body_bytes = json.dumps(exchange).encode()
    return client.post(
        "/exchanges",
        content=body_bytes,
        headers={
            "Content-Type": "application/json",
            "X-Signature": compute_signature(secret, body_bytes)
        }
    )


def test_exchange_invalid_signature(client, ingest_secret):
    """Test ingest with invalid signature."""
    response = client.post(
        "/exchanges",
        json={"uri": "http://example.com/"},
        headers={"X-Signature": "invalid"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "invalid signature"


def test_exchange_missing_signature(client, ingest_secret):
    response = client.post("/exchanges", json={"uri": "http://example.com/"})

    assert response.status_code == 401


def test_exchange_rejected_without_configured_secret(client):
    original = settings.INGEST_SECRET
    settings.INGEST_SECRET = None
    try:
        response = post_exchange(client, "whatever", {"uri": "http://example.com/"})
    finally:
        settings.INGEST_SECRET = original

    assert response.status_code == 401


def test_exchange_invalid_json(client, ingest_secret):
    body_bytes = b"{not json"
    response = client.post(
        "/exchanges",
        content=body_bytes,
        headers={"X-Signature": compute_signature(ingest_secret, body_bytes)}
    )

    assert response.status_code == 422


def test_exchange_validation_error(client, ingest_secret):
    response = post_exchange(client, ingest_secret, {"uri": "not-a-uri"})

    assert response.status_code == 422


def test_exchange_rejects_non_latin1_header(client, ingest_secret):
    response = post_exchange(client, ingest_secret, {
        "uri": "http://example.com/",
        "headers": [{"name": "Content-Type", "value": "text/plain; charset=\u65e5\u672c"}]
    })

    assert response.status_code == 422
    assert client.get("/stats").json()["sites"] == []


def test_exchange_counts_code_and_timing_only(client, ingest_secret):
    """No Content-Type header gives exactly the code and timing counters."""
    response = post_exchange(client, ingest_secret, {"uri": "http://example.com/"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "site": "http://example.com"}

    stats = client.get("/stats/site", params={"site": "http://example.com"}).json()
    assert stats["counters"] == {
        "stats.code.0": 1,
        "stats.responseTime.0": 1,
    }


def test_exchange_counts_content_types(client, ingest_secret):
    exchange = {
        "uri": "https://example.com:8443/page",
        "status_code": 200,
        "headers": [
            {"name": "Content-Type", "value": "multipart/byteranges; boundary=X; charset=UTF-8"},
            {"name": "Server", "value": "test"}
        ],
        "elapsed_ms": 42,
        "body": "<html></html>"
    }
    post_exchange(client, ingest_secret, exchange)
    post_exchange(client, ingest_secret, exchange)

    stats = client.get(
        "/stats/site", params={"site": "https://example.com:8443", "prefix": "stats."}
    ).json()
    assert stats == {
        "site": "https://example.com:8443",
        "counters": {
            "stats.code.200": 2,
            "stats.contenttype.multipart/byteranges; charset=UTF-8": 2,
            "stats.responseTime.42": 2,
        }
    }


def test_stats_lists_all_sites(client, ingest_secret):
    post_exchange(client, ingest_secret, {"uri": "http://b.com/", "status_code": 404})
    post_exchange(client, ingest_secret, {"uri": "http://a.com/", "status_code": 200})

    data = client.get("/stats", params={"prefix": "stats.code."}).json()

    assert data["global"] == {}
    assert data["sites"] == [
        {"site": "http://a.com", "counters": {"stats.code.200": 1}},
        {"site": "http://b.com", "counters": {"stats.code.404": 1}},
    ]


def test_unknown_site_is_404(client):
    response = client.get("/stats/site", params={"site": "http://nowhere.com"})

    assert response.status_code == 404


def test_clear_stats_by_prefix_and_site(client, ingest_secret):
    post_exchange(client, ingest_secret, {"uri": "http://a.com/", "status_code": 200})
    post_exchange(client, ingest_secret, {"uri": "http://b.com/", "status_code": 200})

    response = client.delete(
        "/stats", params={"site": "http://a.com", "prefix": "stats.code."}
    )
    assert response.status_code == 200

    a_stats = client.get("/stats/site", params={"site": "http://a.com"}).json()
    b_stats = client.get("/stats/site", params={"site": "http://b.com"}).json()
    assert a_stats["counters"] == {"stats.responseTime.0": 1}
    assert b_stats["counters"] == {"stats.code.200": 1, "stats.responseTime.0": 1}


def test_clear_all_stats(client, ingest_secret):
    post_exchange(client, ingest_secret, {"uri": "http://a.com/"})

    client.delete("/stats")

    assert client.get("/stats").json()["sites"] == []
    assert b'site="http://a.com"' not in client.get("/metrics").content


def test_metrics_include_site_stats(client, ingest_secret):
    post_exchange(client, ingest_secret, {"uri": "http://a.com/", "status_code": 301})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert b"exchanges_observed_total" in response.content
    assert client.app.state.prometheus_listener.registry.get_sample_value(
        "respstats_counter", {"site": "http://a.com", "key": "stats.code.301"}
    ) == 1.0


def test_metrics_without_prometheus_stats():
    client = TestClient(create_app(prometheus_stats=False))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert b"http_requests_total" in response.content
    assert b"respstats_counter" not in response.content


def test_health_live(client):
    assert client.get("/health/live").json() == {"status": "alive"}


def test_health_ready(client, ingest_secret):
    assert client.get("/health/ready").status_code == 200


def test_health_not_ready_without_secret(client):
    original = settings.INGEST_SECRET
    settings.INGEST_SECRET = ""
    try:
        assert client.get("/health/ready").status_code == 503
    finally:
        settings.INGEST_SECRET = original


def test_ingest_outcomes_counted(client, ingest_secret):
    from respstats.metrics import registry

    def outcome(result):
        return registry.get_sample_value(
            "exchanges_observed_total", {"result": result}
        ) or 0.0

    observed, rejected = outcome("observed"), outcome("invalid_signature")

    post_exchange(client, ingest_secret, {"uri": "http://a.com/"})
    client.post("/exchanges", json={"uri": "http://a.com/"}, headers={"X-Signature": "bad"})

    assert outcome("observed") == observed + 1
    assert outcome("invalid_signature") == rejected + 1
