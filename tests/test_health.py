"""Health endpoint."""
from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    j = r.json()
    assert j.get("status") == "ok"
    assert j.get("success") is True
    assert j.get("database") == "ok"
    assert "portone_configured" in j
    assert r.headers.get("X-Request-ID")


def test_health_reports_database_error(client: TestClient, monkeypatch):
    monkeypatch.setattr("plantbid.main.ping_db", lambda: False)
    r = client.get("/health")
    assert r.status_code == 200
    j = r.json()
    assert j.get("status") == "degraded"
    assert j.get("database") == "error"
