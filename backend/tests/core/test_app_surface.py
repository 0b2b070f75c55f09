"""Integration tests for the health and /metrics endpoints on the real app.

No database needed: TestClient is used without entering the lifespan.
"""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from app.main import app


@pytest.fixture()
def client():
    return TestClient(app, raise_server_exceptions=False)


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestMetricsEndpoint:
    def test_content_type(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "text/plain" in resp.headers["content-type"]

    def test_contains_app_info_and_http_metrics(self, client):
        client.get("/api/health")
        body = client.get("/metrics").text
        assert "qualitivate_info" in body
        assert "http_requests_total" in body


class TestErrorShape:
    def test_missing_token_renders_error_key(self, client):
        resp = client.get("/api/v1/surveys")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Not authenticated"}

    def test_unknown_route(self, client):
        resp = client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert "error" in resp.json()
