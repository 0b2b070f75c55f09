from __future__ import annotations

import uuid

from fastapi import FastAPI
from prometheus_client import REGISTRY
from starlette.testclient import TestClient

from app.middleware.prometheus import PrometheusMiddleware, _normalise_path


def test_uuid_segments_collapse():
    path = "/api/v1/surveys/550e8400-e29b-41d4-a716-446655440000/questions"
    assert _normalise_path(path) == "/api/v1/surveys/{id}/questions"


def test_plain_paths_unchanged():
    assert _normalise_path("/api/v1/templates/categories") == "/api/v1/templates/categories"
    assert _normalise_path("/") == "/"


def test_requests_are_labelled_by_route_template():
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware)

    @app.get("/items/{item_id}")
    async def item(item_id: str):
        return {"id": item_id}

    labels = {"method": "GET", "endpoint": "/items/{item_id}", "status": "200"}
    before = REGISTRY.get_sample_value("http_requests_total", labels) or 0
    client = TestClient(app)
    client.get(f"/items/{uuid.uuid4()}")
    client.get("/items/plain-slug")
    assert REGISTRY.get_sample_value("http_requests_total", labels) == before + 2
