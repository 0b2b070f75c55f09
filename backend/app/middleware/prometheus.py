"""Request metrics middleware.

Requests are labelled with the matched route template
(``/api/v1/surveys/{survey_id}``) so every survey, response and
distribution shares one time series. Unmatched paths fall back to a
UUID-collapsed form of the raw path.
"""

from __future__ import annotations

import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

_UNLABELLED = frozenset({"/api/health", "/metrics"})
_UUID_SEGMENT = re.compile(r"^[0-9a-fA-F]{8}-?([0-9a-fA-F]{4}-?){3}[0-9a-fA-F]{12}$")


def _normalise_path(path: str) -> str:
    """/api/v1/surveys/550e8400-e29b-41d4-a716-446655440000 -> /api/v1/surveys/{id}"""
    parts = ["{id}" if _UUID_SEGMENT.match(p) else p for p in path.rstrip("/").split("/")]
    return "/".join(parts) or "/"


def _endpoint_label(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if template:
        return template
    return _normalise_path(request.url.path)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _UNLABELLED:
            return await call_next(request)

        method = request.method
        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            # The route is only resolved once the router has run
            endpoint = _endpoint_label(request)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start
            )
            http_requests_in_progress.labels(method=method).dec()
