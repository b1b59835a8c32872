from __future__ import annotations

"""Prometheus instrumentation for the chat API."""

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

API_REQUESTS = Counter(
    "docchat_api_requests_total",
    "Chat API requests by route template and status code",
    ["method", "route", "status"],
)
API_LATENCY = Histogram(
    "docchat_api_request_seconds",
    "Chat API request latency",
    ["method", "route"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
CONTEXT_FALLBACKS = Counter(
    "chat_context_fallback_total",
    "Chat turns answered without retrieved context",
)


def _route_label(request: Request) -> str:
    # Route templates keep conversation ids out of the label set.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


async def metrics_middleware(request: Request, call_next):
    if not request.app.state.settings.metrics_enabled or request.url.path == "/metrics":
        return await call_next(request)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        route = _route_label(request)
        API_REQUESTS.labels(request.method, route, str(status_code)).inc()
        API_LATENCY.labels(request.method, route).observe(time.perf_counter() - started)


def record_context_fallback() -> None:
    CONTEXT_FALLBACKS.inc()


def metrics_response(request: Request) -> Response:
    """Prometheus text exposition, or 404 when metrics are switched off."""
    if not request.app.state.settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
