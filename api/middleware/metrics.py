"""Prometheus metrics for HTTP requests and publishing outcomes.

Tracks:
- http_requests_total: Counter by method, path, status
- http_request_duration_seconds: Histogram by method, path
- post_target_publish_total: Counter by platform, outcome
- webhook_items_total: Counter by platform, outcome
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

PUBLISH_RESULTS = Counter(
    "post_target_publish_total",
    "Post target publish attempts",
    ["platform", "outcome"],
)

WEBHOOK_ITEMS = Counter(
    "webhook_items_total",
    "Inbound webhook items",
    ["platform", "outcome"],
)


def record_publish(platform: str, outcome: str) -> None:
    """Count one target outcome ("published" or an error code)."""
    PUBLISH_RESULTS.labels(platform=platform, outcome=outcome).inc()


def record_webhook_item(platform: str, created: bool) -> None:
    WEBHOOK_ITEMS.labels(platform=platform, outcome="created" if created else "duplicate").inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect request counts, latency and in-flight requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Route pattern, not the concrete path with ids
        path = self._get_path_template(request)
        method = request.method

        ACTIVE_REQUESTS.inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.time() - start_time
            ACTIVE_REQUESTS.dec()

            if path not in ("/metrics", "/api/metrics"):
                REQUEST_COUNT.labels(method=method, path=path, status=str(status_code)).inc()
                REQUEST_LATENCY.labels(method=method, path=path).observe(duration)

        return response

    def _get_path_template(self, request: Request) -> str:
        """Normalize /api/v1/w/<uuid>/posts to /api/v1/w/{workspace_id}/posts."""
        for route in request.app.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route.path
        return request.url.path


def get_metrics() -> bytes:
    """Prometheus metrics in text format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
