"""Prometheus metrics and the HTTP middleware that records them."""

from __future__ import annotations

import time
from typing import Any

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

COMPILE_REQUESTS = Counter(
    "mwc_compile_requests_total",
    "Compile requests by outcome",
    ["outcome"],
)
COMPILE_DURATION = Histogram(
    "mwc_compile_duration_seconds",
    "Build and extraction time of successful compiles",
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)
COMMAND_REQUESTS = Counter(
    "mwc_command_requests_total",
    "Proxied Sui CLI commands by endpoint and outcome",
    ["endpoint", "outcome"],
)
ACTIVE_JOBS = Gauge(
    "mwc_active_jobs",
    "Builds and CLI commands currently running on the worker pool",
)
HTTP_REQUESTS = Counter(
    "mwc_http_requests_total",
    "HTTP requests by endpoint and status",
    ["method", "endpoint", "status_code"],
)
HTTP_REQUEST_DURATION = Histogram(
    "mwc_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
)

# Everything outside the API is static content; keep label cardinality bounded
_API_ENDPOINTS = frozenset({"/api/compile", "/api/deploy", "/api/test", "/health", "/info", "/metrics"})


def record_compile(success: bool, error_kind: str | None, elapsed_ms: int) -> None:
    outcome = "success" if success else (error_kind or "error")
    COMPILE_REQUESTS.labels(outcome=outcome).inc()
    if success:
        COMPILE_DURATION.observe(elapsed_ms / 1000)


def record_command(endpoint: str, success: bool, error_kind: str | None) -> None:
    outcome = "success" if success else (error_kind or "error")
    COMMAND_REQUESTS.labels(endpoint=endpoint, outcome=outcome).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track HTTP request metrics.
    Records request count, duration, and status codes per endpoint.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        path = request.url.path
        endpoint = path if path in _API_ENDPOINTS else "/static"
        method = request.method
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status_code=500).inc()
            raise
        else:
            HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status_code=status_code).inc()
            return response
        finally:
            HTTP_REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)
