"""
Prometheus Metrics Module

Provides application metrics using the prometheus_client library.
Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

import time
from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, Info
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("engagement_app", "Engagement service information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# HTTP Request Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "engagement_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "engagement_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "engagement_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# =============================================================================
# Engagement Metrics
# =============================================================================

VIEWS_RECORDED_TOTAL = Counter(
    "engagement_views_recorded_total",
    "View recording attempts by outcome",
    ["outcome", "identity_kind"],  # counted, duplicate, unresolved, failed
)

LIKE_TOGGLES_TOTAL = Counter(
    "engagement_like_toggles_total",
    "Like toggles by resulting state",
    ["outcome"],  # liked, unliked, retried
)

COUNTER_DRIFT_TOTAL = Counter(
    "engagement_counter_drift_total",
    "Reconciliations that found stored counters out of line with the ledgers",
    ["field"],  # view_count, like_count
)

RECONCILIATIONS_TOTAL = Counter(
    "engagement_reconciliations_total",
    "Counter reconciliations performed",
)

# =============================================================================
# Cache Metrics
# =============================================================================

CACHE_HITS_TOTAL = Counter(
    "engagement_cache_hits_total",
    "Total cache hits",
    ["cache_type"],
)

CACHE_MISSES_TOTAL = Counter(
    "engagement_cache_misses_total",
    "Total cache misses",
    ["cache_type"],
)

REDIS_CONNECTED = Gauge(
    "engagement_redis_connected",
    "Redis connection status (1 = connected, 0 = disconnected)",
    ["role"],
)

# =============================================================================
# Prometheus Metrics Middleware
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics for Prometheus.

    Tracks:
    - Request count by method, endpoint, and status code
    - Request duration by method and endpoint
    - In-progress requests by method
    """

    # Endpoints to exclude from metrics (to avoid noise)
    EXCLUDED_PATHS = {"/metrics", "/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """
        Normalize URL path for metrics by replacing dynamic segments.

        Examples:
            /api/content/123 -> /api/content/{id}
            /api/content/456/like -> /api/content/{id}/like
        """
        return "/".join("{id}" if part.isdigit() else part for part in path.split("/"))


# =============================================================================
# Helper Functions
# =============================================================================


def record_view_outcome(outcome: str, identity_kind: str = "none") -> None:
    """Record the outcome of a view recording attempt."""
    VIEWS_RECORDED_TOTAL.labels(outcome=outcome, identity_kind=identity_kind).inc()


def record_like_toggle(outcome: str) -> None:
    """Record the resulting state of a like toggle."""
    LIKE_TOGGLES_TOTAL.labels(outcome=outcome).inc()


def record_counter_drift(field: str) -> None:
    """Record a drifted counter found during reconciliation."""
    COUNTER_DRIFT_TOTAL.labels(field=field).inc()


def record_reconciliation() -> None:
    RECONCILIATIONS_TOTAL.inc()


def record_cache_hit(cache_type: str = "default") -> None:
    """Record a cache hit."""
    CACHE_HITS_TOTAL.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str = "default") -> None:
    """Record a cache miss."""
    CACHE_MISSES_TOTAL.labels(cache_type=cache_type).inc()
