"""
Prometheus metrics collection for the ephemeris server.

Provides metrics for monitoring operation performance, provider calls,
error rates, and system health across the REST and MCP surfaces.
"""

from prometheus_client import (
    Counter, Histogram, Gauge, Info, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST
)
from typing import Dict, Any
import time


# Global metrics registry
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'ephemeris_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'ephemeris_request_duration_seconds',
    'Request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0],
    registry=REGISTRY
)

# Operation metrics
OPERATIONS_TOTAL = Counter(
    'ephemeris_operations_total',
    'Total number of ephemeris operations',
    ['operation', 'surface', 'status'],
    registry=REGISTRY
)

OPERATION_DURATION = Histogram(
    'ephemeris_operation_duration_seconds',
    'Operation duration in seconds',
    ['operation', 'surface'],
    buckets=[0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0, 10.0],
    registry=REGISTRY
)

# Provider metrics
PROVIDER_CALLS = Counter(
    'ephemeris_provider_calls_total',
    'Total position provider calls',
    ['status'],  # success, failed
    registry=REGISTRY
)

PROVIDER_BODY_COUNT = Histogram(
    'ephemeris_provider_body_count',
    'Number of bodies requested per provider call',
    buckets=[1, 2, 3, 5, 7, 10, 13],
    registry=REGISTRY
)

# Error metrics
ERRORS_TOTAL = Counter(
    'ephemeris_errors_total',
    'Total number of errors by category',
    ['error_code', 'error_category'],
    registry=REGISTRY
)

# SPICE kernel metrics
KERNEL_LOADS = Counter(
    'ephemeris_kernel_loads_total',
    'Total kernel load operations',
    ['bundle', 'status'],  # success, failed
    registry=REGISTRY
)

KERNEL_VERIFICATION = Counter(
    'ephemeris_kernel_verifications_total',
    'Total kernel verifications',
    ['bundle', 'valid'],  # true, false
    registry=REGISTRY
)

# System info
SYSTEM_INFO = Info(
    'ephemeris_system_info',
    'System information',
    registry=REGISTRY
)

# Application uptime
APP_START_TIME = Gauge(
    'ephemeris_app_start_time_seconds',
    'Unix timestamp when the application started',
    registry=REGISTRY
)


class MetricsCollector:
    """
    High-level metrics collector for server operations.

    Provides methods to record metrics for common operations
    with consistent labeling and timing.
    """

    def __init__(self):
        self.start_time = time.time()
        APP_START_TIME.set(self.start_time)

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ):
        """Record HTTP request metrics."""
        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_operation(
        self,
        operation: str,
        surface: str,
        success: bool,
        duration_seconds: float
    ):
        """Record one ephemeris operation from either surface."""
        OPERATIONS_TOTAL.labels(
            operation=operation,
            surface=surface,
            status="success" if success else "failed"
        ).inc()

        OPERATION_DURATION.labels(
            operation=operation,
            surface=surface
        ).observe(duration_seconds)

    def record_provider_call(self, body_count: int, success: bool):
        """Record a position provider call."""
        PROVIDER_CALLS.labels(status="success" if success else "failed").inc()
        PROVIDER_BODY_COUNT.observe(body_count)

    def record_error(self, error_code: str):
        """Record error metrics."""
        # Extract category from error code (e.g., "RANGE.EPHEMERIS_OUTSIDE" -> "RANGE")
        error_category = error_code.split('.')[0] if '.' in error_code else error_code

        ERRORS_TOTAL.labels(
            error_code=error_code,
            error_category=error_category
        ).inc()

    def record_kernel_operation(
        self,
        bundle: str,
        operation: str,  # load, verify
        success: bool
    ):
        """Record SPICE kernel operation metrics."""
        if operation == "load":
            KERNEL_LOADS.labels(
                bundle=bundle,
                status="success" if success else "failed"
            ).inc()
        elif operation == "verify":
            KERNEL_VERIFICATION.labels(
                bundle=bundle,
                valid=str(success).lower()
            ).inc()

    def set_system_info(
        self,
        version: str,
        kernel_bundle: str,
        python_version: str,
        spice_version: str
    ):
        """Set system information metrics."""
        SYSTEM_INFO.info({
            'version': version,
            'kernel_bundle': kernel_bundle,
            'python_version': python_version,
            'spice_version': spice_version
        })

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of key metrics for health checks."""
        return {
            "uptime_seconds": round(time.time() - self.start_time, 1)
        }


# Global metrics collector instance
metrics = MetricsCollector()


def get_metrics_content() -> tuple[str, str]:
    """
    Get Prometheus metrics content for /metrics endpoint.

    Returns:
        Tuple of (content, content_type)
    """
    content = generate_latest(REGISTRY)
    return content.decode('utf-8'), CONTENT_TYPE_LATEST


class RequestMetricsMiddleware:
    """
    Middleware to automatically record request metrics.

    Records request count, duration, and response status for all requests.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        endpoint = self._normalize_endpoint(scope["path"])

        start_time = time.perf_counter()
        status_code = 500  # Default to error

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            metrics.record_request(method, endpoint, status_code, duration)

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path for metrics grouping."""
        if "?" in path:
            path = path.split("?")[0]

        if path.startswith("/v1/"):
            return path

        if path.startswith("/mcp"):
            return "/mcp"
        elif path in ("/", "/healthz", "/metrics"):
            return path
        elif path.startswith("/docs"):
            return "/docs"
        elif path.startswith("/openapi"):
            return "/openapi"
        else:
            return "/other"
