"""Monitoring and observability middleware"""
import time
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from coralguard_admin.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "coralguard_admin_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "coralguard_admin_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Error metrics
http_errors_total = Counter(
    "coralguard_admin_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Access-control metrics
authentication_failures_total = Counter(
    "coralguard_admin_authentication_failures_total",
    "Total authentication failures",
    ["reason"]  # INVALID_CREDENTIALS, ACCOUNT_LOCKED, INVALID_TOKEN, ...
)

role_changes_total = Counter(
    "coralguard_admin_role_changes_total",
    "Total user role change attempts",
    ["outcome"]  # success, rejected, failed
)

swallowed_failures_total = Counter(
    "coralguard_admin_swallowed_failures_total",
    "Failures that were recorded but not surfaced to the caller",
    ["source"]  # audit.activity, audit.role_history, notification
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()

        method = request.method
        endpoint = request.url.path

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            status = response.status_code

            duration = time.time() - start_time
            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            # Log slow requests
            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={"request_id": request_id, "action": f"{method} {endpoint}"}
                )

            if status >= 400:
                http_errors_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception:
            http_errors_total.labels(
                method=method,
                endpoint=endpoint,
                status=500
            ).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={"request_id": request_id},
                exc_info=True
            )
            raise


def record_auth_failure(reason: str):
    """Record authentication failure"""
    authentication_failures_total.labels(reason=reason).inc()


def record_role_change(outcome: str):
    """Record a role change outcome"""
    role_changes_total.labels(outcome=outcome).inc()


def record_swallowed_failure(source: str):
    """Record a failure that was logged instead of raised"""
    swallowed_failures_total.labels(source=source).inc()
