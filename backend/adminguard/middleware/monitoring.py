"""Monitoring and observability middleware"""
import time
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram, Gauge
from starlette.middleware.base import BaseHTTPMiddleware
from adminguard.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "adminguard_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "adminguard_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

http_errors_total = Counter(
    "adminguard_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Security metrics
authentication_failures_total = Counter(
    "adminguard_authentication_failures_total",
    "Total authentication failures",
    ["stage", "reason"]  # stage: password, two_factor, backup_code, session
)

route_guard_decisions_total = Counter(
    "adminguard_route_guard_decisions_total",
    "Route guard outcomes by terminal state",
    ["state"]  # public, needs_session, needs_profile, needs_active, needs_two_factor, authorized
)

# Presence metrics
online_admins_gauge = Gauge(
    "adminguard_online_admins",
    "Admins currently tracked on the presence channel"
)

presence_heartbeat_failures_total = Counter(
    "adminguard_presence_heartbeat_failures_total",
    "Presence writes that failed and were skipped",
    ["operation"]  # heartbeat, page, join, leave
)

idle_timeouts_total = Counter(
    "adminguard_idle_timeouts_total",
    "Admin sessions ended by the idle tracker"
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

            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={
                        "request_id": request_id,
                        "path": endpoint,
                        "duration": duration,
                        "status": status
                    }
                )

            # Redirects from the route guard are not errors
            if status >= 400:
                http_errors_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception as e:
            duration = time.time() - start_time
            http_errors_total.labels(
                method=method,
                endpoint=endpoint,
                status=500
            ).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "path": endpoint,
                    "duration": duration,
                    "error": str(e)
                },
                exc_info=True
            )
            raise


def record_auth_failure(stage: str, reason: str):
    """Record an authentication failure at the given stage"""
    authentication_failures_total.labels(stage=stage, reason=reason).inc()


def record_guard_decision(state: str):
    """Record the state a route guard walk ended in"""
    route_guard_decisions_total.labels(state=state).inc()


def record_presence_failure(operation: str):
    """Record a presence write that was skipped after an error"""
    presence_heartbeat_failures_total.labels(operation=operation).inc()


def record_idle_timeout():
    idle_timeouts_total.inc()


def set_online_admins(count: int):
    online_admins_gauge.set(count)
