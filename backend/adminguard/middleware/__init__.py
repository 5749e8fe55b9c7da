"""Middleware modules: monitoring, rate limiting and the admin route guard"""
from adminguard.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_guard_decision,
    record_idle_timeout,
    record_presence_failure,
    set_online_admins,
)
from adminguard.middleware.rate_limit import limiter, get_rate_limit

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_guard_decision",
    "record_idle_timeout",
    "record_presence_failure",
    "set_online_admins",
    "limiter",
    "get_rate_limit",
]
