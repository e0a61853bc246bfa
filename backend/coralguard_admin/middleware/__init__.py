"""Middleware modules for production-ready features"""
from coralguard_admin.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_role_change,
    record_swallowed_failure,
)
from coralguard_admin.middleware.rate_limit import limiter, get_rate_limit

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_role_change",
    "record_swallowed_failure",
    "limiter",
    "get_rate_limit"
]
