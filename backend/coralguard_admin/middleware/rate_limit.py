"""Rate limiting middleware for API protection"""
import hashlib

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from coralguard_admin.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting based on authentication

    Priority:
    1. Bearer token digest (authenticated admins)
    2. IP address (login and other unauthenticated calls)
    """
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        digest = hashlib.sha256(authorization[7:].encode()).hexdigest()[:16]
        return f"bearer:{digest}"

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


RATE_LIMITS = {
    "login": settings.RATE_LIMIT_LOGIN,
    "bulk_change_roles": "10/minute",
    "register": "50/hour",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
