"""Rate limiting for the credential and verification endpoints"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from adminguard.config import settings


def get_identifier(request: Request) -> str:
    """
    Rate limit key for unauthenticated auth endpoints.

    Login and 2FA calls arrive before a session exists, so the caller's
    address is the only stable key. Behind a trusted proxy the first
    X-Forwarded-For hop is used instead of the socket peer.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


RATE_LIMITS = {
    # Credential guessing surface
    "login": "10/minute",
    "two_factor_verify": "10/minute",
    "backup_code": "5/minute",
    "two_factor_enroll": "10/minute",

    # Session reads
    "session": "120/minute",
    "logout": "30/minute",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
