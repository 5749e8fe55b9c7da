"""Admin cookie helpers (session + 2FA stamp)"""
from starlette.responses import Response

from adminguard.config import settings


def _cookie_kwargs() -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": settings.ADMIN_COOKIE_PATH,
    }


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_TOKEN_TTL_SECONDS,
        **_cookie_kwargs(),
    )


def set_two_factor_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.TWO_FACTOR_COOKIE_NAME,
        token,
        max_age=settings.TWO_FACTOR_STAMP_TTL_SECONDS,
        **_cookie_kwargs(),
    )


def clear_two_factor_cookie(response: Response) -> None:
    """Expire the stamp cookie. Safe to call repeatedly or when no cookie exists."""
    response.delete_cookie(settings.TWO_FACTOR_COOKIE_NAME, **_cookie_kwargs())


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME, **_cookie_kwargs())
    clear_two_factor_cookie(response)
