"""Route Guard: per-request authorization for admin pages.

Every browser navigation under ``/admin`` walks the same state machine::

    Public -> NeedsSession -> NeedsProfile -> NeedsActive -> NeedsTwoFactor -> Authorized

and ends in either ``PassThrough`` or ``Redirect``. The walk is repeated on
every request against the persisted admin record and the two cookies; nothing
is cached in process memory. Failures never surface as raw 401/403 pages: the
browser is sent back to the login (or 2FA) page with an explicit ``error``
reason and, where useful, the path it was trying to reach.
"""
import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from adminguard import database
from adminguard.config import settings
from adminguard.errors import (
    AccountDeactivated,
    AdminGuardError,
    IdentityNotFound,
    NotAdminRole,
    SessionRequired,
)
from adminguard.middleware.monitoring import record_guard_decision
from adminguard.services.session_resolver import AuthSessionResolver, ResolvedSession
from adminguard.utils.cookies import clear_two_factor_cookie
from adminguard.utils.logger import logger
from adminguard.utils.tokens import TwoFactorStampCodec

REASON_UNAUTHORIZED = "unauthorized"
REASON_DEACTIVATED = "deactivated"
REASON_SESSION = "session"


class GuardState(str, enum.Enum):
    PUBLIC = "public"
    NEEDS_SESSION = "needs_session"
    NEEDS_PROFILE = "needs_profile"
    NEEDS_ACTIVE = "needs_active"
    NEEDS_TWO_FACTOR = "needs_two_factor"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class PassThrough:
    state: GuardState
    session: Optional[ResolvedSession] = None


@dataclass(frozen=True)
class Redirect:
    state: GuardState
    target: str
    reason: Optional[str] = None
    clear_two_factor: bool = False


def _login_url(path: Optional[str] = None, reason: Optional[str] = None) -> str:
    params = {}
    if path:
        params["redirect"] = path
    if reason:
        params["error"] = reason
    query = urlencode(params)
    return f"{settings.ADMIN_LOGIN_PATH}?{query}" if query else settings.ADMIN_LOGIN_PATH


def _two_factor_url(path: str) -> str:
    return f"{settings.ADMIN_TWO_FACTOR_PATH}?{urlencode({'redirect': path})}"


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


class RouteGuard:
    """The authorization state machine, independent of the ASGI plumbing"""

    def __init__(
        self,
        stamp_codec: Optional[TwoFactorStampCodec] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.stamp_codec = stamp_codec or TwoFactorStampCodec()
        self.clock = clock

    @staticmethod
    def in_scope(path: str) -> bool:
        """Admin page paths; API, WebSocket and static asset paths are not guarded here."""
        if not _matches(path, settings.ADMIN_PATH_PREFIX):
            return False
        if "." in path.rsplit("/", 1)[-1]:
            return False
        return not any(_matches(path, prefix) for prefix in settings.unguarded_prefixes)

    @staticmethod
    def is_public(path: str) -> bool:
        """Login pages and everything below them."""
        return any(_matches(path, public) for public in settings.public_paths)

    @staticmethod
    def requires_two_factor(path: str) -> bool:
        return any(_matches(path, prefix) for prefix in settings.two_factor_prefixes)

    def evaluate(
        self,
        path: str,
        resolver: AuthSessionResolver,
        session_token: Optional[str],
        stamp_token: Optional[str],
    ):
        if self.is_public(path):
            return PassThrough(GuardState.PUBLIC)

        try:
            session = resolver.resolve(session_token)
        except SessionRequired:
            return Redirect(
                GuardState.NEEDS_SESSION,
                _login_url(path, REASON_SESSION if session_token else None),
                REASON_SESSION if session_token else None,
            )
        except (IdentityNotFound, NotAdminRole):
            return Redirect(GuardState.NEEDS_PROFILE, _login_url(reason=REASON_UNAUTHORIZED), REASON_UNAUTHORIZED)
        except AccountDeactivated:
            return Redirect(GuardState.NEEDS_ACTIVE, _login_url(reason=REASON_DEACTIVATED), REASON_DEACTIVATED)

        if self.requires_two_factor(path) and session.identity.totp_enabled:
            if not self.stamp_codec.is_valid(stamp_token, session.user_id, now=self.clock()):
                return Redirect(
                    GuardState.NEEDS_TWO_FACTOR,
                    _two_factor_url(path),
                    clear_two_factor=True,
                )

        return PassThrough(GuardState.AUTHORIZED, session)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Applies :class:`RouteGuard` to every in-scope request.

    ``session_factory`` opens the database session used for the one identity
    read per request; it defaults to the application's ``SessionLocal``.
    """

    def __init__(self, app, session_factory: Optional[Callable[[], Session]] = None,
                 guard: Optional[RouteGuard] = None):
        super().__init__(app)
        self._session_factory = session_factory
        self.guard = guard or RouteGuard()

    def _decide(self, path: str, session_token: Optional[str], stamp_token: Optional[str]):
        """Runs in the thread pool: opens the session, evaluates, closes."""
        session_factory = self._session_factory or database.SessionLocal
        db = session_factory()
        try:
            return self.guard.evaluate(path, AuthSessionResolver(db), session_token, stamp_token)
        except AdminGuardError as exc:
            logger.error(
                f"Route guard dependency failure: {exc.message}",
                extra={"path": path, "reason": REASON_SESSION},
            )
            return Redirect(GuardState.NEEDS_SESSION, _login_url(reason=REASON_SESSION), REASON_SESSION)
        finally:
            db.close()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self.guard.in_scope(path):
            return await call_next(request)

        decision = await run_in_threadpool(
            self._decide,
            path,
            request.cookies.get(settings.SESSION_COOKIE_NAME),
            request.cookies.get(settings.TWO_FACTOR_COOKIE_NAME),
        )
        record_guard_decision(decision.state.value)

        if isinstance(decision, Redirect):
            logger.info(
                f"Route guard redirect: {path} -> {decision.target}",
                extra={"path": path, "reason": decision.reason, "outcome": decision.state.value},
            )
            response = RedirectResponse(decision.target, status_code=307)
            if decision.clear_two_factor:
                clear_two_factor_cookie(response)
            return response

        if decision.session is not None:
            request.state.admin_id = decision.session.user_id
            request.state.admin_role = decision.session.role
        return await call_next(request)
