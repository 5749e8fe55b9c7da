"""API dependencies for authentication and authorization.

Every authenticated admin API call goes through the same
:class:`AuthSessionResolver` the Route Guard uses. The session token is read
from ``Authorization: Bearer <JWT>`` when present, otherwise from the
``admin-session`` cookie.

RBAC
----
Use :func:`require_admin_session` for any admin endpoint and
:func:`require_role` where a minimum role applies.

Role hierarchy (higher level -> more permissions):
    super_admin (3) > admin (2) > user (1)
"""
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from adminguard.config import settings
from adminguard.database import get_db
from adminguard.errors import AuthorizationError
from adminguard.realtime.presence import PresenceRegistry
from adminguard.services.audit import AuditLogger, RequestMeta
from adminguard.services.identity import IdentityStore
from adminguard.services.session_resolver import AuthSessionResolver, ResolvedSession, TokenRevocations
from adminguard.services.totp import TotpService
from adminguard.utils.tokens import ChallengeTokenCodec, SessionTokenCodec, TwoFactorStampCodec

_bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------------------------

_ROLE_HIERARCHY: dict[str, int] = {
    "super_admin": 3,
    "admin": 2,
    "user": 1,
}


# ---------------------------------------------------------------------------
# Collaborators (constructed per request, never module-level singletons)
# ---------------------------------------------------------------------------

def get_audit_logger(db: Session = Depends(get_db)) -> AuditLogger:
    return AuditLogger(db)


def get_identity_store(db: Session = Depends(get_db)) -> IdentityStore:
    return IdentityStore(db)


def get_revocations(db: Session = Depends(get_db)) -> TokenRevocations:
    return TokenRevocations(db)


def get_resolver(db: Session = Depends(get_db)) -> AuthSessionResolver:
    return AuthSessionResolver(db)


def get_totp_service() -> TotpService:
    return TotpService()


def get_challenge_codec() -> ChallengeTokenCodec:
    return ChallengeTokenCodec()


def get_session_codec() -> SessionTokenCodec:
    return SessionTokenCodec()


def get_stamp_codec() -> TwoFactorStampCodec:
    return TwoFactorStampCodec()


def get_presence_registry(request: Request) -> PresenceRegistry:
    return request.app.state.presence_registry


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta.from_connection(request)


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------

def session_token_from(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Bearer token first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def require_admin_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    resolver: AuthSessionResolver = Depends(get_resolver),
) -> ResolvedSession:
    """Require a verified session belonging to an active admin.

    Raises SessionRequired / IdentityNotFound (401) or NotAdminRole /
    AccountDeactivated (403); the application error handler renders them
    as ``{"error": message}``.
    """
    session = resolver.resolve(session_token_from(request, credentials))
    request.state.admin_id = session.user_id
    request.state.admin_role = session.role
    return session


# ---------------------------------------------------------------------------
# require_role factory: role-gated dependency
# ---------------------------------------------------------------------------

def require_role(min_role: str) -> Callable:
    """Return a FastAPI dependency that enforces a minimum admin role.

    Usage::

        @router.get("/sensitive")
        def endpoint(session: ResolvedSession = Depends(require_role("super_admin"))):
            ...
    """
    min_level = _ROLE_HIERARCHY.get(min_role, 0)

    def _role_dep(session: ResolvedSession = Depends(require_admin_session)) -> ResolvedSession:
        role_level = _ROLE_HIERARCHY.get(session.role, 0)
        if role_level < min_level:
            raise AuthorizationError(f"Role '{min_role}' or higher required")
        return session

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _role_dep.__name__ = f"require_role_{min_role}"
    return _role_dep
