"""AuthSessionResolver: the single authority path for admin requests.

The Route Guard, the API dependencies and the presence WebSocket all resolve
the caller here, so there is exactly one trust model: verify the session
token's signature, lifetime and revocation status, then read the admin record
fresh from the identity store. Nothing is cached between requests; a
deactivation takes effect on the very next request.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from adminguard.errors import (
    AccountDeactivated,
    AuthenticationError,
    DependencyError,
    IdentityNotFound,
    NotAdminRole,
    SessionRequired,
)
from adminguard.models.admin_user import AdminUser
from adminguard.models.revoked_token import RevokedToken
from adminguard.services.identity import IdentityStore
from adminguard.utils.logger import logger
from adminguard.utils.tokens import SessionClaims, SessionTokenCodec


@dataclass(frozen=True)
class ResolvedSession:
    claims: SessionClaims
    identity: AdminUser

    @property
    def user_id(self) -> str:
        return self.identity.id

    @property
    def role(self) -> str:
        return self.identity.role


class TokenRevocations:
    """jti blocklist shared by logout and single-use challenge tokens"""

    def __init__(self, db: Session):
        self.db = db

    def is_revoked(self, jti: str) -> bool:
        try:
            return self.db.query(RevokedToken).filter(RevokedToken.jti == jti).first() is not None
        except SQLAlchemyError as exc:
            logger.error(f"Revocation lookup failed: {exc}")
            raise DependencyError("Token store unavailable")

    def revoke(self, jti: str, token_type: str, expires_at_epoch: float) -> bool:
        """Blocklist ``jti``. Returns False when it was already revoked."""
        if self.is_revoked(jti):
            return False
        self.db.add(RevokedToken(
            jti=jti,
            token_type=token_type,
            expires_at=datetime.fromtimestamp(expires_at_epoch, tz=timezone.utc).replace(tzinfo=None),
        ))
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent request revoked the same token first
            self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Token revocation failed: {exc}")
            raise DependencyError("Token store unavailable")
        return True


class AuthSessionResolver:
    def __init__(
        self,
        db: Session,
        codec: Optional[SessionTokenCodec] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.identities = IdentityStore(db)
        self.revocations = TokenRevocations(db)
        self.codec = codec or SessionTokenCodec()
        self.clock = clock

    def verify_token(self, token: Optional[str]) -> SessionClaims:
        """Signature, lifetime and revocation check; no identity read."""
        if not token:
            raise SessionRequired()
        try:
            claims = self.codec.verify(token, now=self.clock())
        except AuthenticationError:
            raise SessionRequired()
        if self.revocations.is_revoked(claims.jti):
            raise SessionRequired()
        return claims

    def resolve(self, token: Optional[str]) -> ResolvedSession:
        """Verified session plus the admin's current record.

        Raises SessionRequired, IdentityNotFound, NotAdminRole or
        AccountDeactivated, in that order of evaluation.
        """
        claims = self.verify_token(token)
        identity = self.identities.get_by_id(claims.user_id)
        if identity is None:
            raise IdentityNotFound()
        if not identity.is_admin:
            raise NotAdminRole()
        if not identity.is_active:
            raise AccountDeactivated()
        return ResolvedSession(claims=claims, identity=identity)
