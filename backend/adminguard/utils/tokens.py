"""Codecs for the three signed admin tokens.

* ChallengeToken: password verified, 2FA pending (5 minutes)
* SessionToken: authenticated admin session (7 days)
* TwoFactorStamp: 2FA satisfied recently (1 hour, non-sliding)

Each token is a signed JWT; no field is trusted before the signature is
verified. Lifetimes are checked here against an injectable ``now`` (epoch
seconds) so expiry stays a predicate evaluated on use.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from adminguard.config import settings
from adminguard.errors import AuthenticationError, ChallengeExpired, MalformedToken
from adminguard.utils.jwt_utils import sign_claims, verify_signature

CHALLENGE_TYPE = "challenge"
SESSION_TYPE = "session"
TWO_FACTOR_TYPE = "2fa"


def _now(now: Optional[float]) -> float:
    return time.time() if now is None else now


@dataclass(frozen=True)
class ChallengeClaims:
    user_id: str
    issued_at: int
    jti: str

    @property
    def expires_at(self) -> int:
        return self.issued_at + settings.CHALLENGE_TOKEN_TTL_SECONDS


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: str
    role: str
    issued_at: int
    expires_at: int
    two_factor_verified: bool
    jti: str


@dataclass(frozen=True)
class TwoFactorStampClaims:
    user_id: str
    timestamp: int


class ChallengeTokenCodec:
    """Short-lived bearer value for a password-verified, 2FA-pending login"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CHALLENGE_TOKEN_TTL_SECONDS

    def issue(self, user_id: str, now: Optional[float] = None) -> str:
        issued_at = int(_now(now))
        return sign_claims({
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
            "jti": str(uuid.uuid4()),
            "type": CHALLENGE_TYPE,
        })

    def decode(self, token: str, now: Optional[float] = None) -> ChallengeClaims:
        claims = verify_signature(token, CHALLENGE_TYPE)
        if _now(now) - claims["iat"] > self.ttl_seconds:
            raise ChallengeExpired()
        return ChallengeClaims(
            user_id=claims["sub"],
            issued_at=int(claims["iat"]),
            jti=claims.get("jti", ""),
        )

    def verify(self, token: str, now: Optional[float] = None) -> str:
        """Return the user id, or raise MalformedToken / ChallengeExpired."""
        return self.decode(token, now).user_id


class SessionTokenCodec:
    """Long-lived authenticated-session token carried in the session cookie"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SESSION_TOKEN_TTL_SECONDS

    def issue(self, user_id: str, email: str, role: str, two_factor_verified: bool,
              now: Optional[float] = None) -> str:
        issued_at = int(_now(now))
        return sign_claims({
            "sub": user_id,
            "email": email,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
            "twoFactorVerified": bool(two_factor_verified),
            "jti": str(uuid.uuid4()),
            "type": SESSION_TYPE,
        })

    def verify(self, token: str, now: Optional[float] = None) -> SessionClaims:
        claims = verify_signature(token, SESSION_TYPE)
        expires_at = int(claims.get("exp", claims["iat"] + self.ttl_seconds))
        if _now(now) > expires_at:
            raise AuthenticationError("Session expired")
        if not claims.get("jti"):
            raise MalformedToken()
        return SessionClaims(
            user_id=claims["sub"],
            email=claims.get("email", ""),
            role=claims.get("role", ""),
            issued_at=int(claims["iat"]),
            expires_at=expires_at,
            two_factor_verified=bool(claims.get("twoFactorVerified", False)),
            jti=claims["jti"],
        )


class TwoFactorStampCodec:
    """Marker proving 2FA was satisfied within the last hour"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.TWO_FACTOR_STAMP_TTL_SECONDS

    def issue(self, user_id: str, now: Optional[float] = None) -> str:
        timestamp = int(_now(now))
        return sign_claims({
            "sub": user_id,
            "iat": timestamp,
            "timestamp": timestamp,
            "type": TWO_FACTOR_TYPE,
        })

    def decode(self, token: str) -> TwoFactorStampClaims:
        claims = verify_signature(token, TWO_FACTOR_TYPE)
        timestamp = claims.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            raise MalformedToken()
        return TwoFactorStampClaims(user_id=claims["sub"], timestamp=int(timestamp))

    def is_valid(self, token: Optional[str], user_id: str, now: Optional[float] = None) -> bool:
        """True when the stamp is well-formed, belongs to ``user_id`` and is unexpired."""
        if not token:
            return False
        try:
            stamp = self.decode(token)
        except MalformedToken:
            return False
        if stamp.user_id != user_id:
            return False
        return _now(now) - stamp.timestamp <= self.ttl_seconds
