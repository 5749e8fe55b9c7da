"""RevokedToken model: jti blocklist for signed admin tokens"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from adminguard.database import Base


class RevokedToken(Base):
    """Stores revoked token IDs (jti claims).

    Logout inserts the session token's jti; with ``CHALLENGE_SINGLE_USE`` the
    2FA step inserts the challenge token's jti. The session resolver checks this
    table on every authenticated request. expires_at mirrors the token's
    original expiry so old rows can be pruned safely.
    """

    __tablename__ = "revoked_tokens"

    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String(36), unique=True, nullable=False, index=True)
    token_type = Column(String(20), nullable=False)   # session | challenge
    revoked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
