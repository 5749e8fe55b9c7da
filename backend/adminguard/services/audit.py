"""Audit sink for security events.

An ``AuditLogger`` is constructed per request (or per live page connection)
around a database session; there is no process-wide instance. Writes are
best-effort: a failed append is rolled back and logged, never raised, so an
audit fault cannot break login or page rendering.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from adminguard.config import settings
from adminguard.models.admin_user import generate_uuid_string
from adminguard.models.audit_log import AuditLog
from adminguard.utils import chain as chain_utils
from adminguard.utils.logger import logger

# Actions written by the security core
LOGIN = "admin_login"
LOGIN_FAILED = "admin_login_failed"
LOGOUT = "admin_logout"
TWO_FACTOR_SUCCESS = "2fa_verification_success"
TWO_FACTOR_FAILURE = "2fa_verification_failure"
TWO_FACTOR_ENABLED = "2fa_enabled"
SESSION_START = "session_start"
SESSION_END = "session_end"


@dataclass
class RequestMeta:
    """Caller address and agent, taken from an HTTP request or WebSocket"""

    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @classmethod
    def from_connection(cls, conn: HTTPConnection) -> "RequestMeta":
        ip = None
        if settings.TRUST_PROXY_HEADERS:
            forwarded = conn.headers.get("x-forwarded-for")
            if forwarded:
                ip = forwarded.split(",")[0].strip()
        if not ip and conn.client:
            ip = conn.client.host
        return cls(
            ip_address=ip or "unknown",
            user_agent=conn.headers.get("user-agent", "unknown"),
        )


@dataclass
class AuditEvent:
    action: str
    resource_type: str
    outcome: str = "success"
    resource_id: Optional[str] = None
    actor_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class ChainReport:
    valid: bool
    total_entries: int
    broken_at: Optional[str] = None


class AuditLogger:
    """Append-only writer over the ``audit_logs`` table"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, event: AuditEvent) -> Optional[AuditLog]:
        try:
            prev = (
                self.db.query(AuditLog)
                .order_by(AuditLog.id.desc())
                .with_for_update()
                .first()
            )
            log_id = generate_uuid_string()
            if prev is None:
                previous_hash = chain_utils.genesis_hash()
            else:
                previous_hash = chain_utils.compute_hash(
                    prev_log_id=prev.log_id,
                    prev_timestamp=prev.timestamp,
                    current_log_id=log_id,
                    current_action=event.action,
                    current_actor=event.actor_id,
                )

            entry = AuditLog(
                log_id=log_id,
                timestamp=datetime.utcnow(),
                action=event.action,
                resource_type=event.resource_type,
                resource_id=event.resource_id,
                actor_id=event.actor_id,
                outcome=event.outcome,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                log_metadata=event.metadata or None,
                error_message=event.error_message,
                previous_hash=previous_hash,
            )
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                f"Failed to write audit log: {exc}",
                extra={"action": event.action, "admin_id": event.actor_id},
            )
            return None

        logger.info(
            f"Audit event: {event.action}",
            extra={"action": event.action, "admin_id": event.actor_id, "outcome": event.outcome},
        )
        return entry

    # ------------------------------------------------------------------
    # Convenience writers
    # ------------------------------------------------------------------

    def log_login(self, user_id: str, meta: RequestMeta, two_factor_used: bool) -> None:
        self.append(AuditEvent(
            action=LOGIN,
            resource_type="auth",
            resource_id=user_id,
            actor_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            metadata={"twoFactorUsed": two_factor_used},
        ))

    def log_login_failure(self, email: str, reason: str, meta: RequestMeta,
                          user_id: Optional[str] = None) -> None:
        self.append(AuditEvent(
            action=LOGIN_FAILED,
            resource_type="auth",
            outcome="failed",
            actor_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            metadata={"email": email, "reason": reason},
            error_message=reason,
        ))

    def log_logout(self, user_id: str, meta: RequestMeta) -> None:
        self.append(AuditEvent(
            action=LOGOUT,
            resource_type="auth",
            resource_id=user_id,
            actor_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        ))

    def log_two_factor(self, user_id: str, success: bool, meta: RequestMeta,
                       method: str = "totp", reason: Optional[str] = None) -> None:
        self.append(AuditEvent(
            action=TWO_FACTOR_SUCCESS if success else TWO_FACTOR_FAILURE,
            resource_type="auth",
            resource_id=user_id,
            actor_id=user_id,
            outcome="success" if success else "failed",
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            metadata={"method": method},
            error_message=reason,
        ))

    def log_two_factor_enabled(self, user_id: str, meta: RequestMeta) -> None:
        self.append(AuditEvent(
            action=TWO_FACTOR_ENABLED,
            resource_type="admin_user",
            resource_id=user_id,
            actor_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        ))

    def log_session_start(self, user_id: str, meta: RequestMeta, metadata: Dict[str, Any]) -> None:
        self.append(AuditEvent(
            action=SESSION_START,
            resource_type="session",
            resource_id=user_id,
            actor_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            metadata=metadata,
        ))

    def log_session_end(self, user_id: str, duration_seconds: int) -> None:
        self.append(AuditEvent(
            action=SESSION_END,
            resource_type="session",
            resource_id=user_id,
            actor_id=user_id,
            metadata={"durationSeconds": duration_seconds},
        ))

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def verify_chain(self) -> ChainReport:
        """Walk all entries in insertion order and recompute each link."""
        entries: List[AuditLog] = self.db.query(AuditLog).order_by(AuditLog.id.asc()).all()

        for i, entry in enumerate(entries):
            if i == 0:
                expected = chain_utils.genesis_hash()
            else:
                prev = entries[i - 1]
                expected = chain_utils.compute_hash(
                    prev_log_id=prev.log_id,
                    prev_timestamp=prev.timestamp,
                    current_log_id=entry.log_id,
                    current_action=entry.action,
                    current_actor=entry.actor_id,
                )
            if entry.previous_hash != expected:
                return ChainReport(valid=False, total_entries=len(entries), broken_at=entry.log_id)

        return ChainReport(valid=True, total_entries=len(entries))
