"""Presence snapshots and admin session history"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adminguard.errors import DependencyError
from adminguard.models.presence import AdminSession, UserPresence
from adminguard.utils.logger import logger

# A presence row seen within this window is listed as a recent session
RECENTLY_ACTIVE_WINDOW = timedelta(minutes=5)
# ... and flagged as active right now within this one
ACTIVE_NOW_WINDOW = timedelta(minutes=1)


class PresenceStore:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, operation: str, admin_id: Optional[str]) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Presence {operation} failed: {exc}", extra={"admin_id": admin_id})
            raise DependencyError("Presence store unavailable")

    def upsert_presence(
        self,
        user_id: str,
        last_seen_at: datetime,
        session_duration_seconds: int,
        **fields: Any,
    ) -> UserPresence:
        """Insert or update the snapshot row.

        ``fields`` may carry email, role, online_at, session_start, page_path
        and presence_metadata; columns not passed keep their stored value.
        """
        try:
            record = self.db.query(UserPresence).filter(UserPresence.user_id == user_id).first()
        except SQLAlchemyError as exc:
            logger.error(f"Presence lookup failed: {exc}", extra={"admin_id": user_id})
            raise DependencyError("Presence store unavailable")

        if record is None:
            record = UserPresence(user_id=user_id)
            self.db.add(record)
        record.last_seen_at = last_seen_at
        record.session_duration_seconds = session_duration_seconds
        for name, value in fields.items():
            if not hasattr(UserPresence, name):
                raise ValueError(f"Unknown presence field: {name}")
            setattr(record, name, value)

        self._commit("upsert", user_id)
        return record

    def start_session(
        self,
        admin_id: str,
        started_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AdminSession:
        session = AdminSession(
            admin_id=admin_id,
            started_at=started_at,
            last_activity_at=started_at,
            ip_address=ip_address,
            user_agent=user_agent,
            session_metadata=metadata or None,
        )
        self.db.add(session)
        self._commit("session start", admin_id)
        return session

    def end_session(self, admin_id: str, ended_at: datetime, duration_seconds: int) -> bool:
        """Close the admin's most recent open session. Returns False if none is open."""
        try:
            session = (
                self.db.query(AdminSession)
                .filter(AdminSession.admin_id == admin_id, AdminSession.ended_at.is_(None))
                .order_by(AdminSession.started_at.desc(), AdminSession.id.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Session lookup failed: {exc}", extra={"admin_id": admin_id})
            raise DependencyError("Presence store unavailable")
        if session is None:
            return False

        session.ended_at = ended_at
        session.duration_seconds = duration_seconds
        session.last_activity_at = ended_at

        presence = self.db.query(UserPresence).filter(UserPresence.user_id == admin_id).first()
        if presence is not None:
            presence.last_seen_at = ended_at
            presence.session_duration_seconds = duration_seconds

        self._commit("session end", admin_id)
        return True

    def active_sessions(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Admins seen within RECENTLY_ACTIVE_WINDOW, most recent first."""
        now = now or datetime.utcnow()
        try:
            records = (
                self.db.query(UserPresence)
                .filter(UserPresence.last_seen_at >= now - RECENTLY_ACTIVE_WINDOW)
                .order_by(UserPresence.last_seen_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error(f"Active session query failed: {exc}")
            raise DependencyError("Presence store unavailable")

        return [
            {
                "userId": record.user_id,
                "email": record.email,
                "role": record.role,
                "pagePath": record.page_path,
                "sessionStart": record.session_start.isoformat() if record.session_start else None,
                "lastSeenAt": record.last_seen_at.isoformat(),
                "sessionDurationSeconds": record.session_duration_seconds,
                "isActive": now - record.last_seen_at <= ACTIVE_NOW_WINDOW,
            }
            for record in records
        ]
