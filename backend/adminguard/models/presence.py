"""Presence and session-history models"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from adminguard.database import Base


class UserPresence(Base):
    """Latest liveness snapshot for one admin, upserted by the heartbeat"""

    __tablename__ = "user_presence"

    user_id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=True)
    online_at = Column(DateTime, nullable=True)
    session_start = Column(DateTime, nullable=True)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    page_path = Column(String(512), nullable=True)
    session_duration_seconds = Column(Integer, default=0, nullable=False)
    presence_metadata = Column("metadata", JSON, nullable=True)


class AdminSession(Base):
    """One row per live admin page session; ended_at is null while open"""

    __tablename__ = "admin_sessions"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String(36), nullable=False, index=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    session_metadata = Column("metadata", JSON, nullable=True)
