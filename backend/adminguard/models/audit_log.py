"""Audit log model"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from adminguard.database import Base
from adminguard.models.admin_user import generate_uuid_string


class AuditLog(Base):
    """AuditLog model - append-only record of security-relevant transitions"""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(String(36), default=generate_uuid_string, unique=True, nullable=False, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    actor_id = Column(String(36), nullable=True, index=True)   # admin_users.id, null for unknown callers
    outcome = Column(String(20), nullable=False)               # success, failed
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    log_metadata = Column("metadata", JSON, nullable=True)     # Column name is 'metadata', attribute is 'log_metadata'
    error_message = Column(Text, nullable=True)
    previous_hash = Column(String(64), nullable=False)
