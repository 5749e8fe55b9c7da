"""Database models"""
from adminguard.models.admin_user import AdminUser
from adminguard.models.audit_log import AuditLog
from adminguard.models.presence import AdminSession, UserPresence
from adminguard.models.revoked_token import RevokedToken

__all__ = ["AdminUser", "AdminSession", "AuditLog", "RevokedToken", "UserPresence"]
