"""AdminUser model: admin identities with roles and TOTP enrollment"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, JSON, String

from adminguard.database import Base

ADMIN_ROLES = ("admin", "super_admin")
VALID_ROLES = ("admin", "super_admin", "user")


def generate_uuid_string():
    """Generate UUID as string for SQLite compatibility"""
    return str(uuid.uuid4())


class AdminUser(Base):
    """An identity that may sign in to the admin console.

    Only ``admin`` and ``super_admin`` roles pass the credential check; ``user``
    rows exist so a demoted account is rejected with a classified outcome instead
    of looking like an unknown email.
    """

    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=generate_uuid_string)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)                  # bcrypt
    role = Column(String(20), nullable=False, default="admin")            # admin|super_admin|user
    is_active = Column(Boolean, default=True, nullable=False)
    email_confirmed = Column(Boolean, default=True, nullable=False)
    totp_secret = Column(String(64), nullable=True)                       # base32, set on enrollment
    totp_enabled = Column(Boolean, default=False, nullable=False)
    backup_code_hashes = Column(JSON, default=list, nullable=False)       # SHA-256 of unused codes
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
