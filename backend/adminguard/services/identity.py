"""Identity store over the ``admin_users`` table"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adminguard.errors import DependencyError
from adminguard.models.admin_user import AdminUser
from adminguard.utils.auth import hash_password
from adminguard.utils.logger import logger


class IdentityStore:
    """Reads admin identities; writes only for account creation and 2FA enrollment"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> Optional[AdminUser]:
        try:
            return self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        except SQLAlchemyError as exc:
            logger.error(f"Identity lookup failed: {exc}", extra={"admin_id": user_id})
            raise DependencyError("Identity store unavailable")

    def get_by_email(self, email: str) -> Optional[AdminUser]:
        try:
            return self.db.query(AdminUser).filter(AdminUser.email == email.strip().lower()).first()
        except SQLAlchemyError as exc:
            logger.error(f"Identity lookup failed: {exc}")
            raise DependencyError("Identity store unavailable")

    def create(
        self,
        email: str,
        password: str,
        role: str = "admin",
        is_active: bool = True,
        email_confirmed: bool = True,
    ) -> AdminUser:
        user = AdminUser(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
            email_confirmed=email_confirmed,
            backup_code_hashes=[],
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Created admin identity: {user.id}", extra={"admin_id": user.id})
        return user

    def begin_totp_enrollment(self, user: AdminUser, secret: str, backup_code_hashes: List[str]) -> None:
        """Store a pending secret; 2FA stays disabled until a code is confirmed."""
        user.totp_secret = secret
        user.totp_enabled = False
        user.backup_code_hashes = list(backup_code_hashes)
        self._commit(user)

    def enable_totp(self, user: AdminUser) -> None:
        user.totp_enabled = True
        self._commit(user)

    def replace_backup_codes(self, user: AdminUser, backup_code_hashes: List[str]) -> None:
        user.backup_code_hashes = list(backup_code_hashes)
        self._commit(user)

    def _commit(self, user: AdminUser) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Identity update failed: {exc}", extra={"admin_id": user.id})
            raise DependencyError("Identity store unavailable")
