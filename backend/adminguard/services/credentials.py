"""Credential check: email + password against the identity store"""
import enum
from dataclasses import dataclass
from typing import Optional

from adminguard.errors import ValidationError
from adminguard.models.admin_user import AdminUser
from adminguard.services.identity import IdentityStore
from adminguard.utils.auth import burn_password_check, verify_password


class CredentialOutcome(str, enum.Enum):
    SUCCESS = "success"
    USER_NOT_FOUND = "user_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    NOT_ADMIN_ROLE = "not_admin_role"
    ACCOUNT_DEACTIVATED = "account_deactivated"


@dataclass(frozen=True)
class CredentialResult:
    outcome: CredentialOutcome
    profile: Optional[AdminUser] = None

    @property
    def ok(self) -> bool:
        return self.outcome is CredentialOutcome.SUCCESS


class CredentialAuthenticator:
    """Classifies a login attempt.

    The classification is for audit metadata only; callers must surface every
    failure identically so a response never reveals which check failed.
    """

    def __init__(self, identities: IdentityStore):
        self.identities = identities

    def authenticate(self, email: Optional[str], password: Optional[str]) -> CredentialResult:
        if not email or not password or not email.strip():
            raise ValidationError("Email and password are required")

        user = self.identities.get_by_email(email)
        if user is None:
            burn_password_check(password)
            return CredentialResult(CredentialOutcome.USER_NOT_FOUND)

        if not verify_password(password, user.password_hash):
            return CredentialResult(CredentialOutcome.INVALID_CREDENTIALS, user)
        if not user.email_confirmed:
            return CredentialResult(CredentialOutcome.EMAIL_NOT_CONFIRMED, user)
        if not user.is_admin:
            return CredentialResult(CredentialOutcome.NOT_ADMIN_ROLE, user)
        if not user.is_active:
            return CredentialResult(CredentialOutcome.ACCOUNT_DEACTIVATED, user)

        return CredentialResult(CredentialOutcome.SUCCESS, user)
