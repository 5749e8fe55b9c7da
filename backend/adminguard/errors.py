"""Error taxonomy for the admin security core.

Every error carries the HTTP status it maps to at an API boundary. The Route
Guard never lets these reach a browser; it turns them into redirects with a
reason code instead.
"""


class AdminGuardError(Exception):
    """Base class for all domain errors"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(AdminGuardError):
    """Malformed input (missing credentials, non-6-digit code, ...)"""

    status_code = 400


class CodeFormatError(ValidationError):
    """Verification code is not exactly six digits"""

    def __init__(self, message: str = "Invalid verification code format"):
        super().__init__(message)


class AuthenticationError(AdminGuardError):
    """Caller could not be authenticated; message is deliberately generic"""

    status_code = 401


class MalformedToken(AuthenticationError):
    """Token failed signature verification, decoding, or type check"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ChallengeExpired(AuthenticationError):
    """Challenge token is older than its window"""

    def __init__(self, message: str = "Temporary token expired"):
        super().__init__(message)


class AuthorizationError(AdminGuardError):
    """Authenticated but not allowed (wrong role, deactivated)"""

    status_code = 403


class NotFoundError(AdminGuardError):
    status_code = 404


class DependencyError(AdminGuardError):
    """A collaborator (identity store, presence store, audit sink) failed"""

    status_code = 500


# ---------------------------------------------------------------------------
# Session resolution outcomes. ``reason`` is the redirect code the Route Guard
# puts on the login URL.
# ---------------------------------------------------------------------------

class SessionRequired(AuthenticationError):
    """No session, or a session token that is invalid, expired or revoked"""

    reason = "session"

    def __init__(self, message: str = "Unauthorized: Admin session required"):
        super().__init__(message)


class IdentityNotFound(AuthenticationError):
    """Session is genuine but its admin record is gone"""

    reason = "unauthorized"

    def __init__(self, message: str = "Unauthorized: Admin session required"):
        super().__init__(message)


class NotAdminRole(AuthorizationError):
    reason = "unauthorized"

    def __init__(self, message: str = "Forbidden: Admin role required"):
        super().__init__(message)


class AccountDeactivated(AuthorizationError):
    reason = "deactivated"

    def __init__(self, message: str = "Account deactivated"):
        super().__init__(message)
