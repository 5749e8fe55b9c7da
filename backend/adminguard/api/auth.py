"""Admin authentication endpoints: login, 2FA, session validation, logout"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from adminguard.api.deps import (
    get_audit_logger,
    get_challenge_codec,
    get_identity_store,
    get_presence_registry,
    get_request_meta,
    get_resolver,
    get_revocations,
    get_session_codec,
    get_stamp_codec,
    get_totp_service,
    require_admin_session,
    session_token_from,
)
from adminguard.config import settings
from adminguard.errors import (
    AdminGuardError,
    AuthenticationError,
    ChallengeExpired,
    CodeFormatError,
    DependencyError,
    MalformedToken,
    NotAdminRole,
    NotFoundError,
    SessionRequired,
    ValidationError,
)
from adminguard.middleware.monitoring import record_auth_failure
from adminguard.middleware.rate_limit import get_rate_limit, limiter
from adminguard.models.admin_user import AdminUser
from adminguard.realtime.presence import PresenceRegistry
from adminguard.schemas.auth import (
    BackupCodeRequest,
    LoginRequest,
    SessionUser,
    TwoFactorConfirmRequest,
    TwoFactorEnrollmentResponse,
    TwoFactorVerifyRequest,
)
from adminguard.services.audit import AuditLogger, RequestMeta
from adminguard.services.credentials import CredentialAuthenticator
from adminguard.services.identity import IdentityStore
from adminguard.services.session_resolver import AuthSessionResolver, ResolvedSession, TokenRevocations
from adminguard.services.totp import CODE_PATTERN, TotpService
from adminguard.utils.auth import hash_backup_code
from adminguard.utils.cookies import clear_session_cookies, set_session_cookie, set_two_factor_cookie
from adminguard.utils.logger import logger
from adminguard.utils.tokens import (
    CHALLENGE_TYPE,
    SESSION_TYPE,
    ChallengeClaims,
    ChallengeTokenCodec,
    SessionTokenCodec,
    TwoFactorStampCodec,
)

router = APIRouter(prefix="/admin/api/auth", tags=["auth"])

_bearer_scheme = HTTPBearer(auto_error=False)


def _user_summary(user: AdminUser) -> Dict[str, Any]:
    return {"id": user.id, "email": user.email, "role": user.role}


# ---------------------------------------------------------------------------
# POST /admin/api/auth/login
# ---------------------------------------------------------------------------

@router.post("/login")
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    response: Response,
    body: Optional[LoginRequest] = None,
    identities: IdentityStore = Depends(get_identity_store),
    audit: AuditLogger = Depends(get_audit_logger),
    challenge_codec: ChallengeTokenCodec = Depends(get_challenge_codec),
    session_codec: SessionTokenCodec = Depends(get_session_codec),
    meta: RequestMeta = Depends(get_request_meta),
) -> Dict[str, Any]:
    """Check email and password.

    Admins without 2FA get a session cookie straight away. Admins with 2FA
    get a short-lived ``temporaryToken`` to present with their TOTP code.
    Every credential failure returns the same 401 so the response never
    reveals which check failed.
    """
    body = body or LoginRequest()
    result = CredentialAuthenticator(identities).authenticate(body.email, body.password)

    if not result.ok:
        reason = result.outcome.value
        record_auth_failure("password", reason)
        audit.log_login_failure(
            body.email.strip().lower(),
            reason,
            meta,
            user_id=result.profile.id if result.profile else None,
        )
        logger.warning("Admin login rejected", extra={"reason": reason, "outcome": "failed"})
        raise AuthenticationError("Invalid credentials")

    user = result.profile
    if user.totp_enabled and user.totp_secret:
        logger.info("Admin login awaiting 2FA", extra={"admin_id": user.id})
        return {
            "success": True,
            "requiresTwoFactor": True,
            "temporaryToken": challenge_codec.issue(user.id),
            "user": {"id": user.id, "email": user.email},
        }

    token = session_codec.issue(user.id, user.email, user.role, two_factor_verified=False)
    set_session_cookie(response, token)
    audit.log_login(user.id, meta, two_factor_used=False)
    return {"success": True, "user": _user_summary(user)}


# ---------------------------------------------------------------------------
# 2FA completion (TOTP code or backup code)
# ---------------------------------------------------------------------------

def _decode_challenge(
    token: str,
    codec: ChallengeTokenCodec,
    revocations: TokenRevocations,
) -> ChallengeClaims:
    try:
        claims = codec.decode(token)
    except ChallengeExpired as exc:
        raise ValidationError(exc.message)
    except MalformedToken:
        raise ValidationError("Invalid temporary token")
    if settings.CHALLENGE_SINGLE_USE and revocations.is_revoked(claims.jti):
        raise ValidationError("Invalid temporary token")
    return claims


def _load_challenged_user(identities: IdentityStore, user_id: str) -> AdminUser:
    user = identities.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    if not user.is_admin:
        raise NotAdminRole()
    if not user.totp_enabled or not user.totp_secret:
        raise ValidationError("2FA is not enabled for this account")
    return user


def _burn_challenge(claims: ChallengeClaims, revocations: TokenRevocations) -> None:
    """Spend a single-use challenge. Runs before any backup code is consumed."""
    if settings.CHALLENGE_SINGLE_USE and not revocations.revoke(claims.jti, CHALLENGE_TYPE, claims.expires_at):
        raise ValidationError("Invalid temporary token")


def _complete_two_factor(
    user: AdminUser,
    claims: ChallengeClaims,
    response: Response,
    method: str,
    session_codec: SessionTokenCodec,
    stamp_codec: TwoFactorStampCodec,
    audit: AuditLogger,
    meta: RequestMeta,
) -> Dict[str, Any]:
    token = session_codec.issue(user.id, user.email, user.role, two_factor_verified=True)
    set_session_cookie(response, token)
    set_two_factor_cookie(response, stamp_codec.issue(user.id))

    audit.log_two_factor(user.id, success=True, meta=meta, method=method)
    audit.log_login(user.id, meta, two_factor_used=True)
    return {"success": True, "user": _user_summary(user), "token": token}


@router.post("/2fa/verify")
@limiter.limit(get_rate_limit("two_factor_verify"))
def verify_two_factor(
    request: Request,
    response: Response,
    body: Optional[TwoFactorVerifyRequest] = None,
    identities: IdentityStore = Depends(get_identity_store),
    revocations: TokenRevocations = Depends(get_revocations),
    audit: AuditLogger = Depends(get_audit_logger),
    totp: TotpService = Depends(get_totp_service),
    challenge_codec: ChallengeTokenCodec = Depends(get_challenge_codec),
    session_codec: SessionTokenCodec = Depends(get_session_codec),
    stamp_codec: TwoFactorStampCodec = Depends(get_stamp_codec),
    meta: RequestMeta = Depends(get_request_meta),
) -> Dict[str, Any]:
    """Exchange a challenge token and a 6-digit TOTP code for a session."""
    body = body or TwoFactorVerifyRequest()
    if not body.temporary_token or not body.code:
        raise ValidationError("Temporary token and verification code are required")
    if not CODE_PATTERN.fullmatch(body.code):
        raise CodeFormatError()

    claims = _decode_challenge(body.temporary_token, challenge_codec, revocations)
    user = _load_challenged_user(identities, claims.user_id)

    if not totp.verify_code(user.totp_secret, body.code):
        record_auth_failure("two_factor", "invalid_code")
        audit.log_two_factor(user.id, success=False, meta=meta, method="totp", reason="invalid_code")
        raise ValidationError("Invalid verification code")

    _burn_challenge(claims, revocations)
    return _complete_two_factor(
        user, claims, response, "totp", session_codec, stamp_codec, audit, meta,
    )


@router.post("/2fa/backup")
@limiter.limit(get_rate_limit("backup_code"))
def verify_backup_code(
    request: Request,
    response: Response,
    body: Optional[BackupCodeRequest] = None,
    identities: IdentityStore = Depends(get_identity_store),
    revocations: TokenRevocations = Depends(get_revocations),
    audit: AuditLogger = Depends(get_audit_logger),
    challenge_codec: ChallengeTokenCodec = Depends(get_challenge_codec),
    session_codec: SessionTokenCodec = Depends(get_session_codec),
    stamp_codec: TwoFactorStampCodec = Depends(get_stamp_codec),
    meta: RequestMeta = Depends(get_request_meta),
) -> Dict[str, Any]:
    """Exchange a challenge token and a one-time backup code for a session."""
    body = body or BackupCodeRequest()
    if not body.temporary_token or not body.backup_code:
        raise ValidationError("Temporary token and backup code are required")

    claims = _decode_challenge(body.temporary_token, challenge_codec, revocations)
    user = _load_challenged_user(identities, claims.user_id)

    matched, remaining = TotpService.consume_backup_code(user.backup_code_hashes or [], body.backup_code)
    if not matched:
        record_auth_failure("backup_code", "invalid_code")
        audit.log_two_factor(user.id, success=False, meta=meta, method="backup_code", reason="invalid_code")
        raise ValidationError("Invalid backup code")
    _burn_challenge(claims, revocations)
    identities.replace_backup_codes(user, remaining)

    result = _complete_two_factor(
        user, claims, response, "backup_code", session_codec, stamp_codec, audit, meta,
    )
    result["remainingBackupCodes"] = len(remaining)
    return result


# ---------------------------------------------------------------------------
# 2FA enrollment
# ---------------------------------------------------------------------------

@router.post("/2fa/enable", response_model=TwoFactorEnrollmentResponse, response_model_by_alias=True)
@limiter.limit(get_rate_limit("two_factor_enroll"))
def enable_two_factor(
    request: Request,
    session: ResolvedSession = Depends(require_admin_session),
    identities: IdentityStore = Depends(get_identity_store),
    totp: TotpService = Depends(get_totp_service),
) -> TwoFactorEnrollmentResponse:
    """Start TOTP enrollment: new secret, provisioning URI and backup codes.

    2FA stays off until ``/2fa/confirm`` receives a valid code for the new
    secret. The backup codes are only ever shown in this response.
    """
    user = session.identity
    if user.totp_enabled:
        raise ValidationError("2FA is already enabled for this account")

    enrollment = totp.generate(user.email)
    identities.begin_totp_enrollment(
        user,
        enrollment.secret,
        [hash_backup_code(code) for code in enrollment.backup_codes],
    )
    logger.info("2FA enrollment started", extra={"admin_id": user.id})
    return TwoFactorEnrollmentResponse(
        secret=enrollment.secret,
        manual_entry_key=enrollment.manual_entry_key,
        qr_code_url=enrollment.provisioning_uri,
        backup_codes=enrollment.backup_codes,
    )


@router.post("/2fa/confirm")
@limiter.limit(get_rate_limit("two_factor_enroll"))
def confirm_two_factor(
    request: Request,
    response: Response,
    body: Optional[TwoFactorConfirmRequest] = None,
    session: ResolvedSession = Depends(require_admin_session),
    identities: IdentityStore = Depends(get_identity_store),
    audit: AuditLogger = Depends(get_audit_logger),
    totp: TotpService = Depends(get_totp_service),
    stamp_codec: TwoFactorStampCodec = Depends(get_stamp_codec),
    meta: RequestMeta = Depends(get_request_meta),
) -> Dict[str, Any]:
    """Turn 2FA on once the admin proves their authenticator has the secret."""
    body = body or TwoFactorConfirmRequest()
    if not body.code:
        raise ValidationError("Verification code is required")

    user = session.identity
    if not user.totp_secret:
        raise ValidationError("2FA setup has not been started")

    if not totp.verify_code(user.totp_secret, body.code):
        record_auth_failure("two_factor", "invalid_enrollment_code")
        raise ValidationError("Invalid verification code")

    identities.enable_totp(user)
    set_two_factor_cookie(response, stamp_codec.issue(user.id))
    audit.log_two_factor_enabled(user.id, meta)
    return {"success": True, "enabled": True}


# ---------------------------------------------------------------------------
# GET /admin/api/auth/session
# ---------------------------------------------------------------------------

@router.get("/session")
@limiter.limit(get_rate_limit("session"))
def validate_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    resolver: AuthSessionResolver = Depends(get_resolver),
    stamp_codec: TwoFactorStampCodec = Depends(get_stamp_codec),
):
    """Report whether the bearer token is a live admin session.

    ``twoFactorVerified`` reflects the 2FA stamp cookie, i.e. whether the
    admin may open 2FA-protected pages right now.
    """
    if not credentials or not credentials.credentials:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"valid": False, "error": "No authorization token provided"},
        )
    try:
        session = resolver.resolve(credentials.credentials)
    except AdminGuardError as exc:
        if exc.status_code < 500:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"valid": False, "error": exc.message},
            )
        raise

    user = session.identity
    stamp = request.cookies.get(settings.TWO_FACTOR_COOKIE_NAME)
    session_user = SessionUser(
        id=user.id,
        email=user.email,
        role=user.role,
        two_factor_enabled=bool(user.totp_enabled),
        two_factor_verified=stamp_codec.is_valid(stamp, user.id),
    )
    return {"valid": True, "user": session_user.model_dump(by_alias=True)}


# ---------------------------------------------------------------------------
# POST /admin/api/auth/logout
# ---------------------------------------------------------------------------

@router.post("/logout")
@limiter.limit(get_rate_limit("logout"))
def logout(
    request: Request,
    background_tasks: BackgroundTasks,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    resolver: AuthSessionResolver = Depends(get_resolver),
    audit: AuditLogger = Depends(get_audit_logger),
    registry: PresenceRegistry = Depends(get_presence_registry),
    meta: RequestMeta = Depends(get_request_meta),
):
    """End the admin session. Calling it again, or without a session, still succeeds."""
    try:
        token = session_token_from(request, credentials)
        user_id = None
        if token:
            try:
                claims = resolver.verify_token(token)
            except SessionRequired:
                claims = None
            if claims is not None and resolver.revocations.revoke(claims.jti, SESSION_TYPE, claims.expires_at):
                user_id = claims.user_id

        if user_id is not None:
            audit.log_logout(user_id, meta)
            background_tasks.add_task(registry.cleanup_user, user_id)
            logger.info("Admin logged out", extra={"admin_id": user_id})
    except DependencyError as exc:
        logger.error(f"Logout failed: {exc.message}")
        return JSONResponse(status_code=500, content={"error": "Failed to logout"})

    response = JSONResponse(content={"success": True}, background=background_tasks)
    clear_session_cookies(response)
    return response
