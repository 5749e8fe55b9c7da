"""Tests for the admin auth API: login, 2FA, enrollment, session and logout"""
import time
from unittest import mock

import pyotp
import pytest

from adminguard.config import settings
from adminguard.models.audit_log import AuditLog
from adminguard.models.revoked_token import RevokedToken
from adminguard.services import audit as audit_actions
from adminguard.services.session_resolver import TokenRevocations
from adminguard.utils.tokens import ChallengeTokenCodec
from conftest import BACKUP_CODES


def _actions(db, action):
    db.expire_all()
    return db.query(AuditLog).filter(AuditLog.action == action).all()


def _wrong_code(totp, secret):
    now = time.time()
    valid = {totp.current_code(secret, for_time=int(now + d)) for d in (-60, -30, 0, 30, 60)}
    return next(c for c in ("000000", "111111", "222222", "333333", "444444") if c not in valid)


def _challenge(login, user):
    response = login(user.email)
    assert response.status_code == 200
    return response.json()["temporaryToken"]


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("payload", [{}, {"email": "admin@example.com"}, {"password": "x"}])
def test_login_requires_email_and_password(client, payload):
    response = client.post("/admin/api/auth/login", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": "Email and password are required"}


def test_login_without_body(client):
    response = client.post("/admin/api/auth/login")
    assert response.status_code == 400


def test_login_without_two_factor_sets_session_cookie(client, db, admin_user, login):
    response = login("admin@example.com")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["user"] == {"id": admin_user.id, "email": "admin@example.com", "role": "admin"}
    assert "requiresTwoFactor" not in data
    assert response.cookies.get(settings.SESSION_COOKIE_NAME)
    assert len(_actions(db, audit_actions.LOGIN)) == 1


@pytest.mark.parametrize(
    "email,password,fields",
    [
        ("nobody@example.com", None, {}),
        ("admin@example.com", "wrong-password", {}),
        ("member@example.com", None, {"role": "user"}),
        ("pending@example.com", None, {"email_confirmed": False}),
        ("gone@example.com", None, {"is_active": False}),
    ],
)
def test_login_failures_are_indistinguishable(client, db, admin_user, make_user, login, email, password, fields):
    if fields:
        make_user(email, **fields)
    response = login(email, password) if password else login(email)

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}
    assert settings.SESSION_COOKIE_NAME not in response.cookies
    failures = _actions(db, audit_actions.LOGIN_FAILED)
    assert len(failures) == 1
    assert failures[0].outcome == "failed"


def test_login_with_two_factor_returns_challenge(client, two_factor_admin, login):
    response = login("secure-admin@example.com")

    assert response.status_code == 200
    data = response.json()
    assert data["requiresTwoFactor"] is True
    assert data["user"] == {"id": two_factor_admin.id, "email": "secure-admin@example.com"}
    assert ChallengeTokenCodec().verify(data["temporaryToken"]) == two_factor_admin.id
    assert settings.SESSION_COOKIE_NAME not in response.cookies


# ---------------------------------------------------------------------------
# 2FA verify
# ---------------------------------------------------------------------------

def test_verify_requires_token_and_code(client):
    response = client.post("/admin/api/auth/2fa/verify", json={"code": "123456"})
    assert response.status_code == 400
    assert response.json() == {"error": "Temporary token and verification code are required"}


@pytest.mark.parametrize("code", ["12345", "1234567", "12a456", " 123456"])
def test_verify_rejects_malformed_code_before_token(client, code):
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": "not-a-token", "code": code},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid verification code format"}


def test_verify_rejects_garbage_token(client):
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": "not-a-token", "code": "123456"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid temporary token"}


def test_verify_rejects_expired_token(client, two_factor_admin, totp, totp_secret):
    token = ChallengeTokenCodec().issue(two_factor_admin.id, now=time.time() - 301)
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Temporary token expired"}


def test_verify_wrong_code_is_audited(client, db, two_factor_admin, totp, totp_secret, login):
    token = _challenge(login, two_factor_admin)
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": _wrong_code(totp, totp_secret)},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid verification code"}
    assert settings.SESSION_COOKIE_NAME not in response.cookies
    failures = _actions(db, audit_actions.TWO_FACTOR_FAILURE)
    assert len(failures) == 1
    assert failures[0].actor_id == two_factor_admin.id


def test_verify_success_sets_both_cookies(client, db, two_factor_admin, totp, totp_secret, login):
    token = _challenge(login, two_factor_admin)
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["user"]["role"] == "super_admin"
    assert data["token"]
    assert response.cookies.get(settings.SESSION_COOKIE_NAME) == data["token"]
    assert response.cookies.get(settings.TWO_FACTOR_COOKIE_NAME)
    assert len(_actions(db, audit_actions.TWO_FACTOR_SUCCESS)) == 1
    login_rows = _actions(db, audit_actions.LOGIN)
    assert len(login_rows) == 1
    assert login_rows[0].log_metadata == {"twoFactorUsed": True}


def test_verify_user_not_found(client, totp, totp_secret, db):
    token = ChallengeTokenCodec().issue("00000000-0000-0000-0000-000000000000")
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    )
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_verify_deactivated_after_login(client, db, two_factor_admin, totp, totp_secret, login):
    token = _challenge(login, two_factor_admin)
    two_factor_admin.is_active = False
    db.commit()

    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Account is deactivated"}


def test_verify_when_two_factor_not_enabled(client, admin_user, totp, totp_secret):
    token = ChallengeTokenCodec().issue(admin_user.id)
    response = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "2FA is not enabled for this account"}


def test_challenge_replay_allowed_by_default(client, two_factor_admin, totp, totp_secret, login):
    token = _challenge(login, two_factor_admin)
    body = {"temporaryToken": token, "code": totp.current_code(totp_secret)}
    assert client.post("/admin/api/auth/2fa/verify", json=body).status_code == 200
    assert client.post("/admin/api/auth/2fa/verify", json=body).status_code == 200


def test_single_use_challenge(client, monkeypatch, two_factor_admin, totp, totp_secret, login):
    monkeypatch.setattr(settings, "CHALLENGE_SINGLE_USE", True)
    token = _challenge(login, two_factor_admin)
    body = {"temporaryToken": token, "code": totp.current_code(totp_secret)}

    assert client.post("/admin/api/auth/2fa/verify", json=body).status_code == 200
    replay = client.post("/admin/api/auth/2fa/verify", json=body)
    assert replay.status_code == 400
    assert replay.json() == {"error": "Invalid temporary token"}


# ---------------------------------------------------------------------------
# Backup codes
# ---------------------------------------------------------------------------

def test_backup_code_requires_fields(client):
    response = client.post("/admin/api/auth/2fa/backup", json={"temporaryToken": "x"})
    assert response.status_code == 400
    assert response.json() == {"error": "Temporary token and backup code are required"}


def test_backup_code_is_consumed_once(client, db, two_factor_admin, login):
    token = _challenge(login, two_factor_admin)
    response = client.post(
        "/admin/api/auth/2fa/backup",
        json={"temporaryToken": token, "backupCode": BACKUP_CODES[0].lower()},
    )
    assert response.status_code == 200
    assert response.json()["remainingBackupCodes"] == len(BACKUP_CODES) - 1
    assert response.cookies.get(settings.TWO_FACTOR_COOKIE_NAME)

    token = _challenge(login, two_factor_admin)
    reuse = client.post(
        "/admin/api/auth/2fa/backup",
        json={"temporaryToken": token, "backupCode": BACKUP_CODES[0]},
    )
    assert reuse.status_code == 400
    assert reuse.json() == {"error": "Invalid backup code"}

    db.expire_all()
    assert len(two_factor_admin.backup_code_hashes) == len(BACKUP_CODES) - 1


def test_spent_challenge_does_not_consume_backup_code(client, db, monkeypatch, two_factor_admin, login):
    monkeypatch.setattr(settings, "CHALLENGE_SINGLE_USE", True)
    token = _challenge(login, two_factor_admin)

    with mock.patch.object(TokenRevocations, "revoke", return_value=False):
        response = client.post(
            "/admin/api/auth/2fa/backup",
            json={"temporaryToken": token, "backupCode": BACKUP_CODES[0]},
        )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid temporary token"}
    assert not response.cookies.get(settings.SESSION_COOKIE_NAME)
    db.expire_all()
    assert len(two_factor_admin.backup_code_hashes) == len(BACKUP_CODES)


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------

def test_enable_requires_session(client):
    response = client.post("/admin/api/auth/2fa/enable")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized: Admin session required"}


def test_enable_rejects_non_admin_role(client, make_user, session_token):
    member = make_user("member@example.com", role="user")
    response = client.post(
        "/admin/api/auth/2fa/enable",
        headers={"Authorization": f"Bearer {session_token(member)}"},
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: Admin role required"}


def test_enroll_and_confirm(client, db, admin_user, login):
    assert login("admin@example.com").status_code == 200

    enrollment = client.post("/admin/api/auth/2fa/enable")
    assert enrollment.status_code == 200
    data = enrollment.json()
    assert data["success"] is True
    assert data["qrCodeUrl"].startswith("otpauth://totp/")
    assert data["manualEntryKey"].replace(" ", "") == data["secret"]
    assert len(data["backupCodes"]) == settings.TOTP_BACKUP_CODE_COUNT

    db.expire_all()
    assert admin_user.totp_secret == data["secret"]
    assert admin_user.totp_enabled is False

    confirm = client.post("/admin/api/auth/2fa/confirm", json={"code": pyotp.TOTP(data["secret"]).now()})
    assert confirm.status_code == 200
    assert confirm.json() == {"success": True, "enabled": True}
    assert confirm.cookies.get(settings.TWO_FACTOR_COOKIE_NAME)

    db.expire_all()
    assert admin_user.totp_enabled is True
    assert len(_actions(db, audit_actions.TWO_FACTOR_ENABLED)) == 1

    again = client.post("/admin/api/auth/2fa/enable")
    assert again.status_code == 400
    assert again.json() == {"error": "2FA is already enabled for this account"}


def test_confirm_before_enable(client, admin_user, login):
    login("admin@example.com")
    response = client.post("/admin/api/auth/2fa/confirm", json={"code": "123456"})
    assert response.status_code == 400
    assert response.json() == {"error": "2FA setup has not been started"}


def test_confirm_wrong_code_keeps_two_factor_off(client, db, admin_user, totp, login):
    login("admin@example.com")
    secret = client.post("/admin/api/auth/2fa/enable").json()["secret"]

    response = client.post("/admin/api/auth/2fa/confirm", json={"code": _wrong_code(totp, secret)})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid verification code"}
    db.expire_all()
    assert admin_user.totp_enabled is False


# ---------------------------------------------------------------------------
# Session validation
# ---------------------------------------------------------------------------

def test_session_without_bearer(client):
    response = client.get("/admin/api/auth/session")
    assert response.status_code == 401
    assert response.json() == {"valid": False, "error": "No authorization token provided"}


def test_session_with_garbage_bearer(client):
    response = client.get("/admin/api/auth/session", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["valid"] is False


def test_session_valid(client, admin_user, session_token):
    response = client.get(
        "/admin/api/auth/session",
        headers={"Authorization": f"Bearer {session_token(admin_user)}"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "valid": True,
        "user": {
            "id": admin_user.id,
            "email": "admin@example.com",
            "role": "admin",
            "twoFactorEnabled": False,
            "twoFactorVerified": False,
        },
    }


def test_session_reports_stamp(client, two_factor_admin, totp, totp_secret, login):
    token = _challenge(login, two_factor_admin)
    session = client.post(
        "/admin/api/auth/2fa/verify",
        json={"temporaryToken": token, "code": totp.current_code(totp_secret)},
    ).json()["token"]

    user = client.get("/admin/api/auth/session", headers={"Authorization": f"Bearer {session}"}).json()["user"]
    assert user["twoFactorEnabled"] is True
    assert user["twoFactorVerified"] is True


def test_session_for_deactivated_admin(client, db, admin_user, session_token):
    token = session_token(admin_user)
    admin_user.is_active = False
    db.commit()

    response = client.get("/admin/api/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"valid": False, "error": "Account deactivated"}


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

def test_logout_is_idempotent(client, db, admin_user, session_token):
    headers = {"Authorization": f"Bearer {session_token(admin_user)}"}

    first = client.post("/admin/api/auth/logout", headers=headers)
    second = client.post("/admin/api/auth/logout", headers=headers)

    assert first.status_code == 200 and first.json() == {"success": True}
    assert second.status_code == 200 and second.json() == {"success": True}
    db.expire_all()
    assert db.query(RevokedToken).count() == 1
    assert len(_actions(db, audit_actions.LOGOUT)) == 1


def test_logout_without_session(client):
    response = client.post("/admin/api/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_logout_revokes_session(client, admin_user, login):
    token = login("admin@example.com").cookies.get(settings.SESSION_COOKIE_NAME)
    assert client.post("/admin/api/auth/logout").json() == {"success": True}

    response = client.get("/admin/api/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["valid"] is False
