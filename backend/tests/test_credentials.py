"""Tests for the credential authenticator"""
from unittest import mock

import pytest

from adminguard.errors import ValidationError
from adminguard.services import credentials as credentials_module
from adminguard.services.credentials import CredentialAuthenticator, CredentialOutcome
from adminguard.services.identity import IdentityStore
from conftest import ADMIN_PASSWORD


def _authenticate(db, email, password=ADMIN_PASSWORD):
    return CredentialAuthenticator(IdentityStore(db)).authenticate(email, password)


@pytest.mark.parametrize("email,password", [("", "x"), ("a@example.com", ""), (None, "x"), ("a@example.com", None), ("   ", "x")])
def test_missing_fields(db, email, password):
    with pytest.raises(ValidationError) as exc:
        _authenticate(db, email, password)
    assert exc.value.message == "Email and password are required"
    assert exc.value.status_code == 400


def test_success(db, admin_user):
    result = _authenticate(db, "admin@example.com")
    assert result.ok
    assert result.outcome is CredentialOutcome.SUCCESS
    assert result.profile.id == admin_user.id


def test_email_lookup_is_case_insensitive(db, admin_user):
    assert _authenticate(db, "  Admin@Example.COM ").ok


def test_unknown_email_still_spends_a_hash(db):
    with mock.patch.object(credentials_module, "burn_password_check") as burn:
        result = _authenticate(db, "nobody@example.com")
    assert result.outcome is CredentialOutcome.USER_NOT_FOUND
    assert result.profile is None
    burn.assert_called_once_with(ADMIN_PASSWORD)


def test_wrong_password(db, admin_user):
    result = _authenticate(db, "admin@example.com", "wrong-password")
    assert result.outcome is CredentialOutcome.INVALID_CREDENTIALS
    assert not result.ok


def test_unconfirmed_email(db, make_user):
    make_user("pending@example.com", email_confirmed=False)
    assert _authenticate(db, "pending@example.com").outcome is CredentialOutcome.EMAIL_NOT_CONFIRMED


def test_non_admin_role(db, make_user):
    make_user("member@example.com", role="user")
    assert _authenticate(db, "member@example.com").outcome is CredentialOutcome.NOT_ADMIN_ROLE


def test_deactivated(db, make_user):
    make_user("gone@example.com", is_active=False)
    assert _authenticate(db, "gone@example.com").outcome is CredentialOutcome.ACCOUNT_DEACTIVATED


def test_password_checked_before_account_state(db, make_user):
    make_user("gone@example.com", is_active=False, role="user")
    result = _authenticate(db, "gone@example.com", "wrong-password")
    assert result.outcome is CredentialOutcome.INVALID_CREDENTIALS
