"""Tests for the challenge, session and 2FA stamp codecs"""
import pytest

from adminguard.errors import AuthenticationError, ChallengeExpired, MalformedToken
from adminguard.utils.tokens import ChallengeTokenCodec, SessionTokenCodec, TwoFactorStampCodec

T0 = 1_700_000_000


def _tamper(token: str) -> str:
    header, claims, signature = token.split(".")
    flipped = "A" if signature[0] != "A" else "B"
    return ".".join([header, claims, flipped + signature[1:]])


def test_challenge_verifies_within_window():
    codec = ChallengeTokenCodec()
    token = codec.issue("user-1", now=T0)
    assert codec.verify(token, now=T0 + 299) == "user-1"
    assert codec.verify(token, now=T0 + 300) == "user-1"


def test_challenge_expires_after_five_minutes():
    codec = ChallengeTokenCodec()
    token = codec.issue("user-1", now=T0)
    with pytest.raises(ChallengeExpired) as exc:
        codec.verify(token, now=T0 + 301)
    assert exc.value.message == "Temporary token expired"


def test_challenge_rejects_forged_signature():
    codec = ChallengeTokenCodec()
    token = codec.issue("user-1", now=T0)
    with pytest.raises(MalformedToken):
        codec.verify(_tamper(token), now=T0)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_challenge_rejects_garbage(token):
    with pytest.raises(MalformedToken):
        ChallengeTokenCodec().verify(token, now=T0)


def test_challenge_rejects_other_token_types():
    session = SessionTokenCodec().issue("user-1", "a@example.com", "admin", False, now=T0)
    stamp = TwoFactorStampCodec().issue("user-1", now=T0)
    with pytest.raises(MalformedToken):
        ChallengeTokenCodec().verify(session, now=T0)
    with pytest.raises(MalformedToken):
        ChallengeTokenCodec().verify(stamp, now=T0)


def test_challenge_tokens_are_unique():
    codec = ChallengeTokenCodec()
    first = codec.decode(codec.issue("user-1", now=T0), now=T0)
    second = codec.decode(codec.issue("user-1", now=T0), now=T0)
    assert first.jti != second.jti


def test_session_token_claims_round_trip():
    codec = SessionTokenCodec()
    token = codec.issue("user-1", "a@example.com", "super_admin", True, now=T0)
    claims = codec.verify(token, now=T0 + 60)
    assert claims.user_id == "user-1"
    assert claims.email == "a@example.com"
    assert claims.role == "super_admin"
    assert claims.two_factor_verified is True
    assert claims.expires_at == T0 + 7 * 24 * 60 * 60


def test_session_token_expires_after_seven_days():
    codec = SessionTokenCodec()
    token = codec.issue("user-1", "a@example.com", "admin", False, now=T0)
    codec.verify(token, now=T0 + 7 * 24 * 60 * 60)
    with pytest.raises(AuthenticationError):
        codec.verify(token, now=T0 + 7 * 24 * 60 * 60 + 1)


def test_session_token_rejects_forgery():
    token = SessionTokenCodec().issue("user-1", "a@example.com", "admin", False, now=T0)
    with pytest.raises(MalformedToken):
        SessionTokenCodec().verify(_tamper(token), now=T0)


def test_stamp_valid_for_one_hour():
    codec = TwoFactorStampCodec()
    token = codec.issue("user-1", now=T0)
    assert codec.is_valid(token, "user-1", now=T0 + 3600) is True
    assert codec.is_valid(token, "user-1", now=T0 + 3601) is False


def test_stamp_bound_to_its_admin():
    token = TwoFactorStampCodec().issue("user-1", now=T0)
    assert TwoFactorStampCodec().is_valid(token, "user-2", now=T0) is False


def test_stamp_rejects_missing_and_forged_values():
    codec = TwoFactorStampCodec()
    token = codec.issue("user-1", now=T0)
    assert codec.is_valid(None, "user-1", now=T0) is False
    assert codec.is_valid("", "user-1", now=T0) is False
    assert codec.is_valid(_tamper(token), "user-1", now=T0) is False
