"""Tests for TOTP enrollment, code verification and backup codes"""
import re
from unittest import mock

import pyotp
import pytest

from adminguard.errors import CodeFormatError, ValidationError
from adminguard.services.totp import TotpService
from adminguard.utils.auth import hash_backup_code

T0 = 1_700_000_010  # 10 seconds into a 30 second step


def test_generate_enrollment(totp: TotpService):
    enrollment = totp.generate("admin@example.com")

    assert re.fullmatch(r"[A-Z2-7]{32}", enrollment.secret)
    assert enrollment.provisioning_uri.startswith("otpauth://totp/")
    assert "issuer=AdminGuard" in enrollment.provisioning_uri
    assert enrollment.manual_entry_key.replace(" ", "") == enrollment.secret
    assert len(enrollment.backup_codes) == 10
    assert all(re.fullmatch(r"[0-9A-F]{8}", code) for code in enrollment.backup_codes)


def test_secrets_are_unique(totp: TotpService):
    assert totp.generate("a@example.com").secret != totp.generate("a@example.com").secret


@pytest.mark.parametrize("code", ["12345", "1234567", "abcdef", "12 456", "", None, "１２３４５６", "123456\n"])
def test_rejects_malformed_code_before_hmac(totp: TotpService, code):
    with mock.patch.object(pyotp.TOTP, "verify") as verify:
        with pytest.raises(CodeFormatError) as exc:
            totp.verify_code(pyotp.random_base32(), code)
    verify.assert_not_called()
    assert isinstance(exc.value, ValidationError)
    assert exc.value.message == "Invalid verification code format"


def test_accepts_adjacent_time_steps(totp: TotpService, totp_secret: str):
    for offset in (-30, 0, 30):
        code = totp.current_code(totp_secret, for_time=T0 + offset)
        assert totp.verify_code(totp_secret, code, for_time=T0) is True


def test_rejects_codes_two_steps_away(totp: TotpService, totp_secret: str):
    code = totp.current_code(totp_secret, for_time=T0 - 60)
    if code in {totp.current_code(totp_secret, for_time=T0 + d) for d in (-30, 0, 30)}:
        pytest.skip("code collision across steps")
    assert totp.verify_code(totp_secret, code, for_time=T0) is False


def test_rejects_wrong_code(totp: TotpService, totp_secret: str):
    valid = {totp.current_code(totp_secret, for_time=T0 + d) for d in (-30, 0, 30)}
    wrong = next(c for c in ("000000", "111111", "222222", "333333") if c not in valid)
    assert totp.verify_code(totp_secret, wrong, for_time=T0) is False


def test_consume_backup_code_removes_it():
    hashes = [hash_backup_code(code) for code in ("A1B2C3D4", "E5F6A7B8")]

    ok, remaining = TotpService.consume_backup_code(hashes, "a1b2-c3d4")
    assert ok is True
    assert remaining == [hash_backup_code("E5F6A7B8")]

    ok, again = TotpService.consume_backup_code(remaining, "A1B2C3D4")
    assert ok is False
    assert again == remaining


def test_consume_backup_code_does_not_mutate_input():
    hashes = [hash_backup_code("A1B2C3D4")]
    TotpService.consume_backup_code(hashes, "A1B2C3D4")
    assert hashes == [hash_backup_code("A1B2C3D4")]
