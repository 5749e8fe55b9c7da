"""TOTP secret service (RFC 6238, 6 digits, 30 second steps)"""
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union

import pyotp

from adminguard.config import settings
from adminguard.errors import CodeFormatError
from adminguard.utils.auth import constant_time_equals, hash_backup_code

CODE_PATTERN = re.compile(r"[0-9]{6}")
SECRET_LENGTH = 32   # base32 characters -> 160 bits


@dataclass
class TotpEnrollment:
    secret: str
    provisioning_uri: str
    manual_entry_key: str
    backup_codes: List[str] = field(default_factory=list)


class TotpService:
    def __init__(self, issuer: Optional[str] = None, valid_window: Optional[int] = None,
                 backup_code_count: Optional[int] = None):
        self.issuer = issuer or settings.TOTP_ISSUER
        self.valid_window = settings.TOTP_VALID_WINDOW if valid_window is None else valid_window
        self.backup_code_count = backup_code_count or settings.TOTP_BACKUP_CODE_COUNT

    def generate(self, account_label: str) -> TotpEnrollment:
        """New shared secret, authenticator-app URI and recovery codes for one admin."""
        secret = pyotp.random_base32(length=SECRET_LENGTH)
        uri = pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=self.issuer)
        return TotpEnrollment(
            secret=secret,
            provisioning_uri=uri,
            manual_entry_key=" ".join(secret[i:i + 4] for i in range(0, len(secret), 4)),
            backup_codes=self.generate_backup_codes(),
        )

    def generate_backup_codes(self) -> List[str]:
        return [secrets.token_hex(4).upper() for _ in range(self.backup_code_count)]

    def verify_code(self, secret: str, code: Optional[str],
                    for_time: Optional[Union[int, datetime]] = None) -> bool:
        """Check a 6-digit code against the previous, current and next time step.

        Raises CodeFormatError before any HMAC is computed when ``code`` is not
        exactly six ASCII digits.
        """
        if not isinstance(code, str) or not CODE_PATTERN.fullmatch(code):
            raise CodeFormatError()
        return pyotp.TOTP(secret).verify(code, for_time=for_time, valid_window=self.valid_window)

    def current_code(self, secret: str, for_time: Optional[Union[int, datetime]] = None) -> str:
        totp = pyotp.TOTP(secret)
        return totp.now() if for_time is None else totp.at(for_time)

    @staticmethod
    def consume_backup_code(backup_code_hashes: List[str], code: str) -> Tuple[bool, List[str]]:
        """Match ``code`` against stored hashes; a matching code is removed."""
        candidate = hash_backup_code(code)
        for index, stored in enumerate(backup_code_hashes):
            if constant_time_equals(candidate, stored):
                remaining = list(backup_code_hashes)
                remaining.pop(index)
                return True, remaining
        return False, list(backup_code_hashes)
