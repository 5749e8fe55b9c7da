"""Password and backup-code hashing utilities"""
import hashlib
import hmac

import bcrypt

from adminguard.config import settings

_dummy_hash: bytes = b""


def hash_password(password: str) -> str:
    """Hash a password with bcrypt"""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against its bcrypt hash; malformed hashes never match"""
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def burn_password_check(password: str) -> None:
    """Spend one bcrypt check when there is no account to check against.

    Keeps the unknown-email path as slow as the wrong-password path.
    """
    global _dummy_hash
    if not _dummy_hash:
        _dummy_hash = bcrypt.hashpw(b"adminguard-dummy", bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    try:
        bcrypt.checkpw(password.encode(), _dummy_hash)
    except ValueError:
        pass


def hash_backup_code(code: str) -> str:
    """Hash a normalised backup code (upper-case, no dashes or spaces) using SHA256"""
    normalised = code.upper().replace("-", "").replace(" ", "")
    return hashlib.sha256(normalised.encode()).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())
