"""JWT utilities: RS256 keypair management, token signing and signature verification"""
from typing import Any, Dict

from jose import JWTError, jwt

from adminguard.config import settings
from adminguard.errors import MalformedToken
from adminguard.utils.logger import logger

# ---------------------------------------------------------------------------
# Keypair management
# ---------------------------------------------------------------------------

_private_key: Any = None   # cryptography RSAPrivateKey object
_public_key: Any = None    # cryptography RSAPublicKey object


def _load_keypair() -> None:
    """Load or auto-generate the RSA keypair.

    Reads JWT_PRIVATE_KEY from settings (PEM string).
    If absent, generates a fresh RSA-2048 keypair, logs the private key PEM
    so the operator can paste it into .env to make it persistent across restarts.
    """
    global _private_key, _public_key

    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    if settings.JWT_PRIVATE_KEY:
        pem = settings.JWT_PRIVATE_KEY.encode()
        _private_key = serialization.load_pem_private_key(pem, password=None)
        _public_key = _private_key.public_key()
        logger.info("JWT keypair loaded from JWT_PRIVATE_KEY setting")
    else:
        _private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        _public_key = _private_key.public_key()

        pem_str = _private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

        logger.warning(
            "JWT_PRIVATE_KEY not set; auto-generated RSA-2048 keypair for this process. "
            "All admin sessions will be invalidated on restart. "
            "Set the following in backend/.env to persist the key:\n"
            f"JWT_PRIVATE_KEY=\"{pem_str.strip()}\""
        )


def get_private_key() -> Any:
    """Return the loaded private key, initialising on first call."""
    if _private_key is None:
        _load_keypair()
    return _private_key


def get_public_key() -> Any:
    """Return the loaded public key, initialising on first call."""
    if _public_key is None:
        _load_keypair()
    return _public_key


# ---------------------------------------------------------------------------
# Signing / verification
# ---------------------------------------------------------------------------

def sign_claims(claims: Dict[str, Any]) -> str:
    """Sign a claims dict and return the compact JWT (header.claims.signature)."""
    headers = {"kid": settings.JWT_KEY_ID} if settings.JWT_KEY_ID else None
    return jwt.encode(claims, get_private_key(), algorithm=settings.JWT_ALGORITHM, headers=headers)


def verify_signature(token: str, expected_type: str) -> Dict[str, Any]:
    """Verify a token's signature and type claim and return its claims.

    Expiry is deliberately not checked here: each codec evaluates its own
    lifetime against an injectable clock.

    Raises:
        MalformedToken: bad encoding, bad signature, or wrong ``type`` claim.
    """
    if not token or not isinstance(token, str):
        raise MalformedToken()
    try:
        claims = jwt.decode(
            token,
            get_public_key(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False, "verify_aud": False},
        )
    except JWTError as exc:
        logger.debug(f"JWT decode failed: {exc}")
        raise MalformedToken()

    if claims.get("type") != expected_type:
        raise MalformedToken()
    if not claims.get("sub") or not isinstance(claims.get("iat"), (int, float)):
        raise MalformedToken()
    return claims
