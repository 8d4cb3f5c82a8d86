"""
Password hashing & JWT helpers.

- Passwords are hashed with PBKDF2-HMAC-SHA256 (100k iterations, 32-byte
  key, 16-byte random salt) and stored as ``hex(salt):hex(key)``.
  Existing hashes depend on both constants, so they must not change
  without a format version.
- JWTs are HS256, live 24 hours, and carry everything the role gate
  needs (user_id, username, is_super_admin, is_active, assigned_regions).
  No server-side session registry: claims are trusted until expiry.
- During secret rotation, tokens signed with ``JWT_SECRET_PREVIOUS`` are
  still accepted and flagged with ``rotation_needed``.
"""

import binascii
import hashlib
import hmac
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

# ── Password hashing ────────────────────────────────────────────────

PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 16

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>_\-+=\[\]\\/'`~;]")


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_LENGTH,
    )


def hash_password(plain: str) -> str:
    salt = secrets.token_bytes(SALT_LENGTH)
    return f"{salt.hex()}:{_derive(plain, salt).hex()}"


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if ``plain`` matches ``hashed``.  Never raises."""
    try:
        salt_hex, sep, key_hex = (hashed or "").partition(":")
        if not sep or not salt_hex or not key_hex:
            return False
        derived = _derive(plain, bytes.fromhex(salt_hex)).hex()
        return hmac.compare_digest(derived, key_hex.lower())
    except (ValueError, TypeError, binascii.Error):
        logger.warning("Malformed password hash encountered during verification")
        return False


# Used to equalise timing when the username does not exist.
DUMMY_PASSWORD_HASH = hash_password(secrets.token_hex(16))


def validate_password_strength(password: str) -> list[str]:
    """Return a list of problems; empty means the password is acceptable."""
    errors: list[str] = []
    if not password or len(password) < 8:
        errors.append("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password or ""):
        errors.append("Password must contain at least 1 uppercase letter")
    if not re.search(r"[a-z]", password or ""):
        errors.append("Password must contain at least 1 lowercase letter")
    if not _SPECIAL_CHARS.search(password or ""):
        errors.append("Password must contain at least 1 special character")
    return errors


# ── Token hashing ────────────────────────────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hex digest — suitable for high-entropy random tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ── JWT ──────────────────────────────────────────────────────────────


class InvalidToken(Exception):
    """Signature mismatch, malformed token, or expired token."""


def create_access_token(
    data: dict[str, Any],
    secret: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)),
    })
    return jwt.encode(
        to_encode,
        secret or settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def _decode(token: str, secret: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.JWT_ALGORITHM],
        options={"require_exp": True, "require_iat": True},
    )


def decode_access_token(
    token: str,
    secret: str | None = None,
    previous_secret: str | None = None,
) -> dict[str, Any]:
    """Verify signature & expiry and return the claims.

    Tries the current secret first, then the previous one if given.
    Raises ``InvalidToken`` if neither accepts the token.
    """
    try:
        return _decode(token, secret or settings.JWT_SECRET)
    except JWTError as exc:
        if not previous_secret:
            raise InvalidToken(str(exc)) from exc

    try:
        payload = _decode(token, previous_secret)
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc
    payload["rotation_needed"] = True
    return payload
