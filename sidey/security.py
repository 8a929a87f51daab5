"""
Password hashing and signed bearer tokens.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

import jwt
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_id() -> str:
    return str(uuid.uuid4())


def hash_password(password: str) -> str:
    """Hash a password with a per-call random salt."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognised or corrupted hash format.
        return False


def password_needs_rehash(password_hash: str) -> bool:
    return pwd_context.needs_update(password_hash)


def issue_token(
    claims: dict,
    secret: str,
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    now: Optional[int] = None,
) -> str:
    """
    Create a signed token carrying ``claims`` plus ``iat``/``exp``.

    The result is ``header.payload.signature`` with base64url segments and an
    HMAC-SHA-256 signature over the first two.
    """
    issued_at = int(time.time()) if now is None else now
    payload = {**claims, "iat": issued_at, "exp": issued_at + ttl_seconds}
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


def verify_token(token: str | None, secret: str) -> Optional[dict]:
    """
    Return the token's claims, or None when it is malformed, forged or expired.

    Never raises; callers cannot tell which check failed.
    """
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.InvalidTokenError:
        logger.debug("Rejected bearer token")
        return None
