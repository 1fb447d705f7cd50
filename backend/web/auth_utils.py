"""
Shared authentication utilities: bearer tokens and password hashing.

Design:
    Framework-agnostic helpers. Routes decide what to do with a `TokenError`;
    these functions only sign, verify and hash.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from identity_access.domain import User

from web.config import SETTINGS

PWD_CONTEXT = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenError(Exception):
    """Raised when a bearer token is missing, malformed, expired or forged."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def hash_password(plain: str) -> str:
    return PWD_CONTEXT.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not plain or not hashed:
        return False
    try:
        return PWD_CONTEXT.verify(plain, hashed)
    except ValueError:
        return False


def create_access_token(user: User, *, expires_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else SETTINGS.jwt_expires_minutes
    payload = {
        "sub": user.id,
        "role": user.role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, SETTINGS.jwt_secret, algorithm=SETTINGS.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(token, SETTINGS.jwt_secret, algorithms=[SETTINGS.jwt_algorithm])
    except JWTError as exc:
        raise TokenError("invalid_token") from exc
    if claims.get("type") != "access" or not claims.get("sub"):
        raise TokenError("invalid_token")
    return claims


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    raw = (headers.get("authorization") or "").strip()
    scheme, _, value = raw.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
