"""
In-memory account repository and OTP store for the auth API.

Why: The API only needs a handful of lookups (by id, by mobile, by role). An
in-memory repo keeps the service self-contained for development and tests;
a database-backed implementation can replace it behind `set_repo()`.

Security: OTP codes are stored as SHA-256 digests and compared in constant
time. Passwords are stored as passlib hashes only.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional
import hashlib
import hmac
import logging
import os
import secrets
import time
from uuid import uuid4

from identity_access.domain import ALLOWED_ROLES, User, mask_mobile, validate_mobile

from web.auth_utils import hash_password
from web.config import DEFAULT_ADMIN_PASSWORD

logger = logging.getLogger("iasdesk.web.repo")


def _now() -> int:
    return int(time.time())


@dataclass
class Account:
    user: User
    password_hash: Optional[str] = None
    is_active: bool = True
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class AccountRepo:
    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.ids_by_mobile: Dict[str, str] = {}

    def get(self, user_id: str) -> Optional[Account]:
        return self.accounts.get(user_id)

    def get_by_mobile(self, mobile: str) -> Optional[Account]:
        uid = self.ids_by_mobile.get(mobile)
        return self.accounts.get(uid) if uid else None

    def create(
        self,
        *,
        mobile: str,
        role: str = "student",
        name: str = "",
        email: str | None = None,
        password: str | None = None,
        must_change_password: bool = False,
        is_verified: bool = True,
    ) -> Account:
        validate_mobile(mobile)
        if role not in ALLOWED_ROLES:
            raise ValueError("invalid_role")
        if mobile in self.ids_by_mobile:
            raise ValueError("mobile_taken")
        user = User(
            id=str(uuid4()),
            mobile=mobile,
            role=role,
            name=(name or "").strip(),
            email=email,
            is_verified=is_verified,
            must_change_password=must_change_password,
        )
        account = Account(user=user, password_hash=hash_password(password) if password else None)
        self.accounts[user.id] = account
        self.ids_by_mobile[mobile] = user.id
        logger.info("Account created role=%s mobile=%s", role, mask_mobile(mobile))
        return account

    def update_profile(self, user_id: str, *, name: str | None = None, email: str | None = None) -> User:
        account = self.accounts[user_id]
        changes = {}
        if name is not None:
            changes["name"] = name
        if email is not None:
            changes["email"] = email or None
        account.user = replace(account.user, **changes)
        return account.user

    def set_password(self, user_id: str, password: str, *, must_change: bool = False) -> User:
        account = self.accounts[user_id]
        account.password_hash = hash_password(password)
        account.user = replace(account.user, must_change_password=must_change)
        return account.user

    def list_by_role(self, *, role: str, limit: int, offset: int) -> List[User]:
        items = [a.user for a in self.accounts.values() if a.user.role == role]
        return items[offset: offset + limit]


@dataclass
class OTPRecord:
    mobile: str
    code_digest: str
    expires_at: int
    attempts_left: int


def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("ascii")).hexdigest()


class OTPStore:
    def __init__(self) -> None:
        self._data: Dict[str, OTPRecord] = {}

    @staticmethod
    def generate_code() -> str:
        return f"{secrets.randbelow(1_000_000):06d}"

    def issue(self, mobile: str, *, ttl_seconds: int = 300, max_attempts: int = 3) -> str:
        """Create a fresh code for `mobile`, replacing any previous one.

        Expired records for other numbers are dropped on the way.
        """
        now = _now()
        self.prune_expired(now)
        code = self.generate_code()
        self._data[mobile] = OTPRecord(
            mobile=mobile,
            code_digest=_digest(code),
            expires_at=now + ttl_seconds,
            attempts_left=max_attempts,
        )
        return code

    def prune_expired(self, now: int | None = None) -> int:
        now = _now() if now is None else now
        stale = [m for m, rec in self._data.items() if rec.expires_at < now]
        for m in stale:
            del self._data[m]
        return len(stale)

    def __len__(self) -> int:
        return len(self._data)

    def verify(self, mobile: str, code: str) -> str:
        """Return "ok", "missing", "expired", "invalid" or "locked".

        A successful check consumes the code. Every failed check consumes one
        attempt; the record is dropped once no attempts remain.
        """
        rec = self._data.get(mobile)
        if rec is None:
            return "missing"
        if rec.expires_at < _now():
            self._data.pop(mobile, None)
            return "expired"
        if hmac.compare_digest(rec.code_digest, _digest(code)):
            self._data.pop(mobile, None)
            return "ok"
        rec.attempts_left -= 1
        if rec.attempts_left <= 0:
            self._data.pop(mobile, None)
            return "locked"
        return "invalid"


REPO = AccountRepo()
OTP_STORE = OTPStore()


def get_repo() -> AccountRepo:
    return REPO


def set_repo(repo: AccountRepo) -> None:
    global REPO
    REPO = repo


def get_otp_store() -> OTPStore:
    return OTP_STORE


def set_otp_store(store: OTPStore) -> None:
    global OTP_STORE
    OTP_STORE = store


def seed_default_admin(repo: AccountRepo | None = None) -> Optional[Account]:
    """Create the admin named by ADMIN_MOBILE/ADMIN_PASSWORD when missing.

    An existing account with that mobile is promoted to admin (older records
    only carried a boolean flag).
    """
    mobile = (os.getenv("ADMIN_MOBILE") or "").strip()
    if not mobile:
        return None
    repo = repo or get_repo()
    existing = repo.get_by_mobile(mobile)
    if existing is not None:
        if existing.user.role != "admin":
            existing.user = replace(existing.user, role="admin")
            logger.info("Promoted existing account to admin: %s", mask_mobile(mobile))
        return existing
    return repo.create(
        mobile=mobile,
        role="admin",
        name=os.getenv("ADMIN_NAME", "IASDesk Admin"),
        password=os.getenv("ADMIN_PASSWORD") or DEFAULT_ADMIN_PASSWORD,
    )
