"""
Token Store: bearer tokens and the cached user, kept across restarts.

Two independent slots exist so a browser can hold a student token and an
admin token at the same time without one overwriting the other. Admin-only
views must resolve the admin slot, never the general one.
"""
from __future__ import annotations

from typing import Optional
import json
import logging

from .domain import User
from .storage import KeyValueStorage

logger = logging.getLogger("iasdesk.identity_access.tokens")

TOKEN_KEY = "token"
ADMIN_TOKEN_KEY = "adminToken"
USER_KEY = "user"


class TokenStore:
    def __init__(self, storage: KeyValueStorage):
        self._storage = storage

    def get_token(self) -> Optional[str]:
        return self._storage.get(TOKEN_KEY) or None

    def set_token(self, token: str) -> None:
        self._storage.set(TOKEN_KEY, token)

    def get_admin_token(self) -> Optional[str]:
        return self._storage.get(ADMIN_TOKEN_KEY) or None

    def set_admin_token(self, token: str) -> None:
        self._storage.set(ADMIN_TOKEN_KEY, token)

    def clear_admin_token(self) -> None:
        self._storage.remove(ADMIN_TOKEN_KEY)

    def get_stored_user(self) -> Optional[User]:
        """Return the cached user, or None when absent or unreadable."""
        raw = self._storage.get(USER_KEY)
        if not raw:
            return None
        try:
            return User.from_payload(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("Cached user unreadable: %s", exc.__class__.__name__)
            return None

    def set_stored_user(self, user: User) -> None:
        self._storage.set(USER_KEY, json.dumps(user.to_payload()))

    def has_token(self) -> bool:
        return bool(self.get_token() or self.get_admin_token())

    def clear_tokens(self) -> None:
        """Remove both token slots and the cached user."""
        for key in (TOKEN_KEY, ADMIN_TOKEN_KEY, USER_KEY):
            self._storage.remove(key)
