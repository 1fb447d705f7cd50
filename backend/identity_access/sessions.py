"""
Session Registry: one logical active session per storage scope.

Why: When a second, different user signs in on the same device, the earlier
user's bookkeeping must not linger. This is a UX guard only; it does not
revoke the earlier user's server-side token.

Failure semantics: unreadable session data counts as "no session". Reads
never raise.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
import json
import logging
import secrets
import string
import time

from .storage import KeyValueStorage

logger = logging.getLogger("iasdesk.identity_access.sessions")

SESSION_KEY = "activeSession"
USER_SESSION_KEY = "userSessionId"

_BASE36 = string.digits + string.ascii_lowercase


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SessionRecord:
    user_id: str
    session_id: str
    timestamp: int

    def to_json(self) -> str:
        return json.dumps({"userId": self.user_id, "sessionId": self.session_id, "timestamp": self.timestamp})


class SessionRegistry:
    def __init__(self, storage: KeyValueStorage, *, clock: Callable[[], int] = _now_ms):
        self._storage = storage
        self._clock = clock

    def generate_session_id(self) -> str:
        suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
        return f"{self._clock()}-{suffix}"

    def set_active_session(self, user_id: str) -> str:
        sid = self.generate_session_id()
        rec = SessionRecord(user_id=user_id, session_id=sid, timestamp=self._clock())
        self._storage.set(SESSION_KEY, rec.to_json())
        self._storage.set(USER_SESSION_KEY, sid)
        return sid

    def _read(self) -> Optional[SessionRecord]:
        """Return the stored record; raise ValueError when it is corrupt."""
        raw = self._storage.get(SESSION_KEY)
        if not raw:
            return None
        data = json.loads(raw)
        if not isinstance(data, dict) or "userId" not in data or "sessionId" not in data:
            raise ValueError("invalid_session_record")
        return SessionRecord(
            user_id=str(data["userId"]),
            session_id=str(data["sessionId"]),
            timestamp=int(data.get("timestamp") or 0),
        )

    def get_active_session(self) -> Optional[SessionRecord]:
        try:
            return self._read()
        except (ValueError, TypeError):
            return None

    def get_current_session_id(self) -> Optional[str]:
        return self._storage.get(USER_SESSION_KEY) or None

    def is_session_active(self, user_id: str, session_id: str) -> bool:
        rec = self.get_active_session()
        if rec is None:
            return False
        return rec.user_id == user_id and rec.session_id == session_id

    def handle_session_conflict(self, new_user_id: str) -> bool:
        """Resolve a sign-in against the stored session.

        Returns True when the caller should register a fresh session (nothing
        stored, a different user's record was cleared, or the record was
        unreadable and got cleared). Returns False when the same user already
        holds the active session, which is kept as is.
        """
        try:
            rec = self._read()
        except (ValueError, TypeError):
            logger.warning("Stored session unreadable; clearing")
            self.clear_session()
            return True
        if rec is None:
            return True
        if rec.user_id != new_user_id:
            logger.info("Session conflict: replacing session of a different user")
            self.clear_session()
            return True
        return False

    def clear_session(self) -> None:
        self._storage.remove(SESSION_KEY)
        self._storage.remove(USER_SESSION_KEY)
