"""
Route Guard: decide whether a protected view may render.

Behavior:
    - Plain routes need a stored general token and a cached user; no round trip.
    - Teacher routes check the local role first, then ask the backend.
    - Admin routes resolve the admin token slot only, ask the backend, and
      additionally require the cached user to be an admin.
    - A server-confirmed invalid token forces a logout. A failed round trip
      only denies: "cannot verify" is not "verified as invalid".
    - Results are evaluated against the context state read *after* the round
      trip, so a logout that happened meanwhile is never overwritten.

Every denial carries the redirect target and the original location so the
login view can navigate back after signing in.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
import logging

from .client import TransportError
from .context import AuthContext, Authenticated

logger = logging.getLogger("iasdesk.identity_access.guard")

ADMIN_LOGIN_PATH = "/admin-login"
TEACHER_LOGIN_PATH = "/teacher-login"
AUTH_PATH = "/auth"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    redirect_to: Optional[str] = None
    from_location: Optional[str] = None


class RouteGuard:
    def __init__(self, context: AuthContext):
        self.context = context
        self._verifying = False

    @property
    def verifying(self) -> bool:
        """True while a backend verification is in flight (show a spinner)."""
        return self._verifying

    def check(
        self,
        location: str,
        *,
        require_admin: bool = False,
        require_teacher: bool = False,
        is_mounted: Callable[[], bool] | None = None,
    ) -> AccessDecision:
        if require_admin:
            target = ADMIN_LOGIN_PATH
        elif require_teacher:
            target = TEACHER_LOGIN_PATH
        else:
            target = AUTH_PATH

        def deny(reason: str) -> AccessDecision:
            return AccessDecision(allowed=False, reason=reason, redirect_to=target, from_location=location)

        state = self.context.state
        if not isinstance(state, Authenticated):
            return deny("unauthenticated")

        self._verifying = True
        try:
            if require_admin:
                reason = self._check_admin(state, is_mounted)
            elif require_teacher:
                reason = self._check_teacher(state, is_mounted)
            else:
                reason = self._check_plain(state)
        finally:
            self._verifying = False

        if reason == "ok":
            return AccessDecision(allowed=True, reason="ok")
        return deny(reason)

    # -- branches ---------------------------------------------------------------

    def _check_plain(self, state: Authenticated) -> str:
        if self.context.tokens.get_token() and self.context.tokens.get_stored_user() is not None:
            return "ok"
        return "missing_token"

    def _check_admin(self, state: Authenticated, is_mounted: Callable[[], bool] | None) -> str:
        notify = self.context.notifier.notify
        admin_token = self.context.tokens.get_admin_token()
        if not admin_token:
            notify("error", "Admin authentication required")
            return "missing_admin_token"
        try:
            resp = self.context.client.verify_admin(admin_token)
        except TransportError:
            if not _still_mounted(is_mounted):
                return "unmounted"
            notify("error", "Failed to verify admin credentials")
            return "verification_unavailable"
        if not _still_mounted(is_mounted):
            return "unmounted"
        if not self._still_current(state):
            return "stale"
        if resp.success and resp.data.get("isAdmin") is True:
            if state.user.is_admin:
                return "ok"
            logger.info("Admin verified by server but cached user is not an admin")
            notify("error", "Insufficient privileges. Admin access required.")
            return "insufficient_role"
        notify("error", "Invalid or expired admin session. Please login again.")
        self.context.tokens.clear_admin_token()
        self.context.logout()
        return "invalid_admin_token"

    def _check_teacher(self, state: Authenticated, is_mounted: Callable[[], bool] | None) -> str:
        notify = self.context.notifier.notify
        if not state.user.is_teacher:
            notify("error", "Teacher access required")
            return "insufficient_role"
        token = self.context.tokens.get_token()
        if not token:
            notify("error", "Teacher authentication required")
            return "missing_token"
        try:
            resp = self.context.client.verify_teacher(token)
        except TransportError:
            if not _still_mounted(is_mounted):
                return "unmounted"
            notify("error", "Failed to verify teacher credentials")
            return "verification_unavailable"
        if not _still_mounted(is_mounted):
            return "unmounted"
        if not self._still_current(state):
            return "stale"
        if resp.success and resp.data.get("isTeacher") is True:
            return "ok"
        notify("error", "Invalid teacher session. Please login again.")
        self.context.logout()
        return "invalid_teacher_token"

    def _still_current(self, before: Authenticated) -> bool:
        now = self.context.state
        return isinstance(now, Authenticated) and now.user.id == before.user.id and now.token == before.token


def _still_mounted(is_mounted: Callable[[], bool] | None) -> bool:
    return True if is_mounted is None else bool(is_mounted())
