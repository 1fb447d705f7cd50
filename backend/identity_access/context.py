"""
Auth Context: single source of truth for who is signed in.

Why:
    Views must not touch tokens or session bookkeeping directly. They call the
    action methods here, which drive an explicit state machine and apply the
    storage side effects that belong to each transition.

Design:
    - `AuthState` is a tagged union (`Unauthenticated`, `Authenticating`,
      `Authenticated`), so "loading and authenticated" cannot be represented.
    - `reduce()` is pure. Side effects (Token Store, Session Registry) happen in
      the action methods, next to the dispatch that commits the transition.
    - Every action returns a bool and reports through the injected `Notifier`.
      No exception reaches the caller.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Protocol, Union
import logging

from .client import AuthResponse, AuthServiceClient, TransportError
from .domain import (
    User,
    ValidationError,
    mask_mobile,
    validate_mobile,
    validate_new_password,
    validate_otp,
)
from .sessions import SessionRegistry
from .token_store import TokenStore

logger = logging.getLogger("iasdesk.identity_access.context")


# --- State ---------------------------------------------------------------------


@dataclass(frozen=True)
class Unauthenticated:
    user: None = None
    token: None = None
    is_authenticated: bool = False
    loading: bool = False


@dataclass(frozen=True)
class Authenticating:
    user: None = None
    token: None = None
    is_authenticated: bool = False
    loading: bool = True


@dataclass(frozen=True)
class Authenticated:
    user: User
    token: str
    is_authenticated: bool = True
    loading: bool = False


AuthState = Union[Unauthenticated, Authenticating, Authenticated]


# --- Actions -------------------------------------------------------------------


@dataclass(frozen=True)
class AuthStart:
    pass


@dataclass(frozen=True)
class AuthSuccess:
    user: User
    token: str


@dataclass(frozen=True)
class AuthFailure:
    pass


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class UpdateUser:
    user: User


AuthAction = Union[AuthStart, AuthSuccess, AuthFailure, Logout, UpdateUser]


def reduce(state: AuthState, action: AuthAction) -> AuthState:
    if isinstance(action, AuthStart):
        return Authenticating()
    if isinstance(action, AuthSuccess):
        return Authenticated(user=action.user, token=action.token)
    if isinstance(action, (AuthFailure, Logout)):
        return Unauthenticated()
    if isinstance(action, UpdateUser):
        if isinstance(state, Authenticated):
            return Authenticated(user=action.user, token=state.token)
        return state
    return state


# --- Notifications -------------------------------------------------------------


class Notifier(Protocol):
    def notify(self, kind: str, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier: route user-facing messages to the log."""

    _levels = {"error": logging.WARNING, "success": logging.INFO, "info": logging.INFO}

    def __init__(self, name: str = "iasdesk.notifications"):
        self._logger = logging.getLogger(name)

    def notify(self, kind: str, message: str) -> None:
        self._logger.log(self._levels.get(kind, logging.INFO), "[%s] %s", kind, message)


# --- Context -------------------------------------------------------------------


class AuthContext:
    """Hold `AuthState` and expose the sign-in/out actions.

    Parameters
    ----------
    client:
        Backend client.
    token_store, sessions:
        Persistence for tokens/cached user and the active-session record. Only
        this class mutates them in response to auth actions.
    notifier:
        Receives `(kind, message)` for every user-facing outcome.
    """

    def __init__(
        self,
        client: AuthServiceClient,
        token_store: TokenStore,
        sessions: SessionRegistry,
        notifier: Notifier | None = None,
    ):
        self.client = client
        self.tokens = token_store
        self.sessions = sessions
        self.notifier: Notifier = notifier or LoggingNotifier()
        # Booting counts as loading until restore() resolves.
        self._state: AuthState = Authenticating()
        self._listeners: List[Callable[[AuthState], None]] = []

    # -- state access -----------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def token(self) -> Optional[str]:
        return self._state.token

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def loading(self) -> bool:
        return self._state.loading

    def subscribe(self, listener: Callable[[AuthState], None]) -> Callable[[], None]:
        """Register a callback for state changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, action: AuthAction) -> AuthState:
        previous = self._state
        self._state = reduce(previous, action)
        if self._state != previous:
            for listener in list(self._listeners):
                try:
                    listener(self._state)
                except Exception as exc:
                    logger.warning("Auth listener failed: %s", exc.__class__.__name__)
        return self._state

    # -- helpers ----------------------------------------------------------------

    def _reject(self, exc: ValidationError) -> bool:
        self.notifier.notify("error", exc.message)
        return False

    def _fail(self, message: str) -> bool:
        self.notifier.notify("error", message)
        self.dispatch(AuthFailure())
        return False

    def _parse_login(self, resp: AuthResponse) -> tuple[User, str] | None:
        token = resp.data.get("token")
        try:
            user = User.from_payload(resp.data.get("user") or {})
        except ValueError:
            return None
        if not isinstance(token, str) or not token:
            return None
        return user, token

    def _establish(self, user: User, token: str, *, admin: bool = False) -> None:
        """Commit AUTH_SUCCESS with its storage side effects."""
        if admin:
            # Admins always evict whatever session was active before.
            self.sessions.clear_session()
            self.tokens.set_admin_token(token)
            fresh = True
        else:
            fresh = self.sessions.handle_session_conflict(user.id)
        self.tokens.set_token(token)
        self.tokens.set_stored_user(user)
        if fresh:
            self.sessions.set_active_session(user.id)
        self.dispatch(AuthSuccess(user=user, token=token))

    def _login_call(
        self,
        call: Callable[[], AuthResponse],
        *,
        generic_error: str,
        accept: Callable[[User], bool] | None = None,
        role_error: str = "",
        admin: bool = False,
    ) -> bool:
        self.dispatch(AuthStart())
        try:
            resp = call()
        except TransportError:
            return self._fail(generic_error)
        if not resp.success:
            return self._fail(resp.message or generic_error)
        parsed = self._parse_login(resp)
        if parsed is None:
            return self._fail(generic_error)
        user, token = parsed
        if accept is not None and not accept(user):
            return self._fail(role_error or generic_error)
        self._establish(user, token, admin=admin)
        self.notifier.notify("success", resp.message or "Login successful")
        return True

    # -- actions ----------------------------------------------------------------

    def send_otp(self, mobile: str) -> bool:
        """Request an OTP. Success does not sign anyone in."""
        try:
            validate_mobile(mobile)
        except ValidationError as exc:
            return self._reject(exc)
        self.dispatch(AuthStart())
        try:
            resp = self.client.send_otp(mobile)
        except TransportError:
            return self._fail("Failed to send OTP")
        if not resp.success:
            return self._fail(resp.message or "Failed to send OTP")
        logger.info("OTP requested for %s", mask_mobile(mobile))
        self.notifier.notify("success", resp.message or "OTP sent")
        self.dispatch(AuthFailure())
        return True

    def verify_otp(self, mobile: str, otp: str) -> bool:
        try:
            validate_mobile(mobile)
            validate_otp(otp)
        except ValidationError as exc:
            return self._reject(exc)
        return self._login_call(
            lambda: self.client.verify_otp(mobile, otp),
            generic_error="OTP verification failed",
        )

    def login_with_mobile(self, mobile: str) -> bool:
        """Legacy mobile-only login for registered students."""
        try:
            validate_mobile(mobile)
        except ValidationError as exc:
            return self._reject(exc)
        return self._login_call(lambda: self.client.login(mobile), generic_error="Login failed")

    def admin_login(self, username: str, password: str) -> bool:
        try:
            validate_mobile(username)
        except ValidationError as exc:
            return self._reject(exc)
        if not password:
            return self._reject(ValidationError("missing_password", "Please enter your password"))
        return self._login_call(
            lambda: self.client.admin_login(username, password),
            generic_error="Admin login failed",
            accept=lambda u: u.is_admin,
            role_error="Admin access required",
            admin=True,
        )

    def teacher_initial_login(self, mobile: str) -> bool:
        try:
            validate_mobile(mobile)
        except ValidationError as exc:
            return self._reject(exc)
        return self._login_call(
            lambda: self.client.teacher_initial_login(mobile),
            generic_error="Login failed",
            accept=lambda u: u.is_teacher,
            role_error="Teacher access required",
        )

    def teacher_login(self, mobile: str, password: str) -> bool:
        try:
            validate_mobile(mobile)
        except ValidationError as exc:
            return self._reject(exc)
        if not password:
            return self._reject(ValidationError("missing_fields", "Please fill in all fields"))
        return self._login_call(
            lambda: self.client.teacher_login(mobile, password),
            generic_error="Login failed",
            accept=lambda u: u.is_teacher,
            role_error="Teacher access required",
        )

    def change_teacher_password(self, current: str, new: str, confirm: str) -> bool:
        try:
            validate_new_password(current, new, confirm)
        except ValidationError as exc:
            return self._reject(exc)
        state = self._state
        if not isinstance(state, Authenticated):
            self.notifier.notify("error", "Please login again")
            return False
        try:
            resp = self.client.change_teacher_password(state.token, current, new)
        except TransportError:
            self.notifier.notify("error", "Something went wrong. Please try again.")
            return False
        if not resp.success:
            self.notifier.notify("error", resp.message or "Failed to change password")
            return False
        user = _replace_user(state.user, {"mustChangePassword": False})
        self.tokens.set_stored_user(user)
        self.dispatch(UpdateUser(user))
        self.notifier.notify("success", resp.message or "Password changed successfully!")
        return True

    def logout(self) -> bool:
        self.tokens.clear_tokens()
        self.sessions.clear_session()
        self.dispatch(Logout())
        self.notifier.notify("success", "Logged out successfully")
        return True

    def update_profile(self, changes: Mapping[str, Any]) -> bool:
        state = self._state
        if not isinstance(state, Authenticated):
            self.notifier.notify("error", "Please login to update your profile")
            return False
        try:
            resp = self.client.update_profile(state.token, changes)
        except TransportError:
            self.notifier.notify("error", "Profile update failed")
            return False
        if not resp.success:
            self.notifier.notify("error", resp.message or "Profile update failed")
            return False
        try:
            user = User.from_payload(resp.data.get("user") or {})
        except ValueError:
            self.notifier.notify("error", "Profile update failed")
            return False
        self.tokens.set_stored_user(user)
        self.dispatch(UpdateUser(user))
        self.notifier.notify("success", resp.message or "Profile updated")
        return True

    def restore(self) -> AuthState:
        """Reconcile with storage on startup.

        Cached admins are trusted without a round trip. Everyone else is
        re-verified; a transport failure keeps the cached identity, an
        explicit rejection clears it.
        """
        user = self.tokens.get_stored_user()
        token = self.tokens.get_token() or self.tokens.get_admin_token()
        if not token or user is None:
            return self.dispatch(AuthFailure())
        if user.is_admin:
            return self.dispatch(AuthSuccess(user=user, token=token))
        try:
            resp = self.client.verify_token(token)
        except TransportError:
            logger.info("Token verification unavailable; using cached user")
            return self.dispatch(AuthSuccess(user=user, token=token))
        if not resp.success:
            logger.info("Stored token rejected; signing out")
            self.tokens.clear_tokens()
            self.sessions.clear_session()
            return self.dispatch(AuthFailure())
        try:
            fresh = User.from_payload(resp.data.get("user") or {})
        except ValueError:
            fresh = user
        self.tokens.set_stored_user(fresh)
        return self.dispatch(AuthSuccess(user=fresh, token=token))


def _replace_user(user: User, overrides: Mapping[str, Any]) -> User:
    payload = user.to_payload()
    payload.update(overrides)
    return User.from_payload(payload)
