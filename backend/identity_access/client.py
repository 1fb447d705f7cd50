"""
Auth Service Client: thin wrapper over the backend auth endpoints.

Why: Keep HTTP details out of the state machine. The context only sees an
`AuthResponse` (the server answered) or a `TransportError` (it did not).

Contract:
- Any JSON envelope `{success, message, data}` is an explicit answer, whatever
  the status code below 500.
- No response, a non-JSON body or a 5xx raises `TransportError`. Callers
  decide whether that fails closed (login) or leniently (re-verification).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import logging
import os

# Small indirection to ease monkeypatching in tests
import requests as http

logger = logging.getLogger("iasdesk.identity_access.client")

DEFAULT_BASE_URL = "http://localhost:5000/api"


class TransportError(Exception):
    """Raised when the backend gave no usable answer."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ServiceUnavailable(TransportError):
    """The backend answered with a server error (5xx)."""


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        base = (os.getenv("API_BASE_URL") or DEFAULT_BASE_URL).strip().rstrip("/")
        try:
            timeout = float(os.getenv("API_TIMEOUT_SECONDS", "10"))
        except ValueError:
            timeout = 10.0
        return cls(base_url=base, timeout_seconds=timeout)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"


@dataclass(frozen=True)
class AuthResponse:
    success: bool
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    status_code: int = 200

    @classmethod
    def from_envelope(cls, body: Mapping[str, Any], status_code: int) -> "AuthResponse":
        data = body.get("data")
        return cls(
            success=bool(body.get("success")) and status_code < 400,
            message=str(body.get("message") or ""),
            data=dict(data) if isinstance(data, Mapping) else {},
            status_code=status_code,
        )


class AuthServiceClient:
    """Issue auth calls against the configured API base URL.

    Parameters
    ----------
    config:
        Base URL and timeout.
    http_client:
        Object exposing `request(method, url, json=, headers=, timeout=)`.
        Defaults to the `requests` module; a `requests.Session` or an
        httpx-based test client work as well.
    """

    def __init__(self, config: ClientConfig | None = None, http_client: Any = None):
        self.cfg = config or ClientConfig.from_env()
        self._http = http_client if http_client is not None else http

    def _call(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[Mapping[str, Any]] = None,
        token: Optional[str] = None,
    ) -> AuthResponse:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self._http.request(
                method,
                self.cfg.url(path),
                json=dict(payload) if payload is not None else None,
                headers=headers,
                timeout=self.cfg.timeout_seconds,
            )
        except http.RequestException as exc:
            logger.warning("Auth call %s %s failed: %s", method, path, exc.__class__.__name__)
            raise TransportError("network_error") from exc
        if resp.status_code >= 500:
            raise ServiceUnavailable("server_error")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError("invalid_response") from exc
        if not isinstance(body, Mapping):
            raise TransportError("invalid_response")
        return AuthResponse.from_envelope(body, resp.status_code)

    # --- student ---------------------------------------------------------------

    def login(self, mobile: str) -> AuthResponse:
        return self._call("POST", "/auth/login", payload={"mobile": mobile})

    def send_otp(self, mobile: str) -> AuthResponse:
        return self._call("POST", "/auth/send-otp", payload={"mobile": mobile})

    def verify_otp(self, mobile: str, otp: str) -> AuthResponse:
        return self._call("POST", "/auth/verify-otp", payload={"mobile": mobile, "otp": otp})

    # --- admin / teacher -------------------------------------------------------

    def admin_login(self, mobile: str, password: str) -> AuthResponse:
        return self._call("POST", "/auth/admin/login", payload={"mobile": mobile, "password": password})

    def teacher_initial_login(self, mobile: str) -> AuthResponse:
        return self._call("POST", "/teachers/initial-login", payload={"mobile": mobile})

    def teacher_login(self, mobile: str, password: str) -> AuthResponse:
        return self._call("POST", "/teachers/login", payload={"mobile": mobile, "password": password})

    def change_teacher_password(self, token: str, current_password: str, new_password: str) -> AuthResponse:
        return self._call(
            "POST",
            "/auth/teacher-change-password",
            payload={"currentPassword": current_password, "newPassword": new_password},
            token=token,
        )

    # --- token verification ----------------------------------------------------

    def verify_admin(self, token: str) -> AuthResponse:
        return self._call("POST", "/auth/verify-admin", token=token)

    def verify_teacher(self, token: str) -> AuthResponse:
        return self._call("POST", "/auth/verify-teacher", token=token)

    def verify_token(self, token: str) -> AuthResponse:
        return self._call("POST", "/auth/verify-token", token=token)

    # --- profile ---------------------------------------------------------------

    def get_profile(self, token: str) -> AuthResponse:
        return self._call("GET", "/auth/profile", token=token)

    def update_profile(self, token: str, changes: Mapping[str, Any]) -> AuthResponse:
        return self._call("PUT", "/auth/profile", payload=changes, token=token)
