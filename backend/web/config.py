"""
Configuration and startup security checks for the IASDesk API.

Why: A leaked default signing key or a dev-only OTP echo in production would
let anyone mint admin sessions. This module keeps all env-driven settings in
one place and refuses to start on obviously insecure production setups.

Permissions: The caller needs no special privileges. Settings are read from
the environment at access time so tests can monkeypatch them.
"""
from __future__ import annotations

import os

DEFAULT_JWT_SECRET = "change-me"
DEFAULT_ADMIN_PASSWORD = "admin123"


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class ApiSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return os.getenv("IASDESK_ENV", "dev").lower()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env

    @property
    def is_prod_like(self) -> bool:
        return _is_prod_like(self.environment)

    @property
    def jwt_secret(self) -> str:
        return os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET)

    @property
    def jwt_algorithm(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def jwt_expires_minutes(self) -> int:
        # Seven days, matching the lifetime of a browser sign-in.
        return _get_int("JWT_EXPIRES_MINUTES", 7 * 24 * 60)

    @property
    def otp_ttl_seconds(self) -> int:
        return _get_int("OTP_TTL_SECONDS", 300)

    @property
    def otp_max_attempts(self) -> int:
        return _get_int("OTP_MAX_ATTEMPTS", 3)

    @property
    def otp_dev_echo(self) -> bool:
        return _get_bool("OTP_DEV_ECHO") and not self.is_prod_like

    @property
    def cors_origins(self) -> list[str]:
        raw = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")
        return [item.strip() for item in raw.split(",") if item.strip()]


SETTINGS = ApiSettings()


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only; development stays permissive):
    - JWT_SECRET_KEY must be set and not the development placeholder.
    - A seeded admin must not use the development default password.
    - OTP_DEV_ECHO must be off.
    - API_BASE_URL, when set, must use https.
    """
    env = os.getenv("IASDESK_ENV", "dev")
    if not _is_prod_like(env):
        return

    secret = (os.getenv("JWT_SECRET_KEY") or "").strip()
    if not secret or secret == DEFAULT_JWT_SECRET or secret.upper().startswith("CHANGE_ME"):
        raise SystemExit("Refusing to start: JWT_SECRET_KEY is unset or a placeholder in production.")

    if os.getenv("ADMIN_MOBILE") and (os.getenv("ADMIN_PASSWORD") or DEFAULT_ADMIN_PASSWORD) == DEFAULT_ADMIN_PASSWORD:
        raise SystemExit("Refusing to start: ADMIN_PASSWORD uses the development default in production.")

    if _get_bool("OTP_DEV_ECHO"):
        raise SystemExit("Refusing to start: OTP_DEV_ECHO must be false in production/staging.")

    base = (os.getenv("API_BASE_URL") or "").strip().lower()
    if base.startswith("http://"):
        raise SystemExit("Refusing to start: API_BASE_URL must use https in production (got http).")
