"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
reset the API's module-level stores so tests never share accounts or OTPs.
"""
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ and backend/tests are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Start every test from development defaults.

    Why:
        Config and API tests opt into prod semantics, SMS delivery or a seeded
        admin via env vars. Clearing them here keeps a forgotten teardown from
        leaking into unrelated tests in a full run.
    """
    for var in (
        "IASDESK_ENV",
        "JWT_SECRET_KEY",
        "JWT_ALGORITHM",
        "JWT_EXPIRES_MINUTES",
        "OTP_TTL_SECONDS",
        "OTP_MAX_ATTEMPTS",
        "OTP_DEV_ECHO",
        "ADMIN_MOBILE",
        "ADMIN_PASSWORD",
        "ADMIN_NAME",
        "SMS_GATEWAY_URL",
        "SMS_GATEWAY_KEY",
        "API_BASE_URL",
        "API_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_api_stores():
    """Give each test an empty account repo and OTP store.

    Behavior:
        - Replaces `web.repo.REPO` / `web.repo.OTP_STORE` with fresh instances.
        - Clears any `SETTINGS.override_environment(...)` left behind.
    """
    try:
        from web import repo
        from web.config import SETTINGS
    except ImportError:
        yield
        return
    repo.set_repo(repo.AccountRepo())
    repo.set_otp_store(repo.OTPStore())
    SETTINGS.override_environment(None)
    yield
    SETTINGS.override_environment(None)
