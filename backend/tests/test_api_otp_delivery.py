"""
OTP delivery and default admin seeding.

Given an SMS gateway URL, send-otp posts the code through `requests`; a
gateway failure surfaces as 503 so the client treats it as unavailable.
"""
from __future__ import annotations

import logging

import httpx
import pytest
import requests
from httpx import ASGITransport

from web import main, sms
from web.auth_utils import verify_password
from web.repo import AccountRepo, seed_default_admin

pytestmark = pytest.mark.anyio("asyncio")


class _Resp:
    def __init__(self, status: int):
        self.status_code = status


async def _client():
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.anyio
async def test_send_otp_posts_to_gateway(monkeypatch: pytest.MonkeyPatch):
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append({"url": url, "json": json, "headers": headers})
        return _Resp(200)

    monkeypatch.setenv("SMS_GATEWAY_URL", "https://sms.example/send")
    monkeypatch.setenv("SMS_GATEWAY_KEY", "k-123")
    monkeypatch.setattr(sms.http, "post", fake_post)
    async with (await _client()) as client:
        r = await client.post("/api/auth/send-otp", json={"mobile": "9876543210"})
    assert r.status_code == 200
    assert sent[0]["url"] == "https://sms.example/send"
    assert sent[0]["json"]["to"] == "9876543210"
    assert sent[0]["headers"]["Authorization"] == "Bearer k-123"


@pytest.mark.anyio
@pytest.mark.parametrize("outcome", [_Resp(500), requests.ConnectionError("down")])
async def test_gateway_failure_returns_503(monkeypatch: pytest.MonkeyPatch, outcome):
    def fake_post(url, json=None, headers=None, timeout=None):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setenv("SMS_GATEWAY_URL", "https://sms.example/send")
    monkeypatch.setattr(sms.http, "post", fake_post)
    async with (await _client()) as client:
        r = await client.post("/api/auth/send-otp", json={"mobile": "9876543210"})
    assert r.status_code == 503
    assert r.json()["success"] is False


def test_unconfigured_gateway_logs_masked_number_only(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO, logger="iasdesk.web.sms")
    sms.deliver_otp("9876543210", "424242")
    text = " ".join(r.getMessage() for r in caplog.records)
    assert "******3210" in text
    assert "9876543210" not in text
    assert "424242" not in text


def test_seed_default_admin(monkeypatch: pytest.MonkeyPatch):
    repo = AccountRepo()
    assert seed_default_admin(repo) is None

    monkeypatch.setenv("ADMIN_MOBILE", "9000000009")
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret-pass")
    account = seed_default_admin(repo)
    assert account.user.role == "admin"
    assert verify_password("s3cret-pass", account.password_hash)
    # Idempotent.
    assert seed_default_admin(repo) is account


def test_seed_promotes_existing_account(monkeypatch: pytest.MonkeyPatch):
    repo = AccountRepo()
    repo.create(mobile="9000000009", role="student")
    monkeypatch.setenv("ADMIN_MOBILE", "9000000009")
    account = seed_default_admin(repo)
    assert account.user.role == "admin"
    assert account.user.is_admin is True
