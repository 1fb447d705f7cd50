"""
Teacher onboarding: an admin creates the account, the teacher signs in with
the mobile number, changes the temporary password and then uses password login.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from web import main
from web.auth_utils import create_access_token
from web.repo import get_repo

pytestmark = pytest.mark.anyio("asyncio")

ADMIN = "9000000009"
TEACHER = "9000000001"


async def _client():
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _admin_headers() -> dict:
    admin = get_repo().create(mobile=ADMIN, role="admin", password="admin-pass")
    return {"Authorization": f"Bearer {create_access_token(admin.user)}"}


@pytest.mark.anyio
async def test_teacher_onboarding_end_to_end():
    async with (await _client()) as client:
        created = await client.post(
            "/api/users/teachers",
            headers=_admin_headers(),
            json={"mobile": TEACHER, "name": "Dr. Priya Mehta", "email": "Priya@IASDesk.com"},
        )
        assert created.status_code == 201
        user = created.json()["data"]["user"]
        assert user["role"] == "teacher"
        assert user["mustChangePassword"] is True
        assert user["email"] == "priya@iasdesk.com"

        first = await client.post("/api/teachers/initial-login", json={"mobile": TEACHER})
        assert first.status_code == 200
        token = first.json()["data"]["token"]
        auth = {"Authorization": f"Bearer {token}"}

        v = await client.post("/api/auth/verify-teacher", headers=auth)
        assert v.status_code == 200 and v.json()["data"]["isTeacher"] is True

        wrong = await client.post(
            "/api/auth/teacher-change-password",
            headers=auth,
            json={"currentPassword": "bad-guess", "newPassword": "fresh-pass"},
        )
        assert wrong.status_code == 401

        changed = await client.post(
            "/api/auth/teacher-change-password",
            headers=auth,
            json={"currentPassword": TEACHER, "newPassword": "fresh-pass"},
        )
        assert changed.status_code == 200
        assert changed.json()["data"]["user"]["mustChangePassword"] is False

        # Mobile-only login is closed once the password is set.
        again = await client.post("/api/teachers/initial-login", json={"mobile": TEACHER})
        assert again.status_code == 400

        old = await client.post("/api/teachers/login", json={"mobile": TEACHER, "password": TEACHER})
        assert old.status_code == 401
        ok = await client.post("/api/teachers/login", json={"mobile": TEACHER, "password": "fresh-pass"})
        assert ok.status_code == 200
        assert ok.json()["data"]["user"]["role"] == "teacher"


@pytest.mark.anyio
async def test_teacher_endpoints_ignore_other_roles():
    get_repo().create(mobile="9876543210", role="student")
    async with (await _client()) as client:
        r1 = await client.post("/api/teachers/initial-login", json={"mobile": "9876543210"})
        r2 = await client.post("/api/teachers/login", json={"mobile": "9876543210", "password": "x"})
        r3 = await client.post("/api/teachers/login", json={"mobile": "9876543210"})
    assert r1.status_code == 404
    assert r2.status_code == 404
    assert r3.status_code == 400


@pytest.mark.anyio
async def test_change_password_is_teacher_only():
    student = get_repo().create(mobile="9876543210", role="student", password="secret1")
    headers = {"Authorization": f"Bearer {create_access_token(student.user)}"}
    async with (await _client()) as client:
        r = await client.post(
            "/api/auth/teacher-change-password",
            headers=headers,
            json={"currentPassword": "secret1", "newPassword": "secret2"},
        )
        short = await client.post(
            "/api/auth/teacher-change-password",
            headers=headers,
            json={"currentPassword": "secret1", "newPassword": "abc"},
        )
    assert r.status_code == 403
    assert short.status_code == 400


@pytest.mark.anyio
async def test_users_api_requires_admin():
    student = get_repo().create(mobile="9876543210", role="student")
    headers = {"Authorization": f"Bearer {create_access_token(student.user)}"}
    async with (await _client()) as client:
        anon = await client.get("/api/users?role=student")
        forbidden = await client.get("/api/users?role=student", headers=headers)
        create = await client.post("/api/users/teachers", headers=headers, json={"mobile": TEACHER, "name": "T"})
    assert anon.status_code == 401
    assert forbidden.status_code == 403
    assert create.status_code == 403


@pytest.mark.anyio
async def test_users_list_filters_by_role_and_pages():
    headers = _admin_headers()
    for i in range(3):
        get_repo().create(mobile=f"981234567{i}", role="student", name=f"S{i}")
    async with (await _client()) as client:
        page = await client.get("/api/users?role=student&limit=2&offset=1", headers=headers)
        admins = await client.get("/api/users?role=admin", headers=headers)
        bad = await client.get("/api/users?role=root", headers=headers)
    assert page.status_code == 200
    assert [u["name"] for u in page.json()["data"]["users"]] == ["S1", "S2"]
    assert [u["mobile"] for u in admins.json()["data"]["users"]] == [ADMIN]
    assert bad.status_code == 400


@pytest.mark.anyio
async def test_create_teacher_conflict_and_validation():
    headers = _admin_headers()
    async with (await _client()) as client:
        first = await client.post("/api/users/teachers", headers=headers, json={"mobile": TEACHER, "name": "T"})
        dup = await client.post("/api/users/teachers", headers=headers, json={"mobile": TEACHER, "name": "T"})
        nameless = await client.post("/api/users/teachers", headers=headers, json={"mobile": "9000000002"})
        bad_mobile = await client.post("/api/users/teachers", headers=headers, json={"mobile": "123", "name": "T"})
    assert first.status_code == 201
    assert dup.status_code == 409
    assert nameless.status_code == 400
    assert bad_mobile.status_code == 400
