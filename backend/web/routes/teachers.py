"""
Teacher sign-in routes.

Teachers are created by an admin with a temporary password. Until they change
it (`mustChangePassword`), they may sign in with the mobile number alone; after
that only mobile plus password works.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter

from identity_access.domain import ValidationError, mask_mobile, validate_mobile

from web.auth_utils import create_access_token, verify_password
from web.repo import get_repo
from web.routes.auth import MobilePayload, PasswordLoginPayload
from web.routes.security import envelope, fail

teachers_router = APIRouter(tags=["Teachers"])
logger = logging.getLogger("iasdesk.web.teachers")


def _find_teacher(mobile: str):
    account = get_repo().get_by_mobile(mobile)
    if account is None or not account.is_active or account.user.role != "teacher":
        return None
    return account


@teachers_router.post("/teachers/initial-login")
async def teachers_initial_login(payload: MobilePayload):
    mobile = (payload.mobile or "").strip()
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    account = _find_teacher(mobile)
    if account is None:
        return fail(404, "Teacher account not found. Please contact admin.")
    if not account.user.must_change_password:
        return fail(400, "Profile already complete. Please use regular login with password.")
    logger.info("Teacher initial login mobile=%s", mask_mobile(mobile))
    return envelope(
        success=True,
        message="Login successful. Please change your password.",
        data={"token": create_access_token(account.user), "user": account.user.to_payload()},
    )


@teachers_router.post("/teachers/login")
async def teachers_login(payload: PasswordLoginPayload):
    mobile = (payload.mobile or "").strip()
    password = payload.password or ""
    if not mobile or not password:
        return fail(400, "Mobile number and password are required")
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    account = _find_teacher(mobile)
    if account is None:
        return fail(404, "Teacher account not found")
    if not verify_password(password, account.password_hash):
        return fail(401, "Invalid password")
    return envelope(
        success=True,
        message="Login successful",
        data={"token": create_access_token(account.user), "user": account.user.to_payload()},
    )
