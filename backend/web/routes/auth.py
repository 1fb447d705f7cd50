"""
Authentication routes (router-only module).

Why:
    Keep the student/admin sign-in endpoints and bearer verification in one
    router so `main.py` only wires middleware and routers.

Notes:
    - Every handler answers with the `{success, message, data?}` envelope; the
      client treats any envelope as an explicit answer.
    - Tokens, OTPs and passwords are never logged. Mobile numbers are masked.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from identity_access.domain import (
    MIN_PASSWORD_LENGTH,
    ValidationError,
    mask_mobile,
    validate_mobile,
    validate_otp,
)

from web.auth_utils import create_access_token, verify_password
from web.config import SETTINGS
from web.repo import get_otp_store, get_repo
from web.routes.security import envelope, fail, require_account
from web.sms import DeliveryError, deliver_otp

auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("iasdesk.web.auth")


class MobilePayload(BaseModel):
    mobile: str | None = Field(default=None)


class OtpPayload(BaseModel):
    mobile: str | None = Field(default=None)
    otp: str | None = Field(default=None)


class PasswordLoginPayload(BaseModel):
    mobile: str | None = Field(default=None)
    password: str | None = Field(default=None)


class ProfileUpdate(BaseModel):
    # Only these two fields are writable; anything else in the body is ignored.
    name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=254)


class ChangePasswordPayload(BaseModel):
    currentPassword: str | None = Field(default=None)
    newPassword: str | None = Field(default=None)


def _login_data(user) -> dict:
    return {"token": create_access_token(user), "user": user.to_payload()}


# --- Student -------------------------------------------------------------------


@auth_router.post("/auth/login")
async def auth_login(payload: MobilePayload):
    """Legacy mobile-only login for already registered students."""
    mobile = (payload.mobile or "").strip()
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    account = get_repo().get_by_mobile(mobile)
    if account is None or not account.is_active:
        return fail(404, "Mobile number not registered. Please register first.")
    if account.user.role != "student":
        return fail(403, "Please use the admin or teacher login.")
    logger.info("Student login mobile=%s", mask_mobile(mobile))
    return envelope(success=True, message="Login successful", data=_login_data(account.user))


@auth_router.post("/auth/send-otp")
async def auth_send_otp(payload: MobilePayload):
    mobile = (payload.mobile or "").strip()
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    code = get_otp_store().issue(
        mobile, ttl_seconds=SETTINGS.otp_ttl_seconds, max_attempts=SETTINGS.otp_max_attempts
    )
    try:
        deliver_otp(mobile, code)
    except DeliveryError:
        return fail(503, "Failed to send OTP. Please try again.")
    data = {"mobile": mobile, "expiresIn": SETTINGS.otp_ttl_seconds}
    if SETTINGS.otp_dev_echo:
        data["otp"] = code
    return envelope(success=True, message="OTP sent successfully to your mobile number", data=data)


@auth_router.post("/auth/verify-otp")
async def auth_verify_otp(payload: OtpPayload):
    """Verify an OTP and sign in, registering the student on first success."""
    mobile = (payload.mobile or "").strip()
    otp = (payload.otp or "").strip()
    if not mobile or not otp:
        return fail(400, "Mobile number and OTP are required")
    try:
        validate_mobile(mobile)
        validate_otp(otp)
    except ValidationError as exc:
        return fail(400, exc.message)

    outcome = get_otp_store().verify(mobile, otp)
    if outcome == "locked":
        return fail(429, "Too many invalid attempts. Please request a new OTP.")
    if outcome != "ok":
        return fail(400, "Invalid or expired OTP")

    repo = get_repo()
    account = repo.get_by_mobile(mobile)
    if account is None:
        account = repo.create(mobile=mobile, role="student", is_verified=True)
        message = "Registration successful"
    elif account.user.role != "student" or not account.is_active:
        return fail(403, "Please use the admin or teacher login.")
    else:
        message = "OTP verified successfully"
    return envelope(success=True, message=message, data=_login_data(account.user))


# --- Admin ---------------------------------------------------------------------


@auth_router.post("/auth/admin/login")
async def auth_admin_login(payload: PasswordLoginPayload):
    mobile = (payload.mobile or "").strip()
    password = payload.password or ""
    if not mobile or not password:
        return fail(400, "Mobile number and password are required")
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    account = get_repo().get_by_mobile(mobile)
    if (
        account is None
        or not account.is_active
        or account.user.role != "admin"
        or not verify_password(password, account.password_hash)
    ):
        logger.info("Admin login rejected mobile=%s", mask_mobile(mobile))
        return fail(401, "Invalid admin credentials")
    return envelope(success=True, message="Admin login successful", data=_login_data(account.user))


# --- Token verification ----------------------------------------------------------


@auth_router.post("/auth/verify-admin")
async def auth_verify_admin(request: Request):
    account, error = require_account(request, role="admin", denied={"isAdmin": False})
    if error is not None:
        return error
    return envelope(
        success=True,
        message="Admin verified",
        data={"isAdmin": True, "user": account.user.to_payload()},
    )


@auth_router.post("/auth/verify-teacher")
async def auth_verify_teacher(request: Request):
    account, error = require_account(request, role="teacher", denied={"isTeacher": False})
    if error is not None:
        return error
    return envelope(
        success=True,
        message="Teacher verified",
        data={"isTeacher": True, "user": account.user.to_payload()},
    )


@auth_router.post("/auth/verify-token")
async def auth_verify_token(request: Request):
    account, error = require_account(request)
    if error is not None:
        return error
    if not account.user.is_verified:
        return fail(401, "Account not verified.")
    return envelope(success=True, message="Token is valid", data={"user": account.user.to_payload()})


# --- Profile -------------------------------------------------------------------


@auth_router.get("/auth/profile")
async def auth_get_profile(request: Request):
    account, error = require_account(request)
    if error is not None:
        return error
    return envelope(success=True, message="Profile loaded", data={"user": account.user.to_payload()})


@auth_router.api_route("/auth/profile", methods=["PUT", "PATCH"])
async def auth_update_profile(request: Request, payload: ProfileUpdate):
    account, error = require_account(request)
    if error is not None:
        return error
    name = payload.name.strip() if payload.name is not None else None
    email = payload.email.strip() if payload.email is not None else None
    if name is not None and not name:
        return fail(400, "Name cannot be empty")
    if email and ("@" not in email or email.startswith("@") or email.endswith("@")):
        return fail(400, "Please provide a valid email address")
    user = get_repo().update_profile(account.user.id, name=name, email=email)
    return envelope(success=True, message="Profile updated successfully", data={"user": user.to_payload()})


@auth_router.post("/auth/teacher-change-password")
async def auth_teacher_change_password(request: Request, payload: ChangePasswordPayload):
    """Replace a teacher's password and clear the forced-change flag."""
    account, error = require_account(request)
    if error is not None:
        return error
    current = payload.currentPassword or ""
    new = payload.newPassword or ""
    if not current or not new:
        return fail(400, "Current password and new password are required")
    if len(new) < MIN_PASSWORD_LENGTH:
        return fail(400, f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if account.user.role != "teacher":
        return fail(403, "Access denied. Teachers only.")
    if not verify_password(current, account.password_hash):
        return fail(401, "Current password is incorrect")
    if new == current:
        return fail(400, "New password must be different from the current password")
    user = get_repo().set_password(account.user.id, new, must_change=False)
    logger.info("Teacher password changed mobile=%s", mask_mobile(user.mobile))
    return envelope(success=True, message="Password changed successfully", data={"user": user.to_payload()})
