"""
Users API routes: admin-only account listing and teacher creation.

Why:
    Admins onboard teachers. A new teacher gets the mobile number as a
    temporary password and must change it on first sign-in.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from identity_access.domain import ALLOWED_ROLES, ValidationError, mask_mobile, validate_mobile

from web.repo import get_repo
from web.routes.security import envelope, fail, require_account

users_router = APIRouter(tags=["Users"])  # explicit paths below
logger = logging.getLogger("iasdesk.web.users")


class TeacherCreate(BaseModel):
    mobile: str | None = Field(default=None)
    name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=254)


@users_router.get("/api/users")
async def users_list(request: Request, role: str = "student", limit: int = 50, offset: int = 0):
    """List accounts by role, admins only.

    Validation:
        - `role` in ALLOWED_ROLES (student, teacher, admin)
        - `limit` clamped to 1..200, `offset` >= 0
    """
    _, error = require_account(request, role="admin")
    if error is not None:
        return error
    if role not in ALLOWED_ROLES:
        return fail(400, "Invalid role")
    limit = max(1, min(200, int(limit or 50)))
    offset = max(0, int(offset or 0))
    users = get_repo().list_by_role(role=role, limit=limit, offset=offset)
    return envelope(
        success=True,
        message="Users loaded",
        data={"users": [u.to_payload() for u in users], "limit": limit, "offset": offset},
    )


@users_router.post("/api/users/teachers")
async def users_create_teacher(request: Request, payload: TeacherCreate):
    _, error = require_account(request, role="admin")
    if error is not None:
        return error
    mobile = (payload.mobile or "").strip()
    name = (payload.name or "").strip()
    if not name:
        return fail(400, "Name is required")
    try:
        validate_mobile(mobile)
    except ValidationError as exc:
        return fail(400, exc.message)
    try:
        account = get_repo().create(
            mobile=mobile,
            role="teacher",
            name=name,
            email=(payload.email or "").strip().lower() or None,
            password=mobile,
            must_change_password=True,
        )
    except ValueError:
        return fail(409, "A user with this mobile number already exists")
    logger.info("Teacher created mobile=%s", mask_mobile(mobile))
    return envelope(
        success=True,
        message="Teacher created. The mobile number is the temporary password.",
        data={"user": account.user.to_payload()},
        status_code=201,
    )
