"""
Identity domain: roles, the user record and input validation.

Why:
- Centralize allowed roles so the client core and the API never drift apart.
- Keep `role` the single authority. `is_admin` is derived and only emitted on
  the wire for older consumers that still read the boolean flag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import logging
import re

logger = logging.getLogger("iasdesk.identity_access.domain")

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "teacher", "admin"})

MOBILE_PATTERN = re.compile(r"^[0-9]{10}$")
OTP_PATTERN = re.compile(r"^[0-9]{6}$")
MIN_PASSWORD_LENGTH = 6


class ValidationError(ValueError):
    """Raised for malformed client input before any network call."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def validate_mobile(mobile: object) -> str:
    if not isinstance(mobile, str) or not MOBILE_PATTERN.match(mobile):
        raise ValidationError("invalid_mobile", "Please enter a valid 10-digit mobile number")
    return mobile


def validate_otp(otp: object) -> str:
    if not isinstance(otp, str) or not OTP_PATTERN.match(otp):
        raise ValidationError("invalid_otp", "Please enter a valid 6-digit OTP")
    return otp


def validate_new_password(current: str, new: str, confirm: str) -> None:
    """Check a password change locally (all set, confirmed, long enough, changed)."""
    if not (current or "").strip() or not (new or "").strip() or not (confirm or "").strip():
        raise ValidationError("missing_fields", "Please fill in all fields")
    if new != confirm:
        raise ValidationError("password_mismatch", "New passwords do not match")
    if len(new) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password_too_short",
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    if current == new:
        raise ValidationError("password_unchanged", "New password must be different from current password")


def mask_mobile(mobile: str | None) -> str:
    """Return a log-safe form of a mobile number, e.g. ******3210."""
    value = mobile or ""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


@dataclass(frozen=True)
class EnrolledCourse:
    course_id: str
    payment_id: Optional[str] = None
    enrolled_at: Optional[str] = None

    @property
    def grants_access(self) -> bool:
        # An enrollment without a payment grants no content access.
        return bool(self.payment_id)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"courseId": self.course_id}
        if self.payment_id:
            payload["paymentId"] = self.payment_id
        if self.enrolled_at:
            payload["enrolledAt"] = self.enrolled_at
        return payload

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "EnrolledCourse":
        course = data.get("courseId")
        # Populated course documents carry their id under `_id` or `id`.
        if isinstance(course, Mapping):
            course = course.get("_id") or course.get("id")
        return cls(
            course_id=str(course or ""),
            payment_id=data.get("paymentId") or None,
            enrolled_at=data.get("enrolledAt") or None,
        )


@dataclass(frozen=True)
class User:
    id: str
    mobile: str
    role: str = "student"
    name: str = ""
    email: Optional[str] = None
    is_verified: bool = False
    must_change_password: bool = False
    enrolled_courses: List[EnrolledCourse] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.role not in ALLOWED_ROLES:
            raise ValueError(f"invalid_role: {self.role}")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"

    def has_access_to(self, course_id: str) -> bool:
        return any(e.course_id == course_id and e.grants_access for e in self.enrolled_courses)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "role": self.role,
            "isAdmin": self.is_admin,
            "isVerified": self.is_verified,
            "mustChangePassword": self.must_change_password,
            "enrolledCourses": [e.to_payload() for e in self.enrolled_courses],
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "User":
        """Build a user from a server or cached payload.

        Raises ValueError when the payload has no usable id, an unknown role or
        an enrolledCourses field that is not a list.
        """
        if not isinstance(data, Mapping):
            raise ValueError("invalid_user_payload")
        uid = data.get("id") or data.get("_id")
        if not uid:
            raise ValueError("missing_user_id")
        courses = data.get("enrolledCourses") or []
        if not isinstance(courses, (list, tuple)):
            raise ValueError("invalid_enrolled_courses")
        return cls(
            id=str(uid),
            mobile=str(data.get("mobile") or ""),
            role=_resolve_role(data),
            name=str(data.get("name") or ""),
            email=data.get("email") or None,
            is_verified=bool(data.get("isVerified", False)),
            must_change_password=bool(data.get("mustChangePassword", False)),
            enrolled_courses=[
                EnrolledCourse.from_payload(item)
                for item in courses
                if isinstance(item, Mapping)
            ],
        )


def _resolve_role(data: Mapping[str, Any]) -> str:
    role = data.get("role")
    flag = data.get("isAdmin")
    if not role:
        # Legacy records predate the role field; only the boolean is present.
        return "admin" if flag is True else "student"
    role = str(role).lower()
    if flag is not None and bool(flag) != (role == "admin"):
        logger.warning("User payload role/isAdmin disagree; role=%s wins", role)
    return role


__all__ = [
    "ALLOWED_ROLES",
    "EnrolledCourse",
    "User",
    "ValidationError",
    "mask_mobile",
    "validate_mobile",
    "validate_new_password",
    "validate_otp",
]
