"""
Identity domain: input validation and the user record.

Role is the single authority; `isAdmin` is derived on the way out and only
consulted on the way in when an older payload has no role at all.
"""
from __future__ import annotations

import logging

import pytest

from identity_access.domain import (
    EnrolledCourse,
    User,
    ValidationError,
    mask_mobile,
    validate_mobile,
    validate_new_password,
    validate_otp,
)


@pytest.mark.parametrize("value", ["", "123456789", "12345678901", "98765 4321", "98765a4321", None, 9876543210])
def test_validate_mobile_rejects_anything_but_ten_digits(value):
    with pytest.raises(ValidationError) as exc:
        validate_mobile(value)
    assert exc.value.code == "invalid_mobile"


def test_validate_mobile_accepts_ten_digits():
    assert validate_mobile("9876543210") == "9876543210"


@pytest.mark.parametrize("value", ["", "12345", "1234567", "12a456", " 123456"])
def test_validate_otp_requires_six_digits(value):
    with pytest.raises(ValidationError) as exc:
        validate_otp(value)
    assert exc.value.code == "invalid_otp"


def test_validate_new_password_rules():
    with pytest.raises(ValidationError) as exc:
        validate_new_password("old-pass", "", "")
    assert exc.value.code == "missing_fields"

    with pytest.raises(ValidationError) as exc:
        validate_new_password("old-pass", "new-pass", "new-pasz")
    assert exc.value.code == "password_mismatch"

    with pytest.raises(ValidationError) as exc:
        validate_new_password("old-pass", "abc", "abc")
    assert exc.value.code == "password_too_short"

    with pytest.raises(ValidationError) as exc:
        validate_new_password("same-pass", "same-pass", "same-pass")
    assert exc.value.code == "password_unchanged"

    validate_new_password("old-pass", "new-pass", "new-pass")


def test_mask_mobile_keeps_last_four_digits():
    assert mask_mobile("9876543210") == "******3210"
    assert mask_mobile("") == ""
    assert mask_mobile(None) == ""


def test_user_rejects_unknown_role():
    with pytest.raises(ValueError):
        User(id="u1", mobile="9876543210", role="superuser")


def test_is_admin_is_derived_from_role():
    assert User(id="a", mobile="9000000001", role="admin").is_admin is True
    assert User(id="t", mobile="9000000002", role="teacher").is_admin is False
    assert User(id="t", mobile="9000000002", role="teacher").is_teacher is True


def test_payload_round_trip_emits_derived_flag():
    user = User(
        id="u1",
        mobile="9876543210",
        role="admin",
        name="Asha",
        email="asha@example.org",
        is_verified=True,
        enrolled_courses=[EnrolledCourse(course_id="c1", payment_id="p1", enrolled_at="2024-01-01T00:00:00Z")],
    )
    payload = user.to_payload()
    assert payload["isAdmin"] is True
    assert payload["enrolledCourses"] == [
        {"courseId": "c1", "paymentId": "p1", "enrolledAt": "2024-01-01T00:00:00Z"}
    ]
    assert User.from_payload(payload) == user


def test_from_payload_accepts_mongo_style_id_and_populated_course():
    user = User.from_payload(
        {
            "_id": "abc",
            "mobile": "9876543210",
            "role": "student",
            "enrolledCourses": [{"courseId": {"_id": "c9", "title": "Polity"}, "paymentId": "pay_1"}],
        }
    )
    assert user.id == "abc"
    assert user.enrolled_courses[0].course_id == "c9"
    assert user.has_access_to("c9") is True
    assert user.has_access_to("c1") is False


def test_enrollment_without_payment_grants_no_access():
    user = User(id="u", mobile="9876543210", enrolled_courses=[EnrolledCourse(course_id="c1")])
    assert user.has_access_to("c1") is False


def test_legacy_payload_without_role_uses_admin_flag():
    assert User.from_payload({"id": "x", "isAdmin": True}).role == "admin"
    assert User.from_payload({"id": "y", "isAdmin": False}).role == "student"
    assert User.from_payload({"id": "z"}).role == "student"


def test_role_wins_when_flag_disagrees(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING, logger="iasdesk.identity_access.domain")
    user = User.from_payload({"id": "x", "role": "student", "isAdmin": True})
    assert user.role == "student"
    assert user.is_admin is False
    assert any("disagree" in r.getMessage() for r in caplog.records)


def test_from_payload_requires_an_id():
    with pytest.raises(ValueError):
        User.from_payload({"mobile": "9876543210"})
    with pytest.raises(ValueError):
        User.from_payload("not-a-mapping")  # type: ignore[arg-type]


@pytest.mark.parametrize("courses", [5, True, "c1", {"courseId": "c1"}])
def test_from_payload_rejects_non_list_enrolled_courses(courses):
    with pytest.raises(ValueError, match="invalid_enrolled_courses"):
        User.from_payload({"id": "u1", "mobile": "9876543210", "enrolledCourses": courses})


def test_from_payload_treats_missing_enrolled_courses_as_empty():
    assert User.from_payload({"id": "u1", "enrolledCourses": None}).enrolled_courses == []
