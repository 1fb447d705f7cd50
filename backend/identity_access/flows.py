"""Student sign-in by mobile number: login first, OTP as fallback."""
from __future__ import annotations

from typing import Callable
import time

from .context import AuthContext
from .domain import ValidationError, validate_mobile

RESEND_COOLDOWN_SECONDS = 60


class MobileSignInFlow:
    """Drive the two-step sign-in page.

    Registered students get in with the mobile number alone. Anyone else
    receives an OTP and moves to the OTP step. Resending is client-side rate
    limited by a cooldown; the server does not enforce it.
    """

    def __init__(
        self,
        context: AuthContext,
        *,
        clock: Callable[[], float] = time.monotonic,
        cooldown_seconds: int = RESEND_COOLDOWN_SECONDS,
    ):
        self.context = context
        self._clock = clock
        self.cooldown_seconds = cooldown_seconds
        self.step = "mobile"
        self.mobile = ""
        self._resend_at = 0.0

    @property
    def resend_remaining(self) -> int:
        left = self._resend_at - self._clock()
        return max(0, int(left + 0.999))

    def _start_cooldown(self) -> None:
        self._resend_at = self._clock() + self.cooldown_seconds

    def submit_mobile(self, mobile: str) -> str:
        """Return "authenticated", "otp_sent" or "failed"."""
        try:
            validate_mobile(mobile)
        except ValidationError as exc:
            self.context.notifier.notify("error", exc.message)
            return "failed"
        if self.context.login_with_mobile(mobile):
            self.mobile = mobile
            self.step = "done"
            return "authenticated"
        if not self.context.send_otp(mobile):
            return "failed"
        self.mobile = mobile
        self.step = "otp"
        self._start_cooldown()
        return "otp_sent"

    def submit_otp(self, otp: str) -> bool:
        if self.step != "otp":
            return False
        if self.context.verify_otp(self.mobile, otp):
            self.step = "done"
            return True
        return False

    def resend(self) -> bool:
        if self.step != "otp" or self.resend_remaining > 0:
            return False
        if not self.context.send_otp(self.mobile):
            return False
        self._start_cooldown()
        self.context.notifier.notify("success", "OTP sent again")
        return True

    def change_number(self) -> None:
        self.step = "mobile"
        self.mobile = ""
        self._resend_at = 0.0
