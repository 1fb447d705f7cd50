"""
OTP delivery over an HTTP SMS gateway.

Without SMS_GATEWAY_URL the code is not sent anywhere; only a masked mobile
number is logged so local setups can still exercise the flow.
"""
from __future__ import annotations

import logging
import os

# Small indirection to ease monkeypatching in tests
import requests as http

from identity_access.domain import mask_mobile

logger = logging.getLogger("iasdesk.web.sms")


class DeliveryError(Exception):
    pass


def deliver_otp(mobile: str, code: str) -> None:
    url = (os.getenv("SMS_GATEWAY_URL") or "").strip()
    if not url:
        logger.info("SMS gateway not configured; OTP for %s not delivered", mask_mobile(mobile))
        return
    headers = {"Content-Type": "application/json"}
    key = (os.getenv("SMS_GATEWAY_KEY") or "").strip()
    if key:
        headers["Authorization"] = f"Bearer {key}"
    body = {"to": mobile, "message": f"Your IASDesk verification code is {code}"}
    try:
        resp = http.post(url, json=body, headers=headers, timeout=10)
    except http.RequestException as exc:
        logger.warning("SMS gateway request failed: %s", exc.__class__.__name__)
        raise DeliveryError("gateway_unreachable") from exc
    if resp.status_code >= 400:
        logger.warning("SMS gateway rejected message: status=%s", resp.status_code)
        raise DeliveryError("gateway_rejected")
