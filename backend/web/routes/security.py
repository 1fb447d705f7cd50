"""
Shared web helpers for the auth routes: response envelope and bearer checks.

Every route answers with `{success, message, data?}` and
`Cache-Control: private, no-store`; keeping one implementation avoids drift
between the auth, teacher and user routers.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from web.auth_utils import TokenError, bearer_token, decode_access_token
from web.repo import Account, get_repo

logger = logging.getLogger("iasdesk.web.security")


def private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}


def envelope(
    *,
    success: bool,
    message: str,
    data: Optional[Mapping[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    body: dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = dict(data)
    return JSONResponse(body, status_code=status_code, headers=private_no_store())


def fail(status_code: int, message: str, data: Optional[Mapping[str, Any]] = None) -> JSONResponse:
    return envelope(success=False, message=message, data=data, status_code=status_code)


def require_account(
    request: Request, *, role: str | None = None, denied: Optional[Mapping[str, Any]] = None
) -> Tuple[Optional[Account], Optional[JSONResponse]]:
    """Resolve the bearer token to an active account.

    Returns `(account, None)` on success or `(None, response)` with a 401 for
    a missing/invalid token and a 403 (carrying `denied` as data) when the
    account does not have `role`.
    """
    token = bearer_token(request.headers)
    if not token:
        return None, fail(401, "No token, authorization denied")
    try:
        claims = decode_access_token(token)
    except TokenError as exc:
        logger.info("Rejected bearer token: %s", exc.code)
        return None, fail(401, "Token is not valid")
    account = get_repo().get(str(claims["sub"]))
    if account is None or not account.is_active:
        return None, fail(401, "Token is not valid")
    if role is not None and account.user.role != role:
        return None, fail(403, f"Access denied. {role.capitalize()} privileges required.", denied)
    return account, None
