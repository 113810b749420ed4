"""
Authentication dependencies for FastAPI.

Two ways in for members:
1. Cookie session (web): httpOnly cookie holding the access token
2. Bearer token (mobile/API): Authorization header

Admin endpoints use the X-Admin-Token header instead.
"""

import logging
import uuid
from typing import Any

from fastapi import Cookie, Header, HTTPException

from realsingles import config, repo
from realsingles.auth.security import decode_access_token

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "rs_session"
INACTIVE_STATUSES = {"suspended", "deleted"}


class AuthError(Exception):
    """Raised when authentication fails with a machine-readable reason."""

    def __init__(self, reason: str, detail: str = "unauthorized"):
        self.reason = reason
        self.detail = detail
        self.trace_id = str(uuid.uuid4())
        super().__init__(detail)


def _log_auth_failure(
    reason: str,
    trace_id: str,
    token_prefix: str | None = None,
    auth_source: str | None = None,
    user_id: str | None = None,
) -> None:
    log_data = {
        "trace_id": trace_id,
        "reason": reason,
        "auth_source": auth_source,
        "token_prefix": token_prefix,
        "resolved_user_id": user_id,
    }
    logger.warning(f"[AUTH_FAILURE] {log_data}")


def _unauthorized(message: str, reason: str, trace_id: str, status_code: int = 401) -> HTTPException:
    if config.DEV_MODE:
        return HTTPException(status_code=status_code, detail=f"{message} ({reason}, trace_id={trace_id})")
    return HTTPException(status_code=status_code, detail=f"{message} (trace_id={trace_id})")


def _extract_bearer(authorization: str | None) -> str:
    if not authorization:
        raise AuthError(reason="missing_token", detail="Missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError(reason="malformed_token", detail="Invalid Authorization header")
    return parts[1].strip()


def _validate_token_and_get_user(token: str, trace_id: str, auth_source: str) -> dict[str, Any]:
    token_prefix = token[:8] + "..." if len(token) > 8 else token

    try:
        payload = decode_access_token(token)
    except HTTPException as e:
        reason = "token_expired" if "expired" in str(e.detail).lower() else "signature_invalid"
        _log_auth_failure(reason, trace_id, token_prefix, auth_source)
        raise _unauthorized("Not authenticated", reason, trace_id)

    user_id = str(payload.get("sub", ""))
    if not user_id:
        _log_auth_failure("token_missing_subject", trace_id, token_prefix, auth_source)
        raise _unauthorized("Not authenticated", "token_missing_subject", trace_id)

    user = repo.get_user_by_id(user_id)
    if not user:
        _log_auth_failure("token_user_not_found", trace_id, token_prefix, auth_source, user_id)
        raise _unauthorized("Not authenticated", "token_user_not_found", trace_id)

    if str(user.get("status") or "active") in INACTIVE_STATUSES:
        _log_auth_failure("account_inactive", trace_id, token_prefix, auth_source, user_id)
        raise _unauthorized("Account is not active", "account_inactive", trace_id, status_code=403)

    logger.debug(f"[auth] token valid user_id={user_id} source={auth_source}")
    return {
        "id": str(user["id"]),
        "email": user["email"],
        "display_name": user.get("display_name"),
        "status": user.get("status") or "active",
        "points_balance": int(user.get("points_balance") or 0),
    }


def get_current_user(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """Resolve the member from the session cookie, falling back to a bearer token."""
    trace_id = str(uuid.uuid4())

    if session_token:
        return _validate_token_and_get_user(session_token, trace_id, "cookie")

    if authorization:
        try:
            token = _extract_bearer(authorization)
        except AuthError as e:
            _log_auth_failure(e.reason, e.trace_id, auth_source="bearer")
            raise _unauthorized(e.detail, e.reason, e.trace_id)
        return _validate_token_and_get_user(token, trace_id, "bearer")

    _log_auth_failure("missing_token", trace_id, auth_source="none")
    raise _unauthorized("Not authenticated", "missing_token", trace_id)


def get_current_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> dict[str, Any]:
    runtime_admin_token = str(config.ADMIN_TOKEN or "")
    if runtime_admin_token and x_admin_token and x_admin_token == runtime_admin_token:
        return {"role": "admin", "auth_mode": "token"}

    # Local/dev token when no explicit ADMIN_TOKEN is configured.
    if not runtime_admin_token and config.DEV_MODE and x_admin_token == "dev-admin-token":
        return {"role": "admin", "auth_mode": "token"}

    logger.warning("[auth] admin token rejected")
    raise HTTPException(status_code=401, detail="Unauthorized - Admin access required")
