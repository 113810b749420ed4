import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from .. import repo as auth_repo
from ..auth.deps import SESSION_COOKIE_NAME, get_current_user
from ..auth.security import (
    create_access_token,
    hash_password,
    hash_refresh_token,
    new_refresh_token,
    verify_password,
)
from ..config import (
    ACCESS_TOKEN_TTL_MINUTES,
    COOKIE_SECURE,
    REFRESH_TOKEN_TTL_DAYS,
    RL_AUTH_LOGIN_LIMIT,
    RL_AUTH_REFRESH_LIMIT,
    RL_AUTH_REGISTER_LIMIT,
    RL_WINDOW_SECONDS,
)
from ..http_helpers import normalize_email, ok, read_payload, validate_registration_input
from ..services.events import record_event
from ..services.rate_limit import rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()

RL_AUTH_REGISTER = rate_limit_dependency("auth_register", RL_AUTH_REGISTER_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_LOGIN = rate_limit_dependency("auth_login", RL_AUTH_LOGIN_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_REFRESH = rate_limit_dependency("auth_refresh", RL_AUTH_REFRESH_LIMIT, RL_WINDOW_SECONDS)

DISPLAY_NAME_MAX_LENGTH = 100


def _issue_tokens(user: dict[str, Any]) -> dict[str, Any]:
    """Issue access and refresh tokens for a user."""
    user_id = str(user["id"])
    access_token = create_access_token(user_id=user_id, email=str(user["email"]), ttl_minutes=ACCESS_TOKEN_TTL_MINUTES)

    refresh_token, token_hash = new_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)
    auth_repo.create_refresh_token_row(user_id, token_hash, expires_at)

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_TTL_MINUTES * 60,
    }


def _is_bearer_mode(request: Request) -> bool:
    """Mobile clients ask for tokens in the body with X-Auth-Mode: bearer."""
    auth_mode = str(request.headers.get("X-Auth-Mode") or "").strip().lower()
    return auth_mode == "bearer"


def _set_session_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
        max_age=ACCESS_TOKEN_TTL_MINUTES * 60,
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


def _public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(user["id"]),
        "email": str(user["email"]),
        "display_name": user.get("display_name"),
        "points_balance": int(user.get("points_balance") or 0),
    }


def _session_response(request: Request, response: Response, user: dict[str, Any], msg: str) -> dict[str, Any]:
    tokens = _issue_tokens(user)
    # Cookie is harmless for mobile and required for web.
    _set_session_cookie(response, tokens["access_token"])
    data: dict[str, Any] = {"user": _public_user(user)}
    if _is_bearer_mode(request):
        data.update(tokens)
    return ok(data, msg)


@router.post("/register", status_code=201)
async def auth_register(request: Request, response: Response, _: None = RL_AUTH_REGISTER) -> dict[str, Any]:
    payload = await read_payload(request)
    email, password = validate_registration_input(str(payload.get("email") or ""), str(payload.get("password") or ""))
    display_name = str(payload.get("display_name") or payload.get("DisplayName") or "").strip() or None
    if display_name and len(display_name) > DISPLAY_NAME_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"Display name must be {DISPLAY_NAME_MAX_LENGTH} characters or fewer")

    if auth_repo.get_user_by_email(email):
        raise HTTPException(status_code=409, detail="Email already registered")

    created = auth_repo.create_user(email=email, password_hash=hash_password(password), display_name=display_name)
    if not created:
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info(f"[auth] registered user_id={created['id']}")
    record_event("auth_registered", str(created["id"]), {"method": "password"})
    return _session_response(request, response, created, "Account created")


@router.post("/login")
def auth_login(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_LOGIN) -> dict[str, Any]:
    email = normalize_email(str(payload.get("email") or ""))
    password = str(payload.get("password") or "")
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = auth_repo.get_user_by_email(email)
    if not user or not verify_password(password, str(user["password_hash"])):
        logger.warning("[auth] login rejected: invalid credentials")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if str(user.get("status") or "active") != "active":
        raise HTTPException(status_code=403, detail="Account is not active")

    auth_repo.touch_last_active(str(user["id"]))
    record_event("login_success", str(user["id"]), {"method": "password"})
    return _session_response(request, response, user, "Logged in")


@router.post("/refresh")
def auth_refresh(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_REFRESH) -> dict[str, Any]:
    refresh_token = str(payload.get("refresh_token") or "").strip()
    if not refresh_token:
        raise HTTPException(status_code=400, detail="refresh_token required")

    token_hash = hash_refresh_token(refresh_token)
    row = auth_repo.get_active_refresh_token(token_hash)
    if not row:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    user = auth_repo.get_user_by_id(str(row["user_id"]))
    if not user or str(user.get("status") or "active") != "active":
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    # Rotate: the presented token can only be used once.
    if not auth_repo.revoke_refresh_token(token_hash):
        logger.warning(f"[auth] refresh token already rotated user_id={row['user_id']}")
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return _session_response(request, response, user, "Token refreshed")


@router.post("/logout")
def auth_logout(
    response: Response,
    payload: dict[str, Any] | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    refresh_token = str((payload or {}).get("refresh_token") or "").strip()
    if refresh_token:
        auth_repo.revoke_refresh_token(hash_refresh_token(refresh_token))
    _clear_session_cookie(response)
    logger.info(f"[auth] logout user_id={current_user['id']}")
    return ok(None, "Logged out")
