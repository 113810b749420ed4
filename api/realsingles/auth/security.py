"""Password hashing plus the two member credentials.

Access tokens are short-lived HS256 JWTs carrying ``typ=access``. Refresh
tokens are opaque random strings; only a keyed SHA-256 digest is stored.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import HTTPException
from passlib.context import CryptContext

from realsingles.config import ACCESS_TOKEN_TTL_MINUTES, JWT_SECRET

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_BYTES = 48


def _signing_key() -> str:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return JWT_SECRET


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, email: str, ttl_minutes: int | None = None) -> str:
    issued = datetime.now(timezone.utc)
    expires = issued + timedelta(minutes=ttl_minutes or ACCESS_TOKEN_TTL_MINUTES)
    claims: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "typ": ACCESS_TOKEN_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    key = _signing_key()
    try:
        claims = jwt.decode(token, key, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if claims.get("typ") != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims


def hash_refresh_token(refresh_token: str) -> str:
    return hashlib.sha256(f"{_signing_key()}:{refresh_token}".encode("utf-8")).hexdigest()


def new_refresh_token() -> tuple[str, str]:
    """Return ``(token, digest)``. Hand the token to the client, persist the digest."""
    token = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
    return token, hash_refresh_token(token)
