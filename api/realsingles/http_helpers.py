import re
import uuid
from typing import Any

from fastapi import HTTPException, Request, UploadFile

from realsingles.config import UPLOADS_DIR

UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

MAX_UPLOAD_BYTES = 8 * 1024 * 1024
_IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def ok(data: Any = None, msg: str = "OK") -> dict[str, Any]:
    return {"success": True, "data": data, "msg": msg}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_registration_input(email: str, password: str) -> tuple[str, str]:
    e = normalize_email(email)
    if not re.match(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$", e):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(e) > 254:
        raise HTTPException(status_code=400, detail="Email too long")
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    return e, password


def parse_pagination(limit: Any, offset: Any, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    try:
        lim = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        lim = default_limit
    try:
        off = int(offset) if offset is not None else 0
    except (TypeError, ValueError):
        off = 0
    return max(1, min(lim, max_limit)), max(0, off)


def public_upload_url(request: Request, filename: str) -> str:
    return f"{str(request.base_url).rstrip('/')}/uploads/{filename}"


async def store_uploaded_photo(file: UploadFile, owner_user_id: str, request: Request) -> str:
    content_type = (file.content_type or "").lower()
    ext = _IMAGE_EXTENSIONS.get(content_type)
    if not ext:
        raise HTTPException(status_code=400, detail="Only JPG, PNG, and WEBP images are allowed")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="Each image must be <= 8MB")

    fname = f"{owner_user_id}_{uuid.uuid4().hex}{ext}"
    (UPLOADS_DIR / fname).write_bytes(data)
    return public_upload_url(request, fname)


async def read_payload(request: Request) -> dict[str, Any]:
    """Read a JSON or form body into a plain dict. Repeated form keys become lists."""
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        form = await request.form()
        payload: dict[str, Any] = {}
        for key in form.keys():
            values = form.getlist(key)
            payload[key] = values if len(values) > 1 else values[0]
        return payload
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    return body
