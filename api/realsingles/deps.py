import uuid

from fastapi import HTTPException


def parse_uuid(raw: str | None, field_name: str = "id") -> str:
    value = str(raw or "").strip()
    if not value:
        raise HTTPException(status_code=400, detail=f"{field_name} required")
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field_name} must be a valid UUID")
