from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from .. import repo
from ..auth.deps import get_current_user
from ..config import MAX_GALLERY_PHOTOS
from ..deps import parse_uuid
from ..http_helpers import ok, store_uploaded_photo
from ..services.onboarding import age_on, parse_date, validate_field_value
from ..services.onboarding_steps import MEDIA_COLUMNS, get_field
from .onboarding import load_progress, save_profile_updates

router = APIRouter()

# Profile settings that are not onboarding fields.
_SETTINGS_KEYS = {
    "latitude": "latitude",
    "Latitude": "latitude",
    "longitude": "longitude",
    "Longitude": "longitude",
    "profile_hidden": "profile_hidden",
    "ProfileHidden": "profile_hidden",
}


def _coordinate(name: str, value: Any, bound: float) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number")
    if number < -bound or number > bound:
        raise ValueError(f"{name} must be between {-bound:g} and {bound:g}")
    return number


def _profile_updates_from_payload(payload: dict[str, Any]) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    for key, value in payload.items():
        column = _SETTINGS_KEYS.get(key)
        if column == "latitude":
            updates[column] = _coordinate("latitude", value, 90)
            continue
        if column == "longitude":
            updates[column] = _coordinate("longitude", value, 180)
            continue
        if column == "profile_hidden":
            if not isinstance(value, bool):
                raise ValueError("profile_hidden must be true or false")
            updates[column] = value
            continue

        f = get_field(key)
        if f is None:
            raise ValueError(f"Unknown profile field '{key}'")
        if f.db_column in MEDIA_COLUMNS:
            raise ValueError(f"{f.key} is managed through the gallery and verification endpoints")
        value = validate_field_value(f, value)
        if f.required and value in (None, []):
            raise ValueError(f"{f.label} cannot be cleared")
        updates[f.db_column] = value
    return updates


def _public_view(profile: dict[str, Any]) -> dict[str, Any]:
    out = dict(profile)
    dob = parse_date(out.pop("date_of_birth", None))
    out["age"] = age_on(dob, date.today()) if dob else None
    for private in ("latitude", "longitude", "status"):
        out.pop(private, None)
    return out


@router.get("/users/me")
def users_me(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    profile, completion = load_progress(current_user["id"])
    return ok({"user": current_user, "profile": profile, "completion": completion})


@router.patch("/users/me")
def users_me_update(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    try:
        updates = _profile_updates_from_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not updates:
        raise HTTPException(status_code=400, detail="No profile fields provided")

    profile, completion = save_profile_updates(current_user["id"], updates)
    return ok({"profile": profile, "completion": completion}, "Profile updated")


@router.get("/users/me/gallery")
def gallery_list(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return ok({"items": repo.list_gallery(current_user["id"]), "max_photos": MAX_GALLERY_PHOTOS})


@router.post("/users/me/gallery", status_code=201)
async def gallery_upload(
    request: Request,
    file: UploadFile = File(...),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = current_user["id"]
    if repo.count_gallery_images(user_id) >= MAX_GALLERY_PHOTOS:
        raise HTTPException(status_code=400, detail=f"You can upload up to {MAX_GALLERY_PHOTOS} photos")

    media_url = await store_uploaded_photo(file, user_id, request)
    item = repo.add_gallery_image(user_id, media_url)
    _, completion = save_profile_updates(user_id, {})
    return ok({"item": item, "completion": completion}, "Photo uploaded")


@router.delete("/users/me/gallery/{item_id}")
def gallery_delete(item_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = current_user["id"]
    removed = repo.delete_gallery_item(user_id, parse_uuid(item_id, "item_id"))
    if not removed:
        raise HTTPException(status_code=404, detail="Gallery item not found")
    _, completion = save_profile_updates(user_id, {})
    return ok({"completion": completion}, "Photo removed")


@router.post("/users/me/gallery/{item_id}/primary")
def gallery_set_primary(item_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    item = repo.set_primary_gallery_item(current_user["id"], parse_uuid(item_id, "item_id"))
    if not item:
        raise HTTPException(status_code=404, detail="Gallery item not found")
    return ok({"item": item}, "Primary photo updated")


@router.get("/users/{user_id}")
def users_get(user_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    target_id = parse_uuid(user_id, "user_id")
    profile = repo.get_public_profile(target_id)
    hidden = not profile or (profile.get("profile_hidden") and target_id != current_user["id"])
    if hidden or str(profile.get("status") or "active") != "active":
        raise HTTPException(status_code=404, detail="User not found")
    if target_id != current_user["id"] and repo.is_blocked_pair(current_user["id"], target_id):
        raise HTTPException(status_code=404, detail="User not found")

    data = _public_view(profile)
    data["gallery"] = [g for g in repo.list_gallery(target_id) if g.get("media_type") == "image"]
    return ok(data)
