import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..auth.deps import get_current_user
from ..config import MIN_PHOTOS_REQUIRED
from ..http_helpers import ok
from ..services.onboarding import (
    apply_completion_action,
    calculate_completion,
    has_minimum_photos,
    has_value,
    next_incomplete_step_after,
    resume_step,
    transition_step,
    validate_step_values,
    zodiac_sign_for,
)
from ..services.onboarding_steps import PHOTOS_STEP_ID, TOTAL_STEPS, all_fields, get_step_by_id, steps_payload

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_profile(user_id: str) -> dict[str, Any]:
    profile = repo.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


def load_progress(user_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Profile row plus its completion status."""
    profile = _require_profile(user_id)
    photo_count = repo.count_gallery_images(user_id)
    return profile, calculate_completion(profile, photo_count=photo_count, min_photos=MIN_PHOTOS_REQUIRED)


def save_profile_updates(user_id: str, updates: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Write profile columns, derive zodiac, and keep can_start_matching in sync."""
    updates = dict(updates)
    if "date_of_birth" in updates:
        dob = updates["date_of_birth"]
        updates["zodiac_sign"] = zodiac_sign_for(dob) if dob else None
    if updates:
        repo.update_profile_columns(user_id, updates)

    profile, completion = load_progress(user_id)
    if bool(profile.get("can_start_matching")) != completion["can_start_matching"]:
        repo.update_profile_columns(user_id, {"can_start_matching": completion["can_start_matching"]})
        profile["can_start_matching"] = completion["can_start_matching"]
        logger.info(f"[onboarding] can_start_matching={completion['can_start_matching']} user_id={user_id}")
    return profile, completion


def _current_values(profile: dict[str, Any]) -> dict[str, Any]:
    return {f.key: profile.get(f.db_column) for f in all_fields()}


def _state_payload(profile: dict[str, Any], completion: dict[str, Any]) -> dict[str, Any]:
    return {
        "current_step": int(profile.get("profile_completion_step") or 1),
        "resume_step": resume_step(profile, completion),
        "total_steps": TOTAL_STEPS,
        "completion": completion,
        "values": _current_values(profile),
        "profile_completed_at": profile.get("profile_completed_at"),
    }


def _step_or_404(step_id: str):
    step = get_step_by_id(step_id)
    if not step:
        raise HTTPException(status_code=404, detail="Onboarding step not found")
    return step


@router.get("/onboarding/steps")
def onboarding_steps() -> dict[str, Any]:
    return ok(steps_payload())


@router.get("/onboarding/state")
def onboarding_state(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    profile, completion = load_progress(current_user["id"])
    return ok(_state_payload(profile, completion))


@router.post("/onboarding/steps/{step_id}")
def onboarding_save_step(
    step_id: str,
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    step = _step_or_404(step_id)
    user_id = current_user["id"]
    values = payload.get("values") if isinstance(payload.get("values"), dict) else payload

    try:
        updates = validate_step_values(step, values)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    profile, completion = load_progress(user_id)
    if step.id == PHOTOS_STEP_ID:
        photo_url = updates.get("profile_image_url") or profile.get("profile_image_url")
        if not has_minimum_photos({"profile_image_url": photo_url}, completion["photo_count"], MIN_PHOTOS_REQUIRED):
            raise HTTPException(status_code=400, detail=f"Please upload at least {MIN_PHOTOS_REQUIRED} photo(s)")

    skipped = list(profile.get("profile_completion_skipped") or [])
    saved = {col for col, value in updates.items() if has_value(value)}
    if saved & set(skipped):
        updates["profile_completion_skipped"] = [c for c in skipped if c not in saved]

    next_step = transition_step(step.step_number, "next", step)
    updates["profile_completion_step"] = next_step

    profile, completion = save_profile_updates(user_id, updates)
    return ok(
        {
            "step_id": step.id,
            "next_step": next_step,
            "next_incomplete_step": next_incomplete_step_after(step.step_number, profile, completion),
            "completion": completion,
        },
        "Step saved",
    )


@router.post("/onboarding/steps/{step_id}/skip")
def onboarding_skip_step(step_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    step = _step_or_404(step_id)
    if not step.allow_skip:
        raise HTTPException(status_code=400, detail="This step cannot be skipped")

    user_id = current_user["id"]
    profile = _require_profile(user_id)
    skipped = list(profile.get("profile_completion_skipped") or [])
    for f in step.fields:
        if not has_value(profile.get(f.db_column)) and f.db_column not in skipped:
            skipped.append(f.db_column)

    next_step = transition_step(step.step_number, "skip", step)
    profile, completion = save_profile_updates(
        user_id,
        {"profile_completion_skipped": skipped, "profile_completion_step": next_step},
    )
    return ok({"step_id": step.id, "next_step": next_step, "completion": completion}, "Step skipped")


@router.get("/profile/completion")
def profile_completion(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    profile, completion = load_progress(current_user["id"])
    return ok(_state_payload(profile, completion))


@router.post("/profile/completion")
def profile_completion_action(
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = current_user["id"]
    profile = _require_profile(user_id)
    try:
        updates = apply_completion_action(
            profile.get("profile_completion_skipped") or [],
            profile.get("profile_completion_prefer_not") or [],
            str(payload.get("action") or ""),
            field=payload.get("field"),
            step=payload.get("step"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    profile, completion = save_profile_updates(user_id, updates)
    return ok(_state_payload(profile, completion), "Profile completion updated")
