from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..auth.deps import get_current_user
from ..deps import parse_uuid
from ..http_helpers import ok

router = APIRouter()


@router.get("/favorites")
def favorites_list(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return ok({"favorites": repo.list_favorites(current_user["id"])})


@router.post("/favorites")
def favorites_toggle(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = current_user["id"]
    target_id = parse_uuid(payload.get("favorite_user_id") or payload.get("user_id"), "favorite_user_id")
    if target_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot favorite yourself")
    if not repo.get_user_by_id(target_id):
        raise HTTPException(status_code=404, detail="User not found")
    if repo.is_blocked_pair(user_id, target_id):
        raise HTTPException(status_code=403, detail="Cannot interact with this user")

    is_favorite = repo.toggle_favorite(user_id, target_id)
    return ok(
        {"favorite_user_id": target_id, "is_favorite": is_favorite},
        "Added to favorites" if is_favorite else "Removed from favorites",
    )
