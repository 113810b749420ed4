import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..auth.deps import get_current_user
from ..config import RL_MATCH_ACTION_LIMIT, RL_WINDOW_SECONDS, UNDO_WINDOW_MINUTES
from ..deps import parse_uuid
from ..http_helpers import ok, parse_pagination
from ..services.discovery import likes_received, mutual_matches
from ..services.matches import can_undo, normalize_action, seconds_remaining
from ..services.rate_limit import rate_limit_dependency
from .discover import load_snapshot

logger = logging.getLogger(__name__)

router = APIRouter()

RL_MATCH_ACTION = rate_limit_dependency("match_action", RL_MATCH_ACTION_LIMIT, RL_WINDOW_SECONDS)

MAX_MATCHES_LIMIT = 50


@router.post("/matches")
def matches_create(
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
    _: None = RL_MATCH_ACTION,
) -> dict[str, Any]:
    user_id = current_user["id"]
    target_id = parse_uuid(payload.get("target_user_id"), "target_user_id")
    try:
        action = normalize_action(payload.get("action"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if target_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot match with yourself")
    target = repo.get_user_by_id(target_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if str(target.get("status") or "active") != "active":
        raise HTTPException(status_code=400, detail="User is not available")
    if repo.is_blocked_pair(user_id, target_id):
        raise HTTPException(status_code=403, detail="Cannot interact with this user")

    result = repo.record_match_action(user_id, target_id, action)
    if result["is_mutual"]:
        logger.info(f"[matches] mutual match user_id={user_id} target_user_id={target_id}")
    return ok(result, "It's a match!" if result["is_mutual"] else "Action recorded")


@router.get("/matches")
def matches_list(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=20, max_limit=MAX_MATCHES_LIMIT)
    user_id = current_user["id"]
    snapshot = load_snapshot(user_id)
    ids = sorted(snapshot.mutual_match_ids - snapshot.blocked_ids)
    profiles = repo.get_public_profiles(ids)
    conversations = repo.get_direct_conversation_map(user_id, ids)
    matches = mutual_matches(snapshot, profiles, conversations)
    return ok({"matches": matches[off : off + lim], "total": len(matches)})


@router.get("/matches/likes-received")
def matches_likes_received(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=20, max_limit=MAX_MATCHES_LIMIT)
    snapshot = load_snapshot(current_user["id"])
    profiles = repo.get_public_profiles(sorted(snapshot.liked_me))
    likes = likes_received(snapshot, profiles)
    return ok({"likes": likes[off : off + lim], "total": len(likes)})


@router.get("/matches/likes-sent")
def matches_likes_sent(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=20, max_limit=MAX_MATCHES_LIMIT)
    return ok({"likes": repo.list_likes_sent(current_user["id"], lim, off)})


def _undo_candidate(user_id: str, target_id: str | None, now: datetime) -> dict[str, Any] | None:
    if target_id:
        row = repo.get_match_action(user_id, target_id)
    else:
        row = repo.get_latest_match_action_since(user_id, now - timedelta(minutes=UNDO_WINDOW_MINUTES))
    if not row or not can_undo(row.get("created_at"), now, UNDO_WINDOW_MINUTES):
        return None
    return row


@router.get("/matches/undo")
def matches_undo_status(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    row = _undo_candidate(current_user["id"], None, now)
    if not row:
        return ok({"can_undo": False, "action": None, "seconds_remaining": 0})
    return ok(
        {
            "can_undo": True,
            "action": {
                "id": str(row["id"]),
                "action": row["action"],
                "target_user_id": str(row["target_user_id"]),
                "created_at": row["created_at"],
            },
            "seconds_remaining": seconds_remaining(row["created_at"], now, UNDO_WINDOW_MINUTES),
        }
    )


@router.post("/matches/undo")
def matches_undo(
    payload: dict[str, Any] | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = current_user["id"]
    raw_target = (payload or {}).get("target_user_id")
    target_id = parse_uuid(raw_target, "target_user_id") if raw_target else None

    row = _undo_candidate(user_id, target_id, datetime.now(timezone.utc))
    if not row:
        raise HTTPException(status_code=400, detail=f"No action to undo within the last {UNDO_WINDOW_MINUTES} minutes")

    repo.delete_match_action(str(row["id"]), user_id)
    logger.info(f"[matches] undo action={row['action']} user_id={user_id}")
    return ok({"undone_action": row["action"], "target_user_id": str(row["target_user_id"])}, "Action undone")


@router.delete("/matches/{user_id}")
def matches_unmatch(user_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    other_id = parse_uuid(user_id, "user_id")
    if other_id == current_user["id"]:
        raise HTTPException(status_code=400, detail="You cannot unmatch yourself")
    updated = repo.unmatch_users(current_user["id"], other_id)
    if not updated:
        raise HTTPException(status_code=404, detail="Match not found")
    return ok(None, "Unmatched")
