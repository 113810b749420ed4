import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..auth.deps import get_current_user
from ..deps import parse_uuid
from ..http_helpers import ok

logger = logging.getLogger(__name__)

router = APIRouter()

REPORT_REASONS = {"spam", "inappropriate", "harassment", "fake_profile", "underage", "other"}
REPORT_DETAILS_MAX_LENGTH = 2000


def _other_user(payload: dict[str, Any], key: str, current_user_id: str) -> str:
    target_id = parse_uuid(payload.get(key), key)
    if target_id == current_user_id:
        raise HTTPException(status_code=400, detail="You cannot do that to yourself")
    if not repo.get_user_by_id(target_id):
        raise HTTPException(status_code=404, detail="User not found")
    return target_id


@router.get("/blocks")
def blocks_list(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return ok({"blocks": repo.list_blocks(current_user["id"])})


@router.post("/blocks", status_code=201)
def blocks_create(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    blocked_id = _other_user(payload, "blocked_user_id", current_user["id"])
    repo.create_block(current_user["id"], blocked_id)
    logger.info(f"[safety] block created blocker_id={current_user['id']} blocked_id={blocked_id}")
    return ok({"blocked_user_id": blocked_id}, "User blocked")


@router.delete("/blocks/{user_id}")
def blocks_remove(user_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    blocked_id = parse_uuid(user_id, "user_id")
    if not repo.remove_block(current_user["id"], blocked_id):
        raise HTTPException(status_code=404, detail="Block not found")
    return ok(None, "User unblocked")


@router.post("/reports", status_code=201)
def reports_create(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    reported_id = _other_user(payload, "reported_user_id", current_user["id"])
    reason = str(payload.get("reason") or "").strip().lower()
    if reason not in REPORT_REASONS:
        raise HTTPException(status_code=400, detail=f"reason must be one of: {', '.join(sorted(REPORT_REASONS))}")
    details = str(payload.get("details") or "").strip() or None
    if details and len(details) > REPORT_DETAILS_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"details must be {REPORT_DETAILS_MAX_LENGTH} characters or fewer")

    report = repo.create_report(current_user["id"], reported_id, reason, details)
    logger.warning(f"[safety] report filed reason={reason} reported_user_id={reported_id}")
    return ok({"report_id": str(report["id"]), "status": report["status"]}, "Report submitted")
