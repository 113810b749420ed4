import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .. import repo
from ..auth.deps import get_current_admin
from ..deps import parse_uuid
from ..http_helpers import ok, parse_pagination
from ..services.discovery import (
    DiscoveryFilters,
    ViewerContext,
    empty_debug,
    likes_received,
    mutual_matches,
)
from .discover import load_snapshot, run_discovery

logger = logging.getLogger(__name__)

router = APIRouter()

# algorithm -> sort order for the pipeline-backed variants
PIPELINE_ALGORITHMS = {
    "discover-profiles": "recent",
    "discover-home": "recent",
    "top-matches": "random",
    "nearby": "distance",
}
RELATIONSHIP_ALGORITHMS = ("mutual-matches", "likes-received")
SIMULATOR_MAX_LIMIT = 200


def _match_flags(viewer: ViewerContext, profile: dict[str, Any]) -> dict[str, bool]:
    gender = str(profile.get("gender") or "").strip()
    looking_for = [str(v).strip() for v in profile.get("looking_for") or []]
    return {
        "gender_match": bool(gender) and gender in viewer.looking_for,
        "bidirectional_match": bool(viewer.gender) and viewer.gender in looking_for,
    }


def _with_debug(viewer: ViewerContext, profiles: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**p, "_debug": _match_flags(viewer, p)} for p in profiles]


class SimulatorRequest(BaseModel):
    target_user_id: str | None = None
    algorithm: str | None = None
    filters: dict[str, Any] | None = None
    pagination: dict[str, Any] | None = None


@router.post("/admin/algorithm-simulator")
def algorithm_simulator(payload: SimulatorRequest, admin: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    target_id = parse_uuid(payload.target_user_id, "target_user_id")
    algorithm = str(payload.algorithm or "discover-profiles").strip()
    if algorithm not in PIPELINE_ALGORITHMS and algorithm not in RELATIONSHIP_ALGORITHMS:
        allowed = ", ".join([*PIPELINE_ALGORITHMS, *RELATIONSHIP_ALGORITHMS])
        raise HTTPException(status_code=400, detail=f"algorithm must be one of: {allowed}")

    pagination = payload.pagination or {}
    lim, off = parse_pagination(pagination.get("limit"), pagination.get("offset"), default_limit=50, max_limit=SIMULATOR_MAX_LIMIT)

    profile = repo.get_profile(target_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Target user not found")
    viewer = ViewerContext.from_profile(target_id, profile)
    filters = DiscoveryFilters.from_dict(payload.filters)

    if algorithm in PIPELINE_ALGORITHMS:
        # full pool so the eligibility stage shows what it removes
        result = run_discovery(
            target_id, filters, sort_by=PIPELINE_ALGORITHMS[algorithm], limit=lim, offset=off, include_ineligible=True
        )
        profiles, total, empty_reason, debug = result["profiles"], result["total"], result["empty_reason"], result["debug"]
    else:
        snapshot = load_snapshot(target_id)
        if algorithm == "mutual-matches":
            ids = sorted(snapshot.mutual_match_ids)
            rows = mutual_matches(snapshot, repo.get_public_profiles(ids), repo.get_direct_conversation_map(target_id, ids))
        else:
            rows = likes_received(snapshot, repo.get_public_profiles(sorted(snapshot.liked_me)))
        matched = [{**r["profile"], **{k: v for k, v in r.items() if k != "profile"}} for r in rows]
        profiles, total = matched[off : off + lim], len(matched)
        empty_reason = None if profiles else "no_matches"
        debug = empty_debug(total)

    logger.info(f"[admin] simulator algorithm={algorithm} target_user_id={target_id} total={total}")
    return ok(
        {
            "algorithm": algorithm,
            "target_user": {
                "user_id": target_id,
                "display_name": profile.get("display_name"),
                "gender": viewer.gender,
                "looking_for": viewer.looking_for,
                "has_coordinates": viewer.has_coordinates,
                "can_start_matching": bool(profile.get("can_start_matching")),
            },
            "profiles": _with_debug(viewer, profiles),
            "total": total,
            "empty_reason": empty_reason,
            "debug": debug,
        }
    )


@router.get("/admin/algorithm-simulator/users")
def algorithm_simulator_users(
    search: str = "",
    limit: int | None = None,
    admin: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    lim, _ = parse_pagination(limit, 0, default_limit=20, max_limit=100)
    return ok({"users": repo.search_users(search, lim)})
