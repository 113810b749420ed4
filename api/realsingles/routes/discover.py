import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends

from .. import repo
from ..auth.deps import get_current_user
from ..config import DISCOVERY_CANDIDATE_POOL, DISCOVERY_DEFAULT_LIMIT
from ..http_helpers import ok, parse_pagination
from ..services.discovery import (
    DiscoveryFilters,
    ExclusionSnapshot,
    ViewerContext,
    build_exclusion_snapshot,
    discover,
    empty_result,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_DISCOVERY_LIMIT = 100


def load_snapshot(user_id: str) -> ExclusionSnapshot:
    blocks, actions, favorites = repo.get_discovery_snapshot_rows(user_id)
    return build_exclusion_snapshot(user_id, blocks, actions, favorites)


def run_discovery(
    user_id: str,
    filters: DiscoveryFilters | None,
    *,
    sort_by: str,
    limit: int,
    offset: int,
    today: date | None = None,
    include_ineligible: bool = False,
) -> dict[str, Any]:
    """Load the viewer, their relationships and the candidate pool, then run the pipeline."""
    profile = repo.get_profile(user_id)
    if not profile:
        return empty_result("profile_not_found")

    viewer = ViewerContext.from_profile(user_id, profile)
    snapshot = load_snapshot(user_id)
    candidates = repo.list_discovery_candidates(DISCOVERY_CANDIDATE_POOL, include_ineligible=include_ineligible)
    result = discover(viewer, candidates, snapshot, filters, sort_by=sort_by, limit=limit, offset=offset, today=today)
    logger.debug(f"[discovery] user_id={user_id} sort_by={sort_by} debug={result['debug']}")
    return result


def _saved_filters(user_id: str) -> DiscoveryFilters:
    return DiscoveryFilters.from_dict(repo.get_user_filters(user_id))


def _public_profiles(profiles: list[dict[str, Any]]) -> list[dict[str, Any]]:
    hidden = ("latitude", "longitude", "date_of_birth", "status")
    return [{k: v for k, v in p.items() if k not in hidden} for p in profiles]


def _response(result: dict[str, Any]) -> dict[str, Any]:
    return ok(
        {
            "profiles": _public_profiles(result["profiles"]),
            "total": result["total"],
            "empty_reason": result["empty_reason"],
        }
    )


@router.get("/discover/profiles")
def discover_profiles(
    sort_by: str = "recent",
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=DISCOVERY_DEFAULT_LIMIT, max_limit=MAX_DISCOVERY_LIMIT)
    user_id = current_user["id"]
    result = run_discovery(user_id, _saved_filters(user_id), sort_by=sort_by, limit=lim, offset=off)
    return _response(result)


@router.get("/discover/nearby")
def discover_nearby(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=DISCOVERY_DEFAULT_LIMIT, max_limit=MAX_DISCOVERY_LIMIT)
    user_id = current_user["id"]
    result = run_discovery(user_id, _saved_filters(user_id), sort_by="distance", limit=lim, offset=off)
    return _response(result)
