from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from realsingles.services.onboarding import age_on, parse_date

KM_PER_MILE = 1.60934
EARTH_RADIUS_KM = 6371.0
LIKE_ACTIONS = {"like", "super_like"}
INACTIVE_STATUSES = {"suspended", "deleted"}
SORT_OPTIONS = {"recent", "distance", "random"}

STAGES = (
    "self",
    "eligibility",
    "gender",
    "bidirectional",
    "blocked",
    "mutual_match",
    "user_actions",
    "target_actions",
    "unmatched",
    "filters",
    "distance",
)

FILTER_FACETS = (
    "age",
    "height",
    "body_types",
    "ethnicities",
    "religions",
    "education_levels",
    "zodiac_signs",
    "smoking",
    "drinking",
    "marijuana",
    "has_kids",
    "wants_kids",
)

# list facet -> candidate column; ethnicity is itself a list and matches on overlap
_LIST_FACETS = {
    "body_types": "body_type",
    "ethnicities": "ethnicity",
    "religions": "religion",
    "education_levels": "education",
    "zodiac_signs": "zodiac_sign",
}
_EXACT_FACETS = ("smoking", "drinking", "marijuana", "has_kids", "wants_kids")

_CAMEL_ALIASES = {
    "minAge": "min_age",
    "maxAge": "max_age",
    "minHeight": "min_height",
    "maxHeight": "max_height",
    "maxDistanceMiles": "max_distance_miles",
    "bodyTypes": "body_types",
    "educationLevels": "education_levels",
    "zodiacSigns": "zodiac_signs",
    "hasKids": "has_kids",
    "wantsKids": "wants_kids",
}


@dataclass
class ViewerContext:
    user_id: str
    gender: str | None
    looking_for: list[str]
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_profile(cls, user_id: str, profile: dict[str, Any]) -> "ViewerContext":
        return cls(
            user_id=str(user_id),
            gender=_norm(profile.get("gender")),
            looking_for=_norm_list(profile.get("looking_for")),
            latitude=_to_float(profile.get("latitude")),
            longitude=_to_float(profile.get("longitude")),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class DiscoveryFilters:
    min_age: int | None = None
    max_age: int | None = None
    min_height: int | None = None
    max_height: int | None = None
    max_distance_miles: float | None = None
    body_types: list[str] = field(default_factory=list)
    ethnicities: list[str] = field(default_factory=list)
    religions: list[str] = field(default_factory=list)
    education_levels: list[str] = field(default_factory=list)
    zodiac_signs: list[str] = field(default_factory=list)
    smoking: str | None = None
    drinking: str | None = None
    marijuana: str | None = None
    has_kids: str | None = None
    wants_kids: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "DiscoveryFilters":
        """Build filters from a saved filter row or a request body (snake or camel case)."""
        if not raw:
            return cls()
        data = {_CAMEL_ALIASES.get(k, k): v for k, v in raw.items()}
        return cls(
            min_age=_to_int(data.get("min_age")),
            max_age=_to_int(data.get("max_age")),
            min_height=_to_int(data.get("min_height")),
            max_height=_to_int(data.get("max_height")),
            max_distance_miles=_to_float(data.get("max_distance_miles")),
            body_types=_norm_list(data.get("body_types")),
            ethnicities=_norm_list(data.get("ethnicities")),
            religions=_norm_list(data.get("religions")),
            education_levels=_norm_list(data.get("education_levels")),
            zodiac_signs=_norm_list(data.get("zodiac_signs")),
            smoking=_norm(data.get("smoking")),
            drinking=_norm(data.get("drinking")),
            marijuana=_norm(data.get("marijuana")),
            has_kids=_norm(data.get("has_kids")),
            wants_kids=_norm(data.get("wants_kids")),
        )


@dataclass
class ExclusionSnapshot:
    """Everything about the viewer's relationships that discovery needs."""

    blocked_ids: set[str] = field(default_factory=set)
    acted_on_ids: set[str] = field(default_factory=set)
    passed_on_me_ids: set[str] = field(default_factory=set)
    unmatched_ids: set[str] = field(default_factory=set)
    liked_me: dict[str, dict[str, Any]] = field(default_factory=dict)
    my_likes: dict[str, Any] = field(default_factory=dict)
    favorite_ids: set[str] = field(default_factory=set)

    @property
    def mutual_match_ids(self) -> set[str]:
        return {uid for uid in self.liked_me if uid in self.my_likes}


def build_exclusion_snapshot(
    viewer_id: str,
    block_rows: Iterable[dict[str, Any]],
    action_rows: Iterable[dict[str, Any]],
    favorite_ids: Iterable[Any] = (),
) -> ExclusionSnapshot:
    """Fold raw block and match_action rows touching the viewer into a snapshot."""
    viewer_id = str(viewer_id)
    snap = ExclusionSnapshot(favorite_ids={str(x) for x in favorite_ids})

    for row in block_rows:
        blocker = str(row.get("blocker_id") or "")
        blocked = str(row.get("blocked_id") or "")
        if blocker == viewer_id and blocked:
            snap.blocked_ids.add(blocked)
        elif blocked == viewer_id and blocker:
            snap.blocked_ids.add(blocker)

    for row in action_rows:
        actor = str(row.get("user_id") or "")
        target = str(row.get("target_user_id") or "")
        action = str(row.get("action") or "")
        unmatched = bool(row.get("is_unmatched"))
        if actor == viewer_id and target:
            if unmatched:
                snap.unmatched_ids.add(target)
                continue
            snap.acted_on_ids.add(target)
            if action in LIKE_ACTIONS:
                snap.my_likes[target] = row.get("created_at")
        elif target == viewer_id and actor:
            if unmatched:
                snap.unmatched_ids.add(actor)
                continue
            if action == "pass":
                snap.passed_on_me_ids.add(actor)
            elif action in LIKE_ACTIONS:
                snap.liked_me[actor] = {"action": action, "created_at": row.get("created_at")}

    return snap


def _norm(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _norm_list(values: Any) -> list[str]:
    if not isinstance(values, (list, tuple, set)):
        return []
    out: list[str] = []
    for item in values:
        v = _norm(item)
        if v and v not in out:
            out.append(v)
    return out


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def miles_to_km(miles: float) -> float:
    return miles * KM_PER_MILE


def _is_eligible(candidate: dict[str, Any]) -> bool:
    if not candidate.get("can_start_matching"):
        return False
    if candidate.get("profile_hidden"):
        return False
    return str(candidate.get("status") or "active") not in INACTIVE_STATUSES


def first_failing_facet(candidate: dict[str, Any], filters: DiscoveryFilters, today: date) -> str | None:
    """Return the first active filter facet the candidate fails, or None."""
    if filters.min_age is not None or filters.max_age is not None:
        dob = parse_date(candidate.get("date_of_birth"))
        if dob is None:
            return "age"
        age = age_on(dob, today)
        if filters.min_age is not None and age < filters.min_age:
            return "age"
        if filters.max_age is not None and age > filters.max_age:
            return "age"

    if filters.min_height is not None or filters.max_height is not None:
        height = _to_int(candidate.get("height_inches"))
        if height is None:
            return "height"
        if filters.min_height is not None and height < filters.min_height:
            return "height"
        if filters.max_height is not None and height > filters.max_height:
            return "height"

    for facet, column in _LIST_FACETS.items():
        wanted = getattr(filters, facet)
        if not wanted:
            continue
        value = candidate.get(column)
        if isinstance(value, list):
            if not set(_norm_list(value)) & set(wanted):
                return facet
        elif _norm(value) not in wanted:
            return facet

    for facet in _EXACT_FACETS:
        wanted = getattr(filters, facet)
        if not wanted or wanted == "any":
            continue
        if _norm(candidate.get(facet)) != wanted:
            return facet

    return None


def _sort_key_recent(candidate: dict[str, Any]) -> float:
    updated = candidate.get("updated_at")
    if isinstance(updated, datetime):
        return updated.timestamp()
    if isinstance(updated, str) and updated:
        try:
            return datetime.fromisoformat(updated.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return float("-inf")
    return float("-inf")


def sort_candidates(candidates: list[dict[str, Any]], sort_by: str, seed: str) -> list[dict[str, Any]]:
    if sort_by == "distance":
        return sorted(candidates, key=lambda c: (c.get("distance_km") is None, c.get("distance_km") or 0.0))
    if sort_by == "random":
        ordered = sorted(candidates, key=lambda c: str(c.get("user_id")))
        random.Random(seed).shuffle(ordered)
        return ordered
    return sorted(candidates, key=_sort_key_recent, reverse=True)


def empty_debug(total: int = 0) -> dict[str, Any]:
    return {
        "total_candidates": total,
        "excluded": {stage: 0 for stage in STAGES},
        "remaining": {stage: total for stage in STAGES},
        "filter_facets": {facet: 0 for facet in FILTER_FACETS},
        "final_count": total,
    }


def empty_result(reason: str) -> dict[str, Any]:
    return {"profiles": [], "total": 0, "empty_reason": reason, "debug": empty_debug()}


def discover(
    viewer: ViewerContext,
    candidates: Iterable[dict[str, Any]],
    snapshot: ExclusionSnapshot,
    filters: DiscoveryFilters | None = None,
    *,
    sort_by: str = "recent",
    limit: int = 40,
    offset: int = 0,
    today: date | None = None,
) -> dict[str, Any]:
    """Run the discovery pipeline for one viewer over a set of candidate rows.

    Each stage removes candidates and records how many it removed; filters
    also keep a per-facet count where the first failing facet wins. The
    distance stage only runs when a max distance is set and the viewer has
    coordinates, and it keeps candidates whose location is unknown.
    """
    if not viewer.gender or not viewer.looking_for:
        return empty_result("incomplete_profile")

    filters = filters or DiscoveryFilters()
    today = today or date.today()
    sort_by = sort_by if sort_by in SORT_OPTIONS else "recent"

    pool = [dict(c) for c in candidates]
    debug = empty_debug(len(pool))
    mutual_ids = snapshot.mutual_match_ids
    looking_for = set(viewer.looking_for)

    def run_stage(stage: str, keep) -> None:
        nonlocal pool
        before = len(pool)
        pool = [c for c in pool if keep(c)]
        debug["excluded"][stage] = before - len(pool)
        debug["remaining"][stage] = len(pool)

    run_stage("self", lambda c: str(c.get("user_id")) != viewer.user_id)
    run_stage("eligibility", _is_eligible)
    run_stage("gender", lambda c: _norm(c.get("gender")) in looking_for)
    run_stage("bidirectional", lambda c: viewer.gender in _norm_list(c.get("looking_for")))
    run_stage("blocked", lambda c: str(c.get("user_id")) not in snapshot.blocked_ids)
    run_stage("mutual_match", lambda c: str(c.get("user_id")) not in mutual_ids)
    run_stage("user_actions", lambda c: str(c.get("user_id")) not in snapshot.acted_on_ids)
    run_stage("target_actions", lambda c: str(c.get("user_id")) not in snapshot.passed_on_me_ids)
    run_stage("unmatched", lambda c: str(c.get("user_id")) not in snapshot.unmatched_ids)

    def passes_filters(c: dict[str, Any]) -> bool:
        facet = first_failing_facet(c, filters, today)
        if facet is not None:
            debug["filter_facets"][facet] += 1
            return False
        return True

    run_stage("filters", passes_filters)

    for c in pool:
        uid = str(c.get("user_id"))
        c["is_favorite"] = uid in snapshot.favorite_ids
        c["has_liked_me"] = uid in snapshot.liked_me
        dob = parse_date(c.get("date_of_birth"))
        c["age"] = age_on(dob, today) if dob else None
        c["distance_km"] = None
        lat, lon = _to_float(c.get("latitude")), _to_float(c.get("longitude"))
        if viewer.has_coordinates and lat is not None and lon is not None:
            c["distance_km"] = round(haversine_km(viewer.latitude, viewer.longitude, lat, lon), 1)

    if filters.max_distance_miles is not None and viewer.has_coordinates:
        max_km = miles_to_km(filters.max_distance_miles)
        run_stage("distance", lambda c: c["distance_km"] is None or c["distance_km"] <= max_km)
    else:
        debug["remaining"]["distance"] = len(pool)

    debug["final_count"] = len(pool)
    ordered = sort_candidates(pool, sort_by, seed=viewer.user_id)
    page = ordered[offset : offset + limit]
    return {
        "profiles": page,
        "total": len(ordered),
        "empty_reason": None if page else "no_matches",
        "debug": debug,
    }


def _timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    return _sort_key_recent({"updated_at": value})


def mutual_matches(
    snapshot: ExclusionSnapshot,
    profiles_by_id: dict[str, dict[str, Any]],
    conversation_ids: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Mutual likes, newest match first. A match dates from the later of the two likes."""
    conversation_ids = conversation_ids or {}
    out: list[dict[str, Any]] = []
    for uid in snapshot.mutual_match_ids:
        profile = profiles_by_id.get(uid)
        if not profile or profile.get("profile_hidden"):
            continue
        mine = snapshot.my_likes.get(uid)
        theirs = snapshot.liked_me[uid].get("created_at")
        matched_at = mine if _timestamp(mine) >= _timestamp(theirs) else theirs
        out.append(
            {
                "user_id": uid,
                "profile": profile,
                "matched_at": matched_at,
                "conversation_id": conversation_ids.get(uid),
            }
        )
    out.sort(key=lambda m: _timestamp(m["matched_at"]), reverse=True)
    return out


def likes_received(
    snapshot: ExclusionSnapshot,
    profiles_by_id: dict[str, dict[str, Any]],
    include_super_likes: bool = True,
) -> list[dict[str, Any]]:
    """Likers the viewer has not acted on yet, super likes first, then newest."""
    out: list[dict[str, Any]] = []
    for uid, like in snapshot.liked_me.items():
        if uid in snapshot.acted_on_ids or uid in snapshot.blocked_ids:
            continue
        if like["action"] == "super_like" and not include_super_likes:
            continue
        profile = profiles_by_id.get(uid)
        if not profile or profile.get("profile_hidden"):
            continue
        out.append({"user_id": uid, "profile": profile, "action": like["action"], "liked_at": like.get("created_at")})
    out.sort(key=lambda l: (l["action"] != "super_like", -_timestamp(l["liked_at"])))
    return out
