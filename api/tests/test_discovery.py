from datetime import date, datetime, timedelta, timezone

from realsingles.services.discovery import (
    STAGES,
    DiscoveryFilters,
    ViewerContext,
    build_exclusion_snapshot,
    discover,
    first_failing_facet,
    haversine_km,
    likes_received,
    mutual_matches,
)

TODAY = date(2026, 1, 1)
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

NYC = (40.7128, -74.0060)
VIEWER = ViewerContext(user_id="v", gender="male", looking_for=["female"], latitude=NYC[0], longitude=NYC[1])


def _cand(uid: str, **overrides):
    row = {
        "user_id": uid,
        "gender": "female",
        "looking_for": ["male"],
        "can_start_matching": True,
        "profile_hidden": False,
        "status": "active",
        "date_of_birth": date(1995, 6, 1),
        "updated_at": T0,
        "latitude": None,
        "longitude": None,
    }
    row.update(overrides)
    return row


def _action(actor, target, action, minutes=0, unmatched=False):
    return {
        "user_id": actor,
        "target_user_id": target,
        "action": action,
        "is_unmatched": unmatched,
        "created_at": T0 + timedelta(minutes=minutes),
    }


def test_snapshot_folds_both_directions():
    snap = build_exclusion_snapshot(
        "v",
        [{"blocker_id": "v", "blocked_id": "a"}, {"blocker_id": "b", "blocked_id": "v"}],
        [
            _action("v", "m", "like"),
            _action("m", "v", "super_like"),
            _action("p", "v", "pass"),
            _action("u", "v", "like", unmatched=True),
        ],
        ["f"],
    )
    assert snap.blocked_ids == {"a", "b"}
    assert snap.acted_on_ids == {"m"}
    assert snap.passed_on_me_ids == {"p"}
    assert snap.unmatched_ids == {"u"}
    assert snap.mutual_match_ids == {"m"}
    assert snap.favorite_ids == {"f"}


def test_pipeline_counts_each_stage():
    candidates = [
        _cand("v", gender="male"),
        _cand("hidden", profile_hidden=True),
        _cand("wrong-gender", gender="male"),
        _cand("one-way", looking_for=["female"]),
        _cand("blocker"),
        _cand("mutual"),
        _cand("acted"),
        _cand("passed-me"),
        _cand("unmatched"),
        _cand("ok1"),
        _cand("ok2"),
    ]
    snap = build_exclusion_snapshot(
        "v",
        [{"blocker_id": "blocker", "blocked_id": "v"}],
        [
            _action("v", "mutual", "like"),
            _action("mutual", "v", "like"),
            _action("v", "acted", "pass"),
            _action("passed-me", "v", "pass"),
            _action("unmatched", "v", "like", unmatched=True),
            _action("ok1", "v", "super_like"),
        ],
        ["ok2"],
    )

    result = discover(VIEWER, candidates, snap, today=TODAY)
    debug = result["debug"]

    assert debug["total_candidates"] == 11
    assert debug["excluded"] == {
        "self": 1,
        "eligibility": 1,
        "gender": 1,
        "bidirectional": 1,
        "blocked": 1,
        "mutual_match": 1,
        "user_actions": 1,
        "target_actions": 1,
        "unmatched": 1,
        "filters": 0,
        "distance": 0,
    }
    assert debug["final_count"] == 2
    assert sum(debug["excluded"].values()) == debug["total_candidates"] - debug["final_count"]
    assert list(debug["remaining"].keys()) == list(STAGES)

    by_id = {p["user_id"]: p for p in result["profiles"]}
    assert set(by_id) == {"ok1", "ok2"}
    assert by_id["ok1"]["has_liked_me"] is True
    assert by_id["ok2"]["is_favorite"] is True
    assert by_id["ok1"]["age"] == 30
    assert result["empty_reason"] is None


def test_incomplete_viewer_skips_pipeline():
    viewer = ViewerContext(user_id="v", gender=None, looking_for=["female"])
    result = discover(viewer, [_cand("a")], build_exclusion_snapshot("v", [], []))
    assert result["empty_reason"] == "incomplete_profile"
    assert result["profiles"] == []
    assert result["debug"]["total_candidates"] == 0


def test_no_matches_reason():
    result = discover(VIEWER, [_cand("x", gender="male")], build_exclusion_snapshot("v", [], []), today=TODAY)
    assert result["profiles"] == []
    assert result["empty_reason"] == "no_matches"


def test_filter_facets_first_failure_wins():
    filters = DiscoveryFilters(min_age=30, min_height=60, smoking="never")
    young = _cand("young", date_of_birth=date(2000, 1, 1), height_inches=50)
    assert first_failing_facet(young, filters, TODAY) == "age"
    short = _cand("short", height_inches=50)
    assert first_failing_facet(short, filters, TODAY) == "height"
    unknown_height = _cand("unknown")
    assert first_failing_facet(unknown_height, filters, TODAY) == "height"
    smoker = _cand("smoker", height_inches=66, smoking="daily")
    assert first_failing_facet(smoker, filters, TODAY) == "smoking"
    assert first_failing_facet(_cand("ok", height_inches=66, smoking="never"), filters, TODAY) is None


def test_filters_any_is_ignored_and_lists_overlap():
    filters = DiscoveryFilters.from_dict({"drinking": "any", "ethnicities": ["white"], "zodiacSigns": ["leo"]})
    assert filters.zodiac_signs == ["leo"]
    row = _cand("c", ethnicity=["asian", "white"], zodiac_sign="leo", drinking="regular")
    assert first_failing_facet(row, filters, TODAY) is None
    assert first_failing_facet(_cand("d", ethnicity=["asian"], zodiac_sign="leo"), filters, TODAY) == "ethnicities"


def test_filter_stage_counts_per_facet():
    filters = DiscoveryFilters(max_age=28, body_types=["athletic"])
    candidates = [
        _cand("old", date_of_birth=date(1980, 1, 1), body_type="athletic"),
        _cand("wrong-body", date_of_birth=date(2000, 1, 1), body_type="curvy"),
        _cand("ok", date_of_birth=date(2000, 1, 1), body_type="athletic"),
    ]
    result = discover(VIEWER, candidates, build_exclusion_snapshot("v", [], []), filters, today=TODAY)
    assert result["debug"]["excluded"]["filters"] == 2
    assert result["debug"]["filter_facets"]["age"] == 1
    assert result["debug"]["filter_facets"]["body_types"] == 1
    assert [p["user_id"] for p in result["profiles"]] == ["ok"]


def test_distance_stage_keeps_unknown_locations():
    candidates = [
        _cand("near", latitude=40.73, longitude=-73.99),
        _cand("far", latitude=34.05, longitude=-118.24),
        _cand("unknown"),
    ]
    filters = DiscoveryFilters(max_distance_miles=50)
    result = discover(VIEWER, candidates, build_exclusion_snapshot("v", [], []), filters, sort_by="distance", today=TODAY)
    assert result["debug"]["excluded"]["distance"] == 1
    assert [p["user_id"] for p in result["profiles"]] == ["near", "unknown"]
    assert result["profiles"][0]["distance_km"] < 5
    assert result["profiles"][1]["distance_km"] is None


def test_distance_stage_skipped_without_viewer_coordinates():
    viewer = ViewerContext(user_id="v", gender="male", looking_for=["female"])
    candidates = [_cand("far", latitude=34.05, longitude=-118.24)]
    result = discover(viewer, candidates, build_exclusion_snapshot("v", [], []), DiscoveryFilters(max_distance_miles=5))
    assert result["debug"]["excluded"]["distance"] == 0
    assert [p["user_id"] for p in result["profiles"]] == ["far"]


def test_haversine_is_symmetric_and_reasonable():
    la = (34.05, -118.24)
    d1 = haversine_km(NYC[0], NYC[1], *la)
    d2 = haversine_km(la[0], la[1], *NYC)
    assert abs(d1 - d2) < 1e-6
    assert 3900 < d1 < 4000


def test_sorting_and_pagination():
    candidates = [_cand(f"c{i}", updated_at=T0 + timedelta(hours=i)) for i in range(5)]
    snap = build_exclusion_snapshot("v", [], [])

    recent = discover(VIEWER, candidates, snap, sort_by="recent", limit=2, offset=1, today=TODAY)
    assert [p["user_id"] for p in recent["profiles"]] == ["c3", "c2"]
    assert recent["total"] == 5

    first = discover(VIEWER, candidates, snap, sort_by="random", today=TODAY)
    second = discover(VIEWER, list(reversed(candidates)), snap, sort_by="random", today=TODAY)
    assert [p["user_id"] for p in first["profiles"]] == [p["user_id"] for p in second["profiles"]]


def test_mutual_matches_use_later_like_and_skip_hidden():
    snap = build_exclusion_snapshot(
        "v",
        [],
        [
            _action("v", "a", "like", minutes=0),
            _action("a", "v", "like", minutes=30),
            _action("v", "b", "super_like", minutes=10),
            _action("b", "v", "like", minutes=5),
            _action("v", "h", "like"),
            _action("h", "v", "like"),
        ],
    )
    profiles = {"a": {"display_name": "A"}, "b": {"display_name": "B"}, "h": {"profile_hidden": True}}
    matches = mutual_matches(snap, profiles, {"a": "conv-a"})
    assert [m["user_id"] for m in matches] == ["a", "b"]
    assert matches[0]["matched_at"] == T0 + timedelta(minutes=30)
    assert matches[0]["conversation_id"] == "conv-a"
    assert matches[1]["matched_at"] == T0 + timedelta(minutes=10)


def test_likes_received_super_likes_first():
    snap = build_exclusion_snapshot(
        "v",
        [{"blocker_id": "v", "blocked_id": "blocked"}],
        [
            _action("old", "v", "like", minutes=0),
            _action("new", "v", "like", minutes=20),
            _action("super", "v", "super_like", minutes=1),
            _action("answered", "v", "like", minutes=2),
            _action("v", "answered", "pass"),
            _action("blocked", "v", "like"),
        ],
    )
    profiles = {uid: {"display_name": uid} for uid in ("old", "new", "super", "answered", "blocked")}
    likes = likes_received(snap, profiles)
    assert [l["user_id"] for l in likes] == ["super", "new", "old"]
