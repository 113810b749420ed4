from typing import Any

from realsingles.services.discovery import DiscoveryFilters
from realsingles.services.onboarding_steps import (
    BODY_TYPE_OPTIONS,
    DRINKING_OPTIONS,
    EDUCATION_OPTIONS,
    ETHNICITY_OPTIONS,
    HAS_KIDS_OPTIONS,
    MARIJUANA_OPTIONS,
    MAX_HEIGHT_INCHES,
    MIN_HEIGHT_INCHES,
    RELIGION_OPTIONS,
    SMOKING_OPTIONS,
    WANTS_KIDS_OPTIONS,
    ZODIAC_OPTIONS,
)

MIN_FILTER_AGE = 18
MAX_FILTER_AGE = 99
MIN_DISTANCE_MILES = 1
MAX_DISTANCE_MILES = 500

LIST_FILTER_OPTIONS = {
    "body_types": BODY_TYPE_OPTIONS,
    "ethnicities": ETHNICITY_OPTIONS,
    "religions": RELIGION_OPTIONS,
    "education_levels": EDUCATION_OPTIONS,
    "zodiac_signs": ZODIAC_OPTIONS,
}
CHOICE_FILTER_OPTIONS = {
    "smoking": SMOKING_OPTIONS,
    "drinking": DRINKING_OPTIONS,
    "marijuana": MARIJUANA_OPTIONS,
    "has_kids": HAS_KIDS_OPTIONS,
    "wants_kids": WANTS_KIDS_OPTIONS,
}
FILTER_COLUMNS = (
    "min_age",
    "max_age",
    "min_height",
    "max_height",
    "max_distance_miles",
    *LIST_FILTER_OPTIONS.keys(),
    *CHOICE_FILTER_OPTIONS.keys(),
)


def _int_in_range(name: str, value: Any, low: int, high: int) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a whole number")
    if number < low or number > high:
        raise ValueError(f"{name} must be between {low} and {high}")
    return number


def validate_filters(payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a saved-filter payload and return the full row to store."""
    parsed = DiscoveryFilters.from_dict(payload)
    raw = payload

    out: dict[str, Any] = {
        "min_age": _int_in_range("min_age", raw.get("min_age", raw.get("minAge")), MIN_FILTER_AGE, MAX_FILTER_AGE),
        "max_age": _int_in_range("max_age", raw.get("max_age", raw.get("maxAge")), MIN_FILTER_AGE, MAX_FILTER_AGE),
        "min_height": _int_in_range("min_height", raw.get("min_height", raw.get("minHeight")), MIN_HEIGHT_INCHES, MAX_HEIGHT_INCHES),
        "max_height": _int_in_range("max_height", raw.get("max_height", raw.get("maxHeight")), MIN_HEIGHT_INCHES, MAX_HEIGHT_INCHES),
        "max_distance_miles": _int_in_range(
            "max_distance_miles",
            raw.get("max_distance_miles", raw.get("maxDistanceMiles")),
            MIN_DISTANCE_MILES,
            MAX_DISTANCE_MILES,
        ),
    }
    if out["min_age"] is not None and out["max_age"] is not None and out["min_age"] > out["max_age"]:
        raise ValueError("min_age cannot be greater than max_age")
    if out["min_height"] is not None and out["max_height"] is not None and out["min_height"] > out["max_height"]:
        raise ValueError("min_height cannot be greater than max_height")

    for facet, options in LIST_FILTER_OPTIONS.items():
        values = getattr(parsed, facet)
        bad = [v for v in values if v not in options]
        if bad:
            raise ValueError(f"{facet} contains invalid values: {', '.join(bad)}")
        out[facet] = values

    for facet, options in CHOICE_FILTER_OPTIONS.items():
        value = getattr(parsed, facet)
        if value is not None and value != "any" and value not in options:
            raise ValueError(f"{facet} must be one of: any, {', '.join(options)}")
        out[facet] = value

    return out


def default_filters() -> dict[str, Any]:
    out: dict[str, Any] = {col: None for col in FILTER_COLUMNS}
    for facet in LIST_FILTER_OPTIONS:
        out[facet] = []
    return out
