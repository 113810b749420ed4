import math
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlparse

from realsingles.services.onboarding_steps import (
    FINAL_STEP,
    MAX_HEIGHT_INCHES,
    MEDIA_COLUMNS,
    MIN_HEIGHT_INCHES,
    ONBOARDING_STEPS,
    PHOTOS_STEP_ID,
    SELFIE_STEP_ID,
    TOTAL_STEPS,
    OnboardingStep,
    StepField,
    all_fields,
    completion_columns,
    get_field,
    get_step_by_number,
    step_for_field,
)

STEP_ACTIONS = {"next", "back", "skip", "complete"}
COMPLETION_ACTIONS = ("skip", "prefer_not", "unskip", "remove_prefer_not", "set_step", "mark_complete")
FIELD_ACTIONS = {"skip", "prefer_not", "unskip", "remove_prefer_not"}
MIN_AGE_YEARS = 18
MAX_MULTI_SELECT_VALUE_LENGTH = 100

# (sign, start month, start day); a sign runs until the next sign's start.
_ZODIAC_STARTS = (
    ("capricorn", 1, 1),
    ("aquarius", 1, 20),
    ("pisces", 2, 19),
    ("aries", 3, 21),
    ("taurus", 4, 20),
    ("gemini", 5, 21),
    ("cancer", 6, 21),
    ("leo", 7, 23),
    ("virgo", 8, 23),
    ("libra", 9, 23),
    ("scorpio", 10, 23),
    ("sagittarius", 11, 22),
    ("capricorn", 12, 22),
)


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return False
    return True


def zodiac_sign_for(dob: date) -> str:
    sign = "capricorn"
    for name, month, day in _ZODIAC_STARTS:
        if (dob.month, dob.day) >= (month, day):
            sign = name
    return sign


def age_on(dob: date, today: date) -> int:
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def transition_step(current: int, action: str, step: OnboardingStep | None = None) -> int:
    """Move through the wizard. The result always stays within [1, TOTAL_STEPS]."""
    current = max(1, min(int(current), TOTAL_STEPS))
    step = step or get_step_by_number(current)

    if action == "complete":
        return TOTAL_STEPS

    if action == "back":
        return max(1, current - 1)

    if current == TOTAL_STEPS:
        return current

    if action == "next":
        return current + 1

    if action == "skip":
        if step is not None and step.allow_skip:
            return current + 1
        return current

    return current


def _normalize_text(f: StepField, value: Any) -> str | None:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValueError(f"{f.key} must be a string")
    text_value = str(value).strip()
    if not text_value:
        return None
    if f.max_length is not None and len(text_value) > f.max_length:
        raise ValueError(f"{f.key} must be {f.max_length} characters or fewer")
    return text_value


def _match_option(f: StepField, value: str) -> str:
    if value in f.options:
        return value
    lowered = value.lower()
    for option in f.options:
        if option.lower() == lowered:
            return option
    raise ValueError(f"{f.key} must be one of: {', '.join(f.options)}")


def validate_field_value(f: StepField, value: Any, today: date | None = None) -> Any:
    """Validate a single field value and return it normalized for storage."""
    today = today or date.today()

    if f.input_type == "multi-select":
        if value is None or value == "":
            return []
        items = value if isinstance(value, (list, tuple)) else [value]
        out: list[str] = []
        for item in items:
            item_value = str(item or "").strip()
            if not item_value:
                continue
            if f.options:
                item_value = _match_option(f, item_value)
            elif len(item_value) > MAX_MULTI_SELECT_VALUE_LENGTH:
                raise ValueError(f"{f.key} values must be {MAX_MULTI_SELECT_VALUE_LENGTH} characters or fewer")
            if item_value not in out:
                out.append(item_value)
        return out

    if value is None:
        return None

    if f.db_column == "height_inches":
        if isinstance(value, str) and not value.strip():
            return None
        try:
            height = int(value)
        except (TypeError, ValueError):
            raise ValueError("HeightInches must be a whole number of inches")
        if height < MIN_HEIGHT_INCHES or height > MAX_HEIGHT_INCHES:
            raise ValueError(f"HeightInches must be between {MIN_HEIGHT_INCHES} and {MAX_HEIGHT_INCHES}")
        return height

    if f.input_type == "date":
        if isinstance(value, str) and not value.strip():
            return None
        parsed = parse_date(value)
        if parsed is None:
            raise ValueError(f"{f.key} must be a date in YYYY-MM-DD format")
        if f.db_column == "date_of_birth" and age_on(parsed, today) < MIN_AGE_YEARS:
            raise ValueError(f"You must be at least {MIN_AGE_YEARS} years old")
        return parsed

    text_value = _normalize_text(f, value)
    if text_value is None:
        return None

    if f.input_type == "select" and f.options:
        return _match_option(f, text_value)

    if f.input_type in {"url", "photo-upload", "camera-capture"}:
        parsed_url = urlparse(text_value)
        if parsed_url.scheme not in {"http", "https"} or not parsed_url.netloc:
            raise ValueError(f"{f.key} must start with http:// or https://")

    return text_value


def validate_step_values(step: OnboardingStep, values: dict[str, Any], today: date | None = None) -> dict[str, Any]:
    """Validate values posted for one wizard step.

    Values may be keyed by API key or db column. The result is keyed by db
    column and contains only fields that were sent.
    """
    by_name: dict[str, StepField] = {}
    for f in step.fields:
        by_name[f.key] = f
        by_name[f.db_column] = f

    unknown = sorted(k for k in values if k not in by_name)
    if unknown:
        raise ValueError(f"Unknown fields for step '{step.id}': {', '.join(unknown)}")

    out: dict[str, Any] = {}
    for name, raw in values.items():
        f = by_name[name]
        out[f.db_column] = validate_field_value(f, raw, today=today)

    if step.is_required:
        for f in step.fields:
            if not f.required or f.db_column in MEDIA_COLUMNS:
                continue
            if not has_value(out.get(f.db_column)):
                raise ValueError(f"{f.label} is required")

    return out


def _field_descriptor(f: StepField) -> dict[str, Any]:
    step = step_for_field(f.db_column)
    return {
        "key": f.key,
        "db_column": f.db_column,
        "label": f.label,
        "step": step.step_number if step else None,
        "phase": step.phase if step else None,
        "required": f.required,
        "sensitive": f.sensitive,
    }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def has_minimum_photos(profile: dict[str, Any], photo_count: int, min_photos: int) -> bool:
    return photo_count >= min_photos or has_value(profile.get("profile_image_url"))


def calculate_completion(profile: dict[str, Any], photo_count: int = 0, min_photos: int = 1) -> dict[str, Any]:
    skipped = list(profile.get("profile_completion_skipped") or [])
    prefer_not = list(profile.get("profile_completion_prefer_not") or [])

    completed: list[str] = []
    incomplete: list[str] = []
    required_incomplete: list[str] = []
    incomplete_steps: set[int] = set()
    skipped_steps: set[int] = set()
    first_incomplete_field: StepField | None = None

    columns = completion_columns()
    for f in all_fields():
        if f.db_column not in columns:
            continue
        step = step_for_field(f.db_column)
        step_number = step.step_number if step else TOTAL_STEPS
        if has_value(profile.get(f.db_column)) or f.db_column in prefer_not:
            completed.append(f.db_column)
            continue
        incomplete.append(f.db_column)
        if first_incomplete_field is None:
            first_incomplete_field = f
        if f.required:
            required_incomplete.append(f.db_column)
        if f.db_column in skipped:
            skipped_steps.add(step_number)
        else:
            incomplete_steps.add(step_number)

    photos_ok = has_minimum_photos(profile, photo_count, min_photos)
    if not photos_ok:
        photos_step = next(s for s in ONBOARDING_STEPS if s.id == PHOTOS_STEP_ID)
        incomplete_steps.add(photos_step.step_number)
        required_incomplete.append("profile_image_url")

    photo_complete = 1 if photos_ok else 0
    total = len(columns) + 1
    done = len(completed) + photo_complete

    return {
        "percentage": _round_half_up(done / total * 100),
        "completed_count": done,
        "total_count": total,
        "completed_fields": completed,
        "incomplete_fields": incomplete,
        "skipped_fields": skipped,
        "prefer_not_fields": prefer_not,
        "required_incomplete": required_incomplete,
        "next_incomplete_step": min(incomplete_steps) if incomplete_steps else None,
        "first_skipped_step": min(skipped_steps) if skipped_steps else None,
        "can_start_matching": not required_incomplete and photos_ok,
        "is_complete": not incomplete and photos_ok,
        "photo_count": photo_count,
        "min_photos_required": min_photos,
        "has_minimum_photos": photos_ok,
        "photo_shortfall": max(0, min_photos - photo_count) if min_photos > 0 else 0,
        "next_field": _field_descriptor(first_incomplete_field) if first_incomplete_field else None,
    }


def _is_step_handled(step: OnboardingStep, profile: dict[str, Any], completion: dict[str, Any]) -> bool:
    if step.id == PHOTOS_STEP_ID:
        return has_minimum_photos(profile, int(completion.get("photo_count") or 0), int(completion.get("min_photos_required", 1)))
    if step.id == SELFIE_STEP_ID:
        return has_value(profile.get("verification_selfie_url")) or "verification_selfie_url" in completion.get("skipped_fields", [])

    prefer_not = profile.get("profile_completion_prefer_not") or []
    skipped = profile.get("profile_completion_skipped") or []
    for f in step.fields:
        if has_value(profile.get(f.db_column)) or f.db_column in prefer_not:
            continue
        if step.is_required or f.db_column not in skipped:
            return False
    return True


def resume_step(profile: dict[str, Any], completion: dict[str, Any]) -> int:
    for step in ONBOARDING_STEPS:
        if step.id == FINAL_STEP.id:
            continue
        if not _is_step_handled(step, profile, completion):
            return step.step_number
    return TOTAL_STEPS


def next_incomplete_step_after(current: int, profile: dict[str, Any], completion: dict[str, Any]) -> int | None:
    for step in ONBOARDING_STEPS:
        if step.step_number <= current or step.id == FINAL_STEP.id:
            continue
        if not _is_step_handled(step, profile, completion):
            return step.step_number
    return None


def apply_completion_action(
    skipped: list[str],
    prefer_not: list[str],
    action: str,
    field: str | None = None,
    step: Any = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Return the profile column updates for a completion-tracking action."""
    if action not in COMPLETION_ACTIONS:
        raise ValueError(f"Invalid action. Must be one of: {', '.join(COMPLETION_ACTIONS)}")

    skipped = list(skipped or [])
    prefer_not = list(prefer_not or [])
    updates: dict[str, Any] = {}

    if action in FIELD_ACTIONS:
        if not field:
            raise ValueError(f"Field is required for {action} action")
        f = get_field(field)
        if f is None:
            raise ValueError(f"Unknown field '{field}'")
        column = f.db_column

        if action == "skip":
            if column not in skipped:
                updates["profile_completion_skipped"] = skipped + [column]
            if column in prefer_not:
                updates["profile_completion_prefer_not"] = [c for c in prefer_not if c != column]
        elif action == "prefer_not":
            if not f.sensitive:
                raise ValueError(f'Field "{field}" does not allow prefer not to say option')
            if column not in prefer_not:
                updates["profile_completion_prefer_not"] = prefer_not + [column]
            if column in skipped:
                updates["profile_completion_skipped"] = [c for c in skipped if c != column]
        elif action == "unskip":
            updates["profile_completion_skipped"] = [c for c in skipped if c != column]
        else:
            updates["profile_completion_prefer_not"] = [c for c in prefer_not if c != column]
        return updates

    if action == "set_step":
        if isinstance(step, bool) or not isinstance(step, int):
            raise ValueError("Step is required for set_step action")
        if step < 1 or step > TOTAL_STEPS:
            raise ValueError(f"Step must be between 1 and {TOTAL_STEPS}")
        updates["profile_completion_step"] = step
        return updates

    updates["profile_completed_at"] = now or datetime.now(timezone.utc)
    return updates
