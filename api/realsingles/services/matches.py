from datetime import datetime, timedelta, timezone
from typing import Any

MATCH_ACTIONS = {"like", "pass", "super_like"}
LIKE_ACTIONS = {"like", "super_like"}


def normalize_action(raw: Any) -> str:
    action = str(raw or "").strip().lower()
    if action not in MATCH_ACTIONS:
        raise ValueError("action must be one of: like, pass, super_like")
    return action


def is_like(action_row: dict[str, Any] | None) -> bool:
    if not action_row:
        return False
    return str(action_row.get("action")) in LIKE_ACTIONS and not action_row.get("is_unmatched")


def is_mutual(my_action: dict[str, Any] | None, their_action: dict[str, Any] | None) -> bool:
    """Both sides hold a like or super like and neither has been unmatched."""
    return is_like(my_action) and is_like(their_action)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def undo_deadline(created_at: datetime, window_minutes: int) -> datetime:
    return _as_aware(created_at) + timedelta(minutes=window_minutes)


def can_undo(created_at: datetime | None, now: datetime, window_minutes: int) -> bool:
    if created_at is None:
        return False
    return _as_aware(now) <= undo_deadline(created_at, window_minutes)


def seconds_remaining(created_at: datetime, now: datetime, window_minutes: int) -> int:
    remaining = (undo_deadline(created_at, window_minutes) - _as_aware(now)).total_seconds()
    return max(0, int(remaining))
