from datetime import datetime, timedelta, timezone

import pytest

from realsingles.services.matches import can_undo, is_mutual, normalize_action, seconds_remaining

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_normalize_action():
    assert normalize_action(" Like ") == "like"
    assert normalize_action("super_like") == "super_like"
    with pytest.raises(ValueError):
        normalize_action("maybe")
    with pytest.raises(ValueError):
        normalize_action(None)


@pytest.mark.parametrize(
    "mine,theirs,expected",
    [
        ({"action": "like"}, {"action": "like"}, True),
        ({"action": "super_like"}, {"action": "like"}, True),
        ({"action": "like"}, {"action": "pass"}, False),
        ({"action": "like"}, None, False),
        ({"action": "like"}, {"action": "like", "is_unmatched": True}, False),
        ({"action": "pass"}, {"action": "super_like"}, False),
    ],
)
def test_is_mutual(mine, theirs, expected):
    assert is_mutual(mine, theirs) is expected


def test_undo_window():
    recent = NOW - timedelta(minutes=4)
    stale = NOW - timedelta(minutes=6)
    assert can_undo(recent, NOW, 5) is True
    assert can_undo(stale, NOW, 5) is False
    assert can_undo(None, NOW, 5) is False
    assert seconds_remaining(recent, NOW, 5) == 60
    assert seconds_remaining(stale, NOW, 5) == 0


def test_undo_treats_naive_timestamps_as_utc():
    naive = datetime(2026, 3, 1, 11, 58)
    assert can_undo(naive, NOW, 5) is True
