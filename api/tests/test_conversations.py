from datetime import datetime, timedelta, timezone

import pytest

from realsingles.services.conversations import (
    count_unread,
    format_message_preview,
    order_by_activity,
    other_participant_ids,
    summarize_conversation,
    validate_message_content,
)

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def test_preview_truncates_text_and_labels_media():
    long_text = "a" * 60
    assert format_message_preview({"message_type": "text", "content": long_text}) == "a" * 50 + "..."
    assert format_message_preview({"message_type": "text", "content": "hi"}) == "hi"
    assert format_message_preview({"message_type": "image", "content": "https://x/y.jpg"}) == "📷 Photo"
    assert format_message_preview({"message_type": "audio"}) == "🎵 Audio"
    assert format_message_preview(None) is None


def test_count_unread_ignores_own_and_read_messages():
    messages = [
        {"sender_id": "me", "created_at": T0 + timedelta(minutes=5)},
        {"sender_id": "them", "created_at": T0 - timedelta(minutes=5)},
        {"sender_id": "them", "created_at": T0 + timedelta(minutes=1)},
        {"sender_id": "them", "created_at": T0 + timedelta(minutes=2), "deleted_at": T0},
    ]
    assert count_unread(messages, "me", T0) == 1
    assert count_unread(messages, "me", None) == 2


def test_other_participant_ids_dedupes_and_drops_caller():
    assert other_participant_ids("me", ["a", "me", "a", " b ", "", None]) == ["a", "b"]


def test_direct_summary_uses_other_participant():
    participants = [
        {"user_id": "me", "display_name": "Me", "is_muted": True, "last_read_at": T0},
        {"user_id": "them", "display_name": "Jordan", "profile_image_url": "https://img/j.jpg"},
    ]
    summary = summarize_conversation(
        {"id": "c1", "type": "direct", "updated_at": T0},
        "me",
        participants,
        {"message_type": "text", "content": "hey there", "created_at": T0 + timedelta(minutes=3)},
        2,
    )
    assert summary["display_name"] == "Jordan"
    assert summary["display_image"] == "https://img/j.jpg"
    assert summary["is_muted"] is True
    assert summary["last_message"] == "hey there"
    assert summary["unread_count"] == 2
    assert [p["user_id"] for p in summary["participants"]] == ["them"]


def test_group_summary_uses_group_name_and_activity_order():
    older = summarize_conversation({"id": "g", "type": "group", "group_name": "Hikers", "updated_at": T0}, "me", [], None, 0)
    newer = summarize_conversation(
        {"id": "d", "type": "direct", "updated_at": T0},
        "me",
        [],
        {"message_type": "text", "content": "x", "created_at": T0 + timedelta(hours=1)},
        0,
    )
    assert older["display_name"] == "Hikers"
    assert [s["conversation_id"] for s in order_by_activity([older, newer])] == ["d", "g"]


def test_validate_message_content():
    assert validate_message_content("  hello ", "text", 2000) == "hello"
    with pytest.raises(ValueError, match="required"):
        validate_message_content("   ", "text", 2000)
    with pytest.raises(ValueError, match="2000"):
        validate_message_content("x" * 2001, "text", 2000)
    with pytest.raises(ValueError, match="message_type"):
        validate_message_content("hi", "sticker", 2000)
    assert validate_message_content("https://cdn/v.mp4", "video", 2000) == "https://cdn/v.mp4"
