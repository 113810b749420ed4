from datetime import datetime, timezone
from typing import Any, Iterable

PREVIEW_MAX_CHARS = 50
MEDIA_PREVIEW_LABELS = {
    "image": "📷 Photo",
    "video": "🎥 Video",
    "audio": "🎵 Audio",
    "file": "📎 File",
}
CONVERSATION_TYPES = {"direct", "group"}
MESSAGE_TYPES = {"text", "image", "video", "audio", "file"}


def format_message_preview(message: dict[str, Any] | None) -> str | None:
    if not message:
        return None
    message_type = message.get("message_type") or "text"
    if message_type == "text":
        content = message.get("content")
        if not content:
            return None
        if len(content) > PREVIEW_MAX_CHARS:
            return content[:PREVIEW_MAX_CHARS] + "..."
        return content
    return MEDIA_PREVIEW_LABELS.get(message_type)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_unread(message: dict[str, Any], viewer_id: str, last_read_at: datetime | None) -> bool:
    if str(message.get("sender_id")) == str(viewer_id):
        return False
    if message.get("deleted_at"):
        return False
    if last_read_at is None:
        return True
    created_at = message.get("created_at")
    if created_at is None:
        return False
    return _aware(created_at) > _aware(last_read_at)


def count_unread(messages: Iterable[dict[str, Any]], viewer_id: str, last_read_at: datetime | None) -> int:
    return sum(1 for m in messages if is_unread(m, viewer_id, last_read_at))


def other_participant_ids(caller_id: str, participant_ids: Iterable[Any]) -> list[str]:
    """Dedupe requested participants and drop the caller."""
    out: list[str] = []
    for raw in participant_ids:
        pid = str(raw or "").strip()
        if pid and pid != str(caller_id) and pid not in out:
            out.append(pid)
    return out


def _participant_view(p: dict[str, Any]) -> dict[str, Any]:
    return {
        "user_id": str(p["user_id"]),
        "display_name": p.get("display_name") or "User",
        "profile_image_url": p.get("profile_image_url"),
        "last_active_at": p.get("last_active_at"),
        "role": p.get("role") or "member",
    }


def summarize_conversation(
    conversation: dict[str, Any],
    viewer_id: str,
    participants: list[dict[str, Any]],
    last_message: dict[str, Any] | None,
    unread_count: int,
) -> dict[str, Any]:
    viewer_id = str(viewer_id)
    mine = next((p for p in participants if str(p["user_id"]) == viewer_id), {})
    others = [_participant_view(p) for p in participants if str(p["user_id"]) != viewer_id]

    display_name = conversation.get("group_name")
    display_image = None
    if conversation.get("type") == "direct" and others:
        display_name = others[0]["display_name"]
        display_image = others[0]["profile_image_url"]

    return {
        "conversation_id": str(conversation["id"]),
        "type": conversation.get("type"),
        "display_name": display_name,
        "display_image": display_image,
        "group_name": conversation.get("group_name"),
        "created_at": conversation.get("created_at"),
        "updated_at": conversation.get("updated_at"),
        "is_muted": bool(mine.get("is_muted")),
        "last_read_at": mine.get("last_read_at"),
        "participants": others,
        "last_message": format_message_preview(last_message),
        "last_message_at": (last_message or {}).get("created_at") or conversation.get("updated_at"),
        "unread_count": unread_count,
    }


def _activity_key(summary: dict[str, Any]) -> float:
    value = summary.get("last_message_at")
    if isinstance(value, datetime):
        return _aware(value).timestamp()
    return float("-inf")


def order_by_activity(summaries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(summaries, key=_activity_key, reverse=True)


def validate_message_content(content: Any, message_type: str, max_length: int) -> str:
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"message_type must be one of: {', '.join(sorted(MESSAGE_TYPES))}")
    body = str(content or "").strip()
    if message_type == "text":
        if not body:
            raise ValueError("Message content required")
        if len(body) > max_length:
            raise ValueError(f"Message must be {max_length} characters or fewer")
    elif not body:
        raise ValueError("Media messages require a URL in content")
    return body
