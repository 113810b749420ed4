import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response

from .. import repo
from ..auth.deps import get_current_user
from ..config import MESSAGE_MAX_LENGTH, RL_MESSAGE_SEND_LIMIT, RL_WINDOW_SECONDS
from ..deps import parse_uuid
from ..http_helpers import ok, parse_pagination
from ..services.conversations import (
    CONVERSATION_TYPES,
    count_unread,
    order_by_activity,
    other_participant_ids,
    summarize_conversation,
    validate_message_content,
)
from ..services.rate_limit import rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()

RL_MESSAGE_SEND = rate_limit_dependency("message_send", RL_MESSAGE_SEND_LIMIT, RL_WINDOW_SECONDS)

GROUP_NAME_MAX_LENGTH = 100


def _require_participant(conversation_id: str, user_id: str) -> dict[str, Any]:
    conversation = repo.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    participant = repo.get_participant(conversation_id, user_id)
    if not participant:
        raise HTTPException(status_code=403, detail="You are not a participant in this conversation")
    return conversation


@router.get("/conversations")
def conversations_list(
    limit: int | None = None,
    offset: int | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    lim, off = parse_pagination(limit, offset, default_limit=20, max_limit=50)
    user_id = current_user["id"]
    rows, total = repo.list_conversations_for_user(user_id, lim, off)
    ids = [str(r["id"]) for r in rows]
    participants = repo.get_conversation_participants(ids)
    last_messages = repo.get_last_messages(ids)

    summaries = [
        summarize_conversation(
            r,
            user_id,
            participants.get(str(r["id"]), []),
            last_messages.get(str(r["id"])),
            int(r.get("unread_count") or 0),
        )
        for r in rows
    ]
    return ok({"conversations": order_by_activity(summaries), "total": total})


@router.post("/conversations", status_code=201)
def conversations_create(
    payload: dict[str, Any],
    response: Response,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = current_user["id"]
    conv_type = str(payload.get("type") or "direct").strip().lower()
    if conv_type not in CONVERSATION_TYPES:
        raise HTTPException(status_code=400, detail="type must be direct or group")

    raw_ids = payload.get("participant_ids") or []
    if not isinstance(raw_ids, list):
        raise HTTPException(status_code=400, detail="participant_ids must be a list")
    others = [parse_uuid(pid, "participant_ids") for pid in other_participant_ids(user_id, raw_ids)]
    others = [pid for pid in others if pid != user_id]
    if not others:
        raise HTTPException(status_code=400, detail="At least one other participant is required")
    if conv_type == "direct" and len(others) != 1:
        raise HTTPException(status_code=400, detail="Direct conversations have exactly one other participant")

    group_name = str(payload.get("group_name") or "").strip() or None
    if group_name and len(group_name) > GROUP_NAME_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"group_name must be {GROUP_NAME_MAX_LENGTH} characters or fewer")

    if repo.get_active_user_ids(others) != set(others):
        raise HTTPException(status_code=400, detail="One or more participants are invalid")
    if repo.has_block_with_any(user_id, others):
        raise HTTPException(status_code=403, detail="Cannot start a conversation with a blocked user")

    if conv_type == "direct":
        existing_id = repo.find_direct_conversation(user_id, others[0])
        if existing_id:
            response.status_code = 200
            return ok({"conversation_id": existing_id, "existing": True}, "Conversation already exists")

    conversation_id = repo.create_conversation(conv_type, user_id, others, group_name if conv_type == "group" else None)
    logger.info(f"[conversations] created type={conv_type} conversation_id={conversation_id}")
    return ok({"conversation_id": conversation_id, "existing": False}, "Conversation created")


@router.get("/conversations/{conversation_id}")
def conversations_get(conversation_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    cid = parse_uuid(conversation_id, "conversation_id")
    user_id = current_user["id"]
    conversation = _require_participant(cid, user_id)

    participants = repo.get_conversation_participants([cid]).get(cid, [])
    last_message = repo.get_last_messages([cid]).get(cid)
    mine = next((p for p in participants if str(p["user_id"]) == user_id), {})
    recent = repo.list_messages(cid, limit=50)
    unread = count_unread(recent, user_id, mine.get("last_read_at"))
    return ok(summarize_conversation(conversation, user_id, participants, last_message, unread))


@router.get("/conversations/{conversation_id}/messages")
def messages_list(
    conversation_id: str,
    limit: int | None = None,
    before: datetime | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    cid = parse_uuid(conversation_id, "conversation_id")
    _require_participant(cid, current_user["id"])
    lim, _ = parse_pagination(limit, 0, default_limit=50, max_limit=100)
    messages = repo.list_messages(cid, limit=lim, before=before)
    return ok({"messages": messages, "has_more": len(messages) == lim})


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def messages_send(
    conversation_id: str,
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
    _: None = RL_MESSAGE_SEND,
) -> dict[str, Any]:
    cid = parse_uuid(conversation_id, "conversation_id")
    user_id = current_user["id"]
    _require_participant(cid, user_id)

    message_type = str(payload.get("message_type") or "text").strip().lower()
    try:
        content = validate_message_content(payload.get("content"), message_type, MESSAGE_MAX_LENGTH)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    message = repo.create_message(cid, user_id, content, message_type)
    return ok(message, "Message sent")


@router.post("/conversations/{conversation_id}/read")
def conversations_mark_read(conversation_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    cid = parse_uuid(conversation_id, "conversation_id")
    _require_participant(cid, current_user["id"])
    read_at = repo.mark_conversation_read(cid, current_user["id"])
    return ok({"last_read_at": read_at}, "Marked as read")


@router.patch("/conversations/{conversation_id}")
def conversations_update(
    conversation_id: str,
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    cid = parse_uuid(conversation_id, "conversation_id")
    _require_participant(cid, current_user["id"])
    if not isinstance(payload.get("is_muted"), bool):
        raise HTTPException(status_code=400, detail="is_muted must be true or false")
    repo.set_conversation_muted(cid, current_user["id"], payload["is_muted"])
    return ok({"is_muted": payload["is_muted"]}, "Conversation updated")
