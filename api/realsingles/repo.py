import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from realsingles.database import SessionLocal
from realsingles.services.events import log_analytics_event
from realsingles.services.matches import LIKE_ACTIONS, is_mutual
from realsingles.services.onboarding_steps import all_fields
from realsingles.services.orders import OrderRejected, check_redeemable

logger = logging.getLogger(__name__)

JSONB_PROFILE_COLUMNS = {f.db_column for f in all_fields() if f.input_type == "multi-select"} | {
    "profile_completion_skipped",
    "profile_completion_prefer_not",
}
PROFILE_COLUMNS = {f.db_column for f in all_fields()} | {
    "zodiac_sign",
    "latitude",
    "longitude",
    "is_verified",
    "profile_hidden",
    "can_start_matching",
    "profile_completion_step",
    "profile_completion_skipped",
    "profile_completion_prefer_not",
    "profile_completed_at",
}
JSONB_FILTER_COLUMNS = {"body_types", "ethnicities", "religions", "education_levels", "zodiac_signs"}

PUBLIC_PROFILE_SELECT = """
    p.user_id, p.display_name, p.date_of_birth, p.gender, p.looking_for, p.profile_image_url,
    p.bio, p.looking_for_description, p.height_inches, p.body_type, p.ethnicity, p.marital_status,
    p.dating_intentions, p.country, p.city, p.occupation, p.company, p.education, p.religion,
    p.political_views, p.exercise, p.languages, p.smoking, p.drinking, p.marijuana, p.has_kids,
    p.wants_kids, p.pets, p.interests, p.life_goals, p.ideal_first_date, p.non_negotiables,
    p.way_to_heart, p.after_work, p.nightclub_or_home, p.pet_peeves, p.craziest_travel_story,
    p.weirdest_gift, p.worst_job, p.dream_job, p.social_link_1, p.social_link_2, p.zodiac_sign,
    p.latitude, p.longitude, p.is_verified, p.profile_hidden, p.can_start_matching, p.updated_at,
    u.status, u.last_active_at
"""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _jsonb_value(value: Any) -> str:
    return json.dumps(list(value or []))


# ---------------------------------------------------------------------------
# users / auth
# ---------------------------------------------------------------------------


def create_user(email: str, password_hash: str, display_name: str | None = None) -> dict[str, Any] | None:
    user_id = str(uuid.uuid4())
    try:
        with SessionLocal() as db:
            db.execute(
                text(
                    """
                    INSERT INTO user_account (id, email, password_hash, display_name)
                    VALUES (:id, :email, :password_hash, :display_name)
                    """
                ),
                {"id": user_id, "email": email, "password_hash": password_hash, "display_name": display_name},
            )
            db.execute(
                text(
                    """
                    INSERT INTO profile (user_id, display_name)
                    VALUES (CAST(:id AS uuid), :display_name)
                    ON CONFLICT (user_id) DO NOTHING
                    """
                ),
                {"id": user_id, "display_name": display_name},
            )
            db.commit()
    except IntegrityError:
        return None
    return get_user_by_id(user_id)


def get_user_by_email(email: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM user_account WHERE email=:email"), {"email": email}).mappings().first()
    return dict(row) if row else None


def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM user_account WHERE id=CAST(:id AS uuid)"), {"id": user_id}).mappings().first()
    return dict(row) if row else None


def touch_last_active(user_id: str) -> None:
    with SessionLocal() as db:
        db.execute(text("UPDATE user_account SET last_active_at=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        db.commit()


def create_refresh_token_row(user_id: str, token_hash: str, expires_at: datetime) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO refresh_token (id, user_id, token_hash, expires_at)
                VALUES (:id, CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"id": str(uuid.uuid4()), "user_id": user_id, "token_hash": token_hash, "expires_at": expires_at},
        )
        db.commit()


def get_active_refresh_token(token_hash: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, user_id, token_hash, expires_at, revoked_at
                FROM refresh_token
                WHERE token_hash=:token_hash
                  AND revoked_at IS NULL
                  AND expires_at > NOW()
                """
            ),
            {"token_hash": token_hash},
        ).mappings().first()
    return dict(row) if row else None


def revoke_refresh_token(token_hash: str) -> bool:
    with SessionLocal() as db:
        result = db.execute(
            text("UPDATE refresh_token SET revoked_at=NOW() WHERE token_hash=:token_hash AND revoked_at IS NULL"),
            {"token_hash": token_hash},
        )
        db.commit()
    return bool(result.rowcount)


def search_users(search: str, limit: int) -> list[dict[str, Any]]:
    needle = f"%{search.strip().lower()}%" if search and search.strip() else None
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT u.id AS user_id, u.email, u.display_name, u.status,
                       p.gender, p.looking_for, p.city, p.country, p.can_start_matching, p.profile_image_url
                FROM user_account u
                LEFT JOIN profile p ON p.user_id = u.id
                WHERE (
                  CAST(:needle AS text) IS NULL
                  OR LOWER(u.email) LIKE :needle
                  OR LOWER(COALESCE(u.display_name, '')) LIKE :needle
                  OR LOWER(COALESCE(p.display_name, '')) LIKE :needle
                )
                ORDER BY COALESCE(p.updated_at, u.created_at) DESC
                LIMIT :limit
                """
            ),
            {"needle": needle, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# profiles / gallery
# ---------------------------------------------------------------------------


def get_profile(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT p.*, u.email, u.status, u.points_balance, u.last_active_at
                FROM profile p
                JOIN user_account u ON u.id = p.user_id
                WHERE p.user_id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def get_public_profile(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                f"""
                SELECT {PUBLIC_PROFILE_SELECT}
                FROM profile p
                JOIN user_account u ON u.id = p.user_id
                WHERE p.user_id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def get_public_profiles(user_ids: list[str]) -> dict[str, dict[str, Any]]:
    if not user_ids:
        return {}
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT {PUBLIC_PROFILE_SELECT},
                       (SELECT g.media_url FROM user_gallery g
                        WHERE g.user_id = p.user_id AND g.is_primary
                        ORDER BY g.display_order LIMIT 1) AS primary_photo_url
                FROM profile p
                JOIN user_account u ON u.id = p.user_id
                WHERE p.user_id = ANY(CAST(:ids AS uuid[]))
                """
            ),
            {"ids": list(user_ids)},
        ).mappings().all()
    return {str(r["user_id"]): dict(r) for r in rows}


def update_profile_columns(user_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
    """Write whitelisted profile columns. display_name is mirrored onto user_account."""
    unknown = sorted(set(updates) - PROFILE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown profile columns: {', '.join(unknown)}")
    if not updates:
        return get_profile(user_id)

    assignments: list[str] = []
    params: dict[str, Any] = {"user_id": user_id}
    for column, value in updates.items():
        if column in JSONB_PROFILE_COLUMNS:
            assignments.append(f"{column}=CAST(:{column} AS jsonb)")
            params[column] = _jsonb_value(value)
        else:
            assignments.append(f"{column}=:{column}")
            params[column] = value

    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO profile (user_id)
                VALUES (CAST(:user_id AS uuid))
                ON CONFLICT (user_id) DO NOTHING
                """
            ),
            {"user_id": user_id},
        )
        db.execute(
            text(f"UPDATE profile SET {', '.join(assignments)}, updated_at=NOW() WHERE user_id=CAST(:user_id AS uuid)"),
            params,
        )
        if "display_name" in updates:
            db.execute(
                text("UPDATE user_account SET display_name=:display_name WHERE id=CAST(:user_id AS uuid)"),
                {"display_name": updates["display_name"], "user_id": user_id},
            )
        db.commit()
    return get_profile(user_id)


def count_gallery_images(user_id: str) -> int:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT COUNT(*) AS n FROM user_gallery WHERE user_id=CAST(:id AS uuid) AND media_type='image'"),
            {"id": user_id},
        ).mappings().first()
    return int(row["n"]) if row else 0


def list_gallery(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, user_id, media_url, media_type, is_primary, display_order, created_at
                FROM user_gallery
                WHERE user_id=CAST(:id AS uuid)
                ORDER BY display_order ASC, created_at ASC
                """
            ),
            {"id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def add_gallery_image(user_id: str, media_url: str) -> dict[str, Any]:
    """Append an image; the first image becomes primary and the profile image."""
    with SessionLocal() as db:
        existing = db.execute(
            text("SELECT COUNT(*) AS n FROM user_gallery WHERE user_id=CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().first()
        count = int(existing["n"]) if existing else 0
        row = db.execute(
            text(
                """
                INSERT INTO user_gallery (id, user_id, media_url, media_type, is_primary, display_order)
                VALUES (:id, CAST(:user_id AS uuid), :media_url, 'image', :is_primary, :display_order)
                RETURNING id, user_id, media_url, media_type, is_primary, display_order, created_at
                """
            ),
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "media_url": media_url,
                "is_primary": count == 0,
                "display_order": count,
            },
        ).mappings().first()
        if count == 0:
            db.execute(
                text("UPDATE profile SET profile_image_url=:url, updated_at=NOW() WHERE user_id=CAST(:id AS uuid)"),
                {"url": media_url, "id": user_id},
            )
        db.commit()
    return dict(row)


def delete_gallery_item(user_id: str, item_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                DELETE FROM user_gallery
                WHERE id=CAST(:item_id AS uuid) AND user_id=CAST(:user_id AS uuid)
                RETURNING id, media_url, is_primary
                """
            ),
            {"item_id": item_id, "user_id": user_id},
        ).mappings().first()
        if row and row["is_primary"]:
            nxt = db.execute(
                text(
                    """
                    SELECT id, media_url FROM user_gallery
                    WHERE user_id=CAST(:user_id AS uuid)
                    ORDER BY display_order ASC, created_at ASC
                    LIMIT 1
                    """
                ),
                {"user_id": user_id},
            ).mappings().first()
            if nxt:
                db.execute(text("UPDATE user_gallery SET is_primary=TRUE WHERE id=:id"), {"id": nxt["id"]})
            db.execute(
                text("UPDATE profile SET profile_image_url=:url, updated_at=NOW() WHERE user_id=CAST(:user_id AS uuid)"),
                {"url": nxt["media_url"] if nxt else None, "user_id": user_id},
            )
        db.commit()
    return dict(row) if row else None


def set_primary_gallery_item(user_id: str, item_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, media_url, media_type FROM user_gallery
                WHERE id=CAST(:item_id AS uuid) AND user_id=CAST(:user_id AS uuid)
                """
            ),
            {"item_id": item_id, "user_id": user_id},
        ).mappings().first()
        if not row:
            return None
        db.execute(
            text("UPDATE user_gallery SET is_primary=(id=CAST(:item_id AS uuid)) WHERE user_id=CAST(:user_id AS uuid)"),
            {"item_id": item_id, "user_id": user_id},
        )
        db.execute(
            text("UPDATE profile SET profile_image_url=:url, updated_at=NOW() WHERE user_id=CAST(:user_id AS uuid)"),
            {"url": row["media_url"], "user_id": user_id},
        )
        db.commit()
    return dict(row)


# ---------------------------------------------------------------------------
# saved filters
# ---------------------------------------------------------------------------


def get_user_filters(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM user_filters WHERE user_id=CAST(:id AS uuid)"), {"id": user_id}).mappings().first()
    return dict(row) if row else None


def upsert_user_filters(user_id: str, values: dict[str, Any]) -> dict[str, Any] | None:
    columns = list(values.keys())
    params: dict[str, Any] = {"user_id": user_id}
    placeholders: list[str] = []
    for column in columns:
        if column in JSONB_FILTER_COLUMNS:
            placeholders.append(f"CAST(:{column} AS jsonb)")
            params[column] = _jsonb_value(values[column])
        else:
            placeholders.append(f":{column}")
            params[column] = values[column]
    updates = ", ".join(f"{c}=EXCLUDED.{c}" for c in columns)
    with SessionLocal() as db:
        db.execute(
            text(
                f"""
                INSERT INTO user_filters (user_id, {', '.join(columns)})
                VALUES (CAST(:user_id AS uuid), {', '.join(placeholders)})
                ON CONFLICT (user_id)
                DO UPDATE SET {updates}, updated_at=NOW()
                """
            ),
            params,
        )
        db.commit()
    return get_user_filters(user_id)


def delete_user_filters(user_id: str) -> bool:
    with SessionLocal() as db:
        result = db.execute(text("DELETE FROM user_filters WHERE user_id=CAST(:id AS uuid)"), {"id": user_id})
        db.commit()
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# discovery
# ---------------------------------------------------------------------------


def get_discovery_snapshot_rows(user_id: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[str]]:
    """Blocks and match actions touching the user in either direction, plus favorites."""
    with SessionLocal() as db:
        blocks = db.execute(
            text(
                """
                SELECT blocker_id, blocked_id FROM user_block
                WHERE blocker_id=CAST(:id AS uuid) OR blocked_id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().all()
        actions = db.execute(
            text(
                """
                SELECT user_id, target_user_id, action, is_unmatched, created_at
                FROM match_action
                WHERE user_id=CAST(:id AS uuid) OR target_user_id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().all()
        favorites = db.execute(
            text("SELECT favorite_user_id FROM favorite WHERE user_id=CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().all()
    return (
        [{k: str(v) for k, v in dict(b).items()} for b in blocks],
        [
            {
                "user_id": str(a["user_id"]),
                "target_user_id": str(a["target_user_id"]),
                "action": a["action"],
                "is_unmatched": bool(a["is_unmatched"]),
                "created_at": a["created_at"],
            }
            for a in actions
        ],
        [str(f["favorite_user_id"]) for f in favorites],
    )


def list_discovery_candidates(pool_size: int, include_ineligible: bool = False) -> list[dict[str, Any]]:
    """Newest profiles first. Only discoverable members unless ``include_ineligible`` is set."""
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT {PUBLIC_PROFILE_SELECT}
                FROM profile p
                JOIN user_account u ON u.id = p.user_id
                WHERE CAST(:include_ineligible AS boolean)
                   OR (p.can_start_matching AND NOT p.profile_hidden AND u.status = 'active')
                ORDER BY p.updated_at DESC
                LIMIT :pool_size
                """
            ),
            {"pool_size": pool_size, "include_ineligible": include_ineligible},
        ).mappings().all()
    out: list[dict[str, Any]] = []
    for r in rows:
        row = dict(r)
        row["user_id"] = str(row["user_id"])
        out.append(row)
    return out


# ---------------------------------------------------------------------------
# match actions
# ---------------------------------------------------------------------------


def _find_direct_conversation(db, user_a: str, user_b: str) -> str | None:
    row = db.execute(
        text(
            """
            SELECT c.id
            FROM conversation c
            JOIN conversation_participant pa ON pa.conversation_id = c.id AND pa.user_id = CAST(:a AS uuid)
            JOIN conversation_participant pb ON pb.conversation_id = c.id AND pb.user_id = CAST(:b AS uuid)
            WHERE c.type = 'direct'
            ORDER BY c.created_at ASC
            LIMIT 1
            """
        ),
        {"a": user_a, "b": user_b},
    ).mappings().first()
    return str(row["id"]) if row else None


def _insert_conversation(db, conv_type: str, created_by: str, participant_ids: list[str], group_name: str | None = None) -> str:
    conversation_id = str(uuid.uuid4())
    db.execute(
        text(
            """
            INSERT INTO conversation (id, type, group_name, created_by)
            VALUES (:id, :type, :group_name, CAST(:created_by AS uuid))
            """
        ),
        {"id": conversation_id, "type": conv_type, "group_name": group_name, "created_by": created_by},
    )
    for pid in [created_by] + [p for p in participant_ids if p != created_by]:
        db.execute(
            text(
                """
                INSERT INTO conversation_participant (conversation_id, user_id, role)
                VALUES (CAST(:conversation_id AS uuid), CAST(:user_id AS uuid), :role)
                ON CONFLICT (conversation_id, user_id) DO NOTHING
                """
            ),
            {"conversation_id": conversation_id, "user_id": pid, "role": "owner" if pid == created_by else "member"},
        )
    return conversation_id


def is_blocked_pair(user_a: str, user_b: str) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT 1 FROM user_block
                WHERE (blocker_id=CAST(:a AS uuid) AND blocked_id=CAST(:b AS uuid))
                   OR (blocker_id=CAST(:b AS uuid) AND blocked_id=CAST(:a AS uuid))
                LIMIT 1
                """
            ),
            {"a": user_a, "b": user_b},
        ).mappings().first()
    return row is not None


def record_match_action(user_id: str, target_user_id: str, action: str) -> dict[str, Any]:
    """Upsert the action and, on a reciprocal like, reuse or open a direct conversation."""
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO match_action (id, user_id, target_user_id, action)
                VALUES (:id, CAST(:user_id AS uuid), CAST(:target_user_id AS uuid), :action)
                ON CONFLICT (user_id, target_user_id)
                DO UPDATE SET action=EXCLUDED.action, is_unmatched=FALSE, created_at=NOW(), updated_at=NOW()
                RETURNING id, user_id, target_user_id, action, is_unmatched, created_at
                """
            ),
            {"id": str(uuid.uuid4()), "user_id": user_id, "target_user_id": target_user_id, "action": action},
        ).mappings().first()
        match = dict(row)

        their = None
        if action in LIKE_ACTIONS:
            their_row = db.execute(
                text(
                    """
                    SELECT action, is_unmatched, created_at FROM match_action
                    WHERE user_id=CAST(:target AS uuid) AND target_user_id=CAST(:user_id AS uuid)
                    """
                ),
                {"target": target_user_id, "user_id": user_id},
            ).mappings().first()
            their = dict(their_row) if their_row else None

        mutual = is_mutual(match, their)
        conversation_id = None
        if mutual:
            conversation_id = _find_direct_conversation(db, user_id, target_user_id)
            if not conversation_id:
                conversation_id = _insert_conversation(db, "direct", user_id, [target_user_id])
            log_analytics_event(
                db,
                event_name="mutual_match",
                user_id=user_id,
                properties={"target_user_id": target_user_id, "conversation_id": conversation_id},
            )
        db.execute(text("UPDATE user_account SET last_active_at=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        db.commit()

    return {"match": match, "is_mutual": mutual, "conversation_id": conversation_id}


def get_match_action(user_id: str, target_user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, user_id, target_user_id, action, is_unmatched, created_at
                FROM match_action
                WHERE user_id=CAST(:user_id AS uuid) AND target_user_id=CAST(:target AS uuid)
                """
            ),
            {"user_id": user_id, "target": target_user_id},
        ).mappings().first()
    return dict(row) if row else None


def get_latest_match_action_since(user_id: str, since: datetime) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, action, target_user_id, created_at
                FROM match_action
                WHERE user_id=CAST(:user_id AS uuid) AND created_at >= :since
                ORDER BY created_at DESC
                LIMIT 1
                """
            ),
            {"user_id": user_id, "since": since},
        ).mappings().first()
    return dict(row) if row else None


def delete_match_action(action_id: str, user_id: str) -> bool:
    with SessionLocal() as db:
        result = db.execute(
            text("DELETE FROM match_action WHERE id=CAST(:id AS uuid) AND user_id=CAST(:user_id AS uuid)"),
            {"id": action_id, "user_id": user_id},
        )
        db.execute(text("UPDATE user_account SET last_active_at=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        db.commit()
    return bool(result.rowcount)


def unmatch_users(user_id: str, other_user_id: str) -> int:
    with SessionLocal() as db:
        result = db.execute(
            text(
                """
                UPDATE match_action
                SET is_unmatched=TRUE, updated_at=NOW()
                WHERE (user_id=CAST(:a AS uuid) AND target_user_id=CAST(:b AS uuid))
                   OR (user_id=CAST(:b AS uuid) AND target_user_id=CAST(:a AS uuid))
                """
            ),
            {"a": user_id, "b": other_user_id},
        )
        log_analytics_event(db, event_name="unmatch", user_id=user_id, properties={"target_user_id": other_user_id})
        db.commit()
    return int(result.rowcount or 0)


def list_likes_sent(user_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT m.target_user_id, m.action, m.created_at,
                       p.display_name, p.profile_image_url, p.city, p.is_verified,
                       EXISTS (
                         SELECT 1 FROM match_action r
                         WHERE r.user_id = m.target_user_id AND r.target_user_id = m.user_id
                           AND r.action IN ('like', 'super_like') AND r.is_unmatched = FALSE
                       ) AS is_mutual
                FROM match_action m
                JOIN profile p ON p.user_id = m.target_user_id
                WHERE m.user_id=CAST(:user_id AS uuid)
                  AND m.action IN ('like', 'super_like')
                  AND m.is_unmatched = FALSE
                  AND p.profile_hidden = FALSE
                ORDER BY m.created_at DESC
                LIMIT :limit OFFSET :offset
                """
            ),
            {"user_id": user_id, "limit": limit, "offset": offset},
        ).mappings().all()
    return [dict(r) for r in rows]


def get_direct_conversation_map(user_id: str, other_ids: list[str]) -> dict[str, str]:
    if not other_ids:
        return {}
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT other.user_id AS other_id, c.id AS conversation_id
                FROM conversation c
                JOIN conversation_participant me ON me.conversation_id = c.id AND me.user_id = CAST(:user_id AS uuid)
                JOIN conversation_participant other ON other.conversation_id = c.id AND other.user_id <> me.user_id
                WHERE c.type = 'direct' AND other.user_id = ANY(CAST(:ids AS uuid[]))
                """
            ),
            {"user_id": user_id, "ids": list(other_ids)},
        ).mappings().all()
    return {str(r["other_id"]): str(r["conversation_id"]) for r in rows}


# ---------------------------------------------------------------------------
# safety / favorites
# ---------------------------------------------------------------------------


def create_block(blocker_id: str, blocked_id: str) -> bool:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO user_block (id, blocker_id, blocked_id)
                VALUES (:id, CAST(:blocker AS uuid), CAST(:blocked AS uuid))
                ON CONFLICT (blocker_id, blocked_id) DO NOTHING
                """
            ),
            {"id": str(uuid.uuid4()), "blocker": blocker_id, "blocked": blocked_id},
        )
        db.execute(
            text(
                """
                DELETE FROM favorite
                WHERE (user_id=CAST(:a AS uuid) AND favorite_user_id=CAST(:b AS uuid))
                   OR (user_id=CAST(:b AS uuid) AND favorite_user_id=CAST(:a AS uuid))
                """
            ),
            {"a": blocker_id, "b": blocked_id},
        )
        log_analytics_event(db, event_name="block_created", user_id=blocker_id, properties={"blocked_user_id": blocked_id})
        db.commit()
    return True


def remove_block(blocker_id: str, blocked_id: str) -> bool:
    with SessionLocal() as db:
        result = db.execute(
            text("DELETE FROM user_block WHERE blocker_id=CAST(:a AS uuid) AND blocked_id=CAST(:b AS uuid)"),
            {"a": blocker_id, "b": blocked_id},
        )
        db.commit()
    return bool(result.rowcount)


def list_blocks(blocker_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT b.blocked_id, b.created_at, u.display_name
                FROM user_block b
                JOIN user_account u ON u.id = b.blocked_id
                WHERE b.blocker_id=CAST(:id AS uuid)
                ORDER BY b.created_at DESC
                """
            ),
            {"id": blocker_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def create_report(reporter_id: str, reported_user_id: str, reason: str, details: str | None) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO user_report (id, reporter_id, reported_user_id, reason, details)
                VALUES (:id, CAST(:reporter AS uuid), CAST(:reported AS uuid), :reason, :details)
                RETURNING id, reporter_id, reported_user_id, reason, details, status, created_at
                """
            ),
            {"id": str(uuid.uuid4()), "reporter": reporter_id, "reported": reported_user_id, "reason": reason, "details": details},
        ).mappings().first()
        log_analytics_event(db, event_name="report_created", user_id=reporter_id, properties={"reason": reason})
        db.commit()
    return dict(row)


def list_favorites(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT f.favorite_user_id, f.created_at, p.display_name, p.profile_image_url, p.city, p.is_verified
                FROM favorite f
                JOIN profile p ON p.user_id = f.favorite_user_id
                WHERE f.user_id=CAST(:id AS uuid) AND p.profile_hidden = FALSE
                ORDER BY f.created_at DESC
                """
            ),
            {"id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def toggle_favorite(user_id: str, favorite_user_id: str) -> bool:
    """Flip the favorite and return whether it is now set."""
    with SessionLocal() as db:
        removed = db.execute(
            text(
                """
                DELETE FROM favorite
                WHERE user_id=CAST(:user_id AS uuid) AND favorite_user_id=CAST(:fav AS uuid)
                RETURNING id
                """
            ),
            {"user_id": user_id, "fav": favorite_user_id},
        ).mappings().first()
        if not removed:
            db.execute(
                text(
                    """
                    INSERT INTO favorite (id, user_id, favorite_user_id)
                    VALUES (:id, CAST(:user_id AS uuid), CAST(:fav AS uuid))
                    ON CONFLICT (user_id, favorite_user_id) DO NOTHING
                    """
                ),
                {"id": str(uuid.uuid4()), "user_id": user_id, "fav": favorite_user_id},
            )
        db.commit()
    return removed is None


# ---------------------------------------------------------------------------
# conversations / messages
# ---------------------------------------------------------------------------


def list_conversations_for_user(user_id: str, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT c.id, c.type, c.group_name, c.created_at, c.updated_at,
                       (
                         SELECT COUNT(*) FROM message m
                         WHERE m.conversation_id = c.id
                           AND m.sender_id <> cp.user_id
                           AND m.deleted_at IS NULL
                           AND (cp.last_read_at IS NULL OR m.created_at > cp.last_read_at)
                       ) AS unread_count
                FROM conversation c
                JOIN conversation_participant cp ON cp.conversation_id = c.id AND cp.user_id = CAST(:user_id AS uuid)
                ORDER BY COALESCE(
                  (SELECT MAX(m2.created_at) FROM message m2 WHERE m2.conversation_id = c.id AND m2.deleted_at IS NULL),
                  c.updated_at
                ) DESC
                LIMIT :limit OFFSET :offset
                """
            ),
            {"user_id": user_id, "limit": limit, "offset": offset},
        ).mappings().all()
        total = db.execute(
            text("SELECT COUNT(*) AS n FROM conversation_participant WHERE user_id=CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).mappings().first()
    return [dict(r) for r in rows], int(total["n"]) if total else 0


def get_conversation_participants(conversation_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
    if not conversation_ids:
        return {}
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT cp.conversation_id, cp.user_id, cp.role, cp.last_read_at, cp.is_muted,
                       COALESCE(u.display_name, p.display_name) AS display_name,
                       p.profile_image_url, u.last_active_at
                FROM conversation_participant cp
                JOIN user_account u ON u.id = cp.user_id
                LEFT JOIN profile p ON p.user_id = cp.user_id
                WHERE cp.conversation_id = ANY(CAST(:ids AS uuid[]))
                ORDER BY cp.joined_at ASC
                """
            ),
            {"ids": list(conversation_ids)},
        ).mappings().all()
    out: dict[str, list[dict[str, Any]]] = {}
    for r in rows:
        out.setdefault(str(r["conversation_id"]), []).append(dict(r))
    return out


def get_last_messages(conversation_ids: list[str]) -> dict[str, dict[str, Any]]:
    if not conversation_ids:
        return {}
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT DISTINCT ON (conversation_id)
                       conversation_id, id, sender_id, content, message_type, created_at
                FROM message
                WHERE conversation_id = ANY(CAST(:ids AS uuid[])) AND deleted_at IS NULL
                ORDER BY conversation_id, created_at DESC
                """
            ),
            {"ids": list(conversation_ids)},
        ).mappings().all()
    return {str(r["conversation_id"]): dict(r) for r in rows}


def get_conversation(conversation_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT id, type, group_name, created_by, created_at, updated_at FROM conversation WHERE id=CAST(:id AS uuid)"),
            {"id": conversation_id},
        ).mappings().first()
    return dict(row) if row else None


def get_participant(conversation_id: str, user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT conversation_id, user_id, role, last_read_at, is_muted
                FROM conversation_participant
                WHERE conversation_id=CAST(:cid AS uuid) AND user_id=CAST(:uid AS uuid)
                """
            ),
            {"cid": conversation_id, "uid": user_id},
        ).mappings().first()
    return dict(row) if row else None


def find_direct_conversation(user_a: str, user_b: str) -> str | None:
    with SessionLocal() as db:
        return _find_direct_conversation(db, user_a, user_b)


def create_conversation(conv_type: str, created_by: str, participant_ids: list[str], group_name: str | None = None) -> str:
    with SessionLocal() as db:
        conversation_id = _insert_conversation(db, conv_type, created_by, participant_ids, group_name)
        db.commit()
    return conversation_id


def get_active_user_ids(user_ids: list[str]) -> set[str]:
    if not user_ids:
        return set()
    with SessionLocal() as db:
        rows = db.execute(
            text("SELECT id FROM user_account WHERE id = ANY(CAST(:ids AS uuid[])) AND status = 'active'"),
            {"ids": list(user_ids)},
        ).mappings().all()
    return {str(r["id"]) for r in rows}


def has_block_with_any(user_id: str, other_ids: list[str]) -> bool:
    if not other_ids:
        return False
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT 1 FROM user_block
                WHERE (blocker_id=CAST(:uid AS uuid) AND blocked_id = ANY(CAST(:ids AS uuid[])))
                   OR (blocked_id=CAST(:uid AS uuid) AND blocker_id = ANY(CAST(:ids AS uuid[])))
                LIMIT 1
                """
            ),
            {"uid": user_id, "ids": list(other_ids)},
        ).mappings().first()
    return row is not None


def list_messages(conversation_id: str, limit: int, before: datetime | None = None) -> list[dict[str, Any]]:
    """Newest page first from the database, returned oldest to newest."""
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT m.id, m.conversation_id, m.sender_id, m.content, m.message_type, m.created_at, m.deleted_at,
                       COALESCE(u.display_name, '') AS sender_display_name
                FROM message m
                JOIN user_account u ON u.id = m.sender_id
                WHERE m.conversation_id=CAST(:cid AS uuid)
                  AND m.deleted_at IS NULL
                  AND (CAST(:before AS timestamptz) IS NULL OR m.created_at < CAST(:before AS timestamptz))
                ORDER BY m.created_at DESC
                LIMIT :limit
                """
            ),
            {"cid": conversation_id, "before": before, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in reversed(rows)]


def create_message(conversation_id: str, sender_id: str, content: str, message_type: str) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO message (id, conversation_id, sender_id, content, message_type)
                VALUES (:id, CAST(:cid AS uuid), CAST(:sender AS uuid), :content, :message_type)
                RETURNING id, conversation_id, sender_id, content, message_type, created_at
                """
            ),
            {"id": str(uuid.uuid4()), "cid": conversation_id, "sender": sender_id, "content": content, "message_type": message_type},
        ).mappings().first()
        db.execute(text("UPDATE conversation SET updated_at=NOW() WHERE id=CAST(:cid AS uuid)"), {"cid": conversation_id})
        db.execute(
            text(
                """
                UPDATE conversation_participant SET last_read_at=NOW()
                WHERE conversation_id=CAST(:cid AS uuid) AND user_id=CAST(:sender AS uuid)
                """
            ),
            {"cid": conversation_id, "sender": sender_id},
        )
        db.commit()
    return dict(row)


def mark_conversation_read(conversation_id: str, user_id: str) -> datetime:
    now = _now_utc()
    with SessionLocal() as db:
        db.execute(
            text(
                """
                UPDATE conversation_participant SET last_read_at=:now
                WHERE conversation_id=CAST(:cid AS uuid) AND user_id=CAST(:uid AS uuid)
                """
            ),
            {"now": now, "cid": conversation_id, "uid": user_id},
        )
        db.commit()
    return now


def set_conversation_muted(conversation_id: str, user_id: str, is_muted: bool) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                UPDATE conversation_participant SET is_muted=:is_muted
                WHERE conversation_id=CAST(:cid AS uuid) AND user_id=CAST(:uid AS uuid)
                """
            ),
            {"is_muted": is_muted, "cid": conversation_id, "uid": user_id},
        )
        db.commit()


# ---------------------------------------------------------------------------
# products / orders
# ---------------------------------------------------------------------------


def list_products() -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, name, description, image_url, points_cost, stock_quantity
                FROM product
                WHERE is_active = TRUE
                ORDER BY points_cost ASC, name ASC
                """
            )
        ).mappings().all()
    return [dict(r) for r in rows]


def list_orders(user_id: str, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT o.id, o.product_id, o.points_spent, o.status,
                       o.shipping_name, o.shipping_address, o.shipping_city, o.shipping_state,
                       o.shipping_zip, o.shipping_country, o.tracking_number, o.created_at, o.updated_at,
                       pr.name AS product_name, pr.image_url AS product_image_url
                FROM redemption_order o
                JOIN product pr ON pr.id = o.product_id
                WHERE o.user_id=CAST(:user_id AS uuid)
                ORDER BY o.created_at DESC
                LIMIT :limit OFFSET :offset
                """
            ),
            {"user_id": user_id, "limit": limit, "offset": offset},
        ).mappings().all()
        total = db.execute(
            text("SELECT COUNT(*) AS n FROM redemption_order WHERE user_id=CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).mappings().first()
    return [dict(r) for r in rows], int(total["n"]) if total else 0


def create_redemption_order(user_id: str, product_id: str, shipping: dict[str, str]) -> dict[str, Any]:
    """Place an order and spend the points in one transaction.

    The balance is only decremented by the conditional update, so a second
    concurrent order that would overdraw the account fails instead of
    deducting twice.
    """
    with SessionLocal() as db:
        product = db.execute(
            text(
                """
                SELECT id, name, points_cost, stock_quantity, is_active
                FROM product
                WHERE id=CAST(:id AS uuid) AND is_active = TRUE
                FOR UPDATE
                """
            ),
            {"id": product_id},
        ).mappings().first()
        user = db.execute(
            text("SELECT points_balance FROM user_account WHERE id=CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().first()
        balance = int(user["points_balance"]) if user else 0
        cost = check_redeemable(dict(product) if product else None, balance)

        order = db.execute(
            text(
                """
                INSERT INTO redemption_order (
                  id, user_id, product_id, points_spent, status,
                  shipping_name, shipping_address, shipping_city, shipping_state, shipping_zip, shipping_country
                )
                VALUES (
                  :id, CAST(:user_id AS uuid), CAST(:product_id AS uuid), :points_spent, 'pending',
                  :shipping_name, :shipping_address, :shipping_city, :shipping_state, :shipping_zip, :shipping_country
                )
                RETURNING id, created_at
                """
            ),
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "product_id": product_id,
                "points_spent": cost,
                **shipping,
            },
        ).mappings().first()
        order_id = str(order["id"])

        updated = db.execute(
            text(
                """
                UPDATE user_account
                SET points_balance = points_balance - :cost
                WHERE id=CAST(:id AS uuid) AND points_balance >= :cost
                RETURNING points_balance
                """
            ),
            {"cost": cost, "id": user_id},
        ).mappings().first()
        if not updated:
            db.rollback()
            logger.warning(f"[orders] balance changed during redemption user_id={user_id} product_id={product_id}")
            raise OrderRejected(400, "Insufficient points for this redemption")
        new_balance = int(updated["points_balance"])

        db.execute(
            text(
                """
                INSERT INTO point_transaction (
                  id, user_id, amount, balance_after, transaction_type, description, reference_id, reference_type
                )
                VALUES (
                  :id, CAST(:user_id AS uuid), :amount, :balance_after, 'redemption', :description,
                  CAST(:reference_id AS uuid), 'redemption_order'
                )
                """
            ),
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "amount": -cost,
                "balance_after": new_balance,
                "description": f"Redeemed: {product['name']}",
                "reference_id": order_id,
            },
        )

        if product["stock_quantity"] is not None:
            stocked = db.execute(
                text(
                    """
                    UPDATE product SET stock_quantity = stock_quantity - 1
                    WHERE id=CAST(:id AS uuid) AND stock_quantity > 0
                    RETURNING stock_quantity
                    """
                ),
                {"id": product_id},
            ).mappings().first()
            if not stocked:
                db.rollback()
                raise OrderRejected(400, "Product is out of stock")

        log_analytics_event(
            db,
            event_name="order_placed",
            user_id=user_id,
            properties={"order_id": order_id, "product_id": product_id, "points_spent": cost},
        )
        db.commit()

    return {"order_id": order_id, "points_spent": cost, "new_balance": new_balance}
