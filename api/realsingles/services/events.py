"""Append-only analytics events.

Pass the caller's session when the event belongs to a write, so it commits or
rolls back with that write. ``record_event`` opens its own session for
standalone events such as logins.
"""

import json
import logging
import uuid
from typing import Any

from sqlalchemy import text

from realsingles.database import SessionLocal

logger = logging.getLogger(__name__)

INSERT_EVENT_SQL = text(
    """
    INSERT INTO analytics_event (id, user_id, event_name, properties, source)
    VALUES (
      CAST(:id AS uuid),
      CAST(NULLIF(:user_id, '') AS uuid),
      :event_name,
      CAST(:properties AS jsonb),
      :source
    )
    """
)


def log_analytics_event(
    db,
    *,
    event_name: str,
    user_id: str | None = None,
    properties: dict[str, Any] | None = None,
    source: str = "api",
) -> None:
    params = {
        "id": str(uuid.uuid4()),
        "user_id": str(user_id or ""),
        "event_name": event_name,
        # datetimes and UUIDs show up in properties; store them as strings
        "properties": json.dumps(properties or {}, default=str),
        "source": source,
    }
    db.execute(INSERT_EVENT_SQL, params)


def record_event(event_name: str, user_id: str | None = None, properties: dict[str, Any] | None = None) -> None:
    with SessionLocal() as db:
        log_analytics_event(db, event_name=event_name, user_id=user_id, properties=properties)
        db.commit()
    logger.debug(f"[events] recorded {event_name} user_id={user_id or '-'}")
