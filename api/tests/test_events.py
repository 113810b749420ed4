import json

from realsingles.services.events import log_analytics_event


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params):
        self.calls.append((str(stmt), params))


def test_log_analytics_event_inserts_expected_payload_shape():
    db = FakeDB()
    log_analytics_event(
        db,
        event_name="mutual_match",
        user_id="00000000-0000-0000-0000-000000000123",
        properties={"conversation_id": "abc"},
    )
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "INSERT INTO analytics_event" in sql
    assert params["event_name"] == "mutual_match"
    assert params["user_id"] == "00000000-0000-0000-0000-000000000123"
    assert json.loads(params["properties"]) == {"conversation_id": "abc"}
    assert params["source"] == "api"


def test_log_analytics_event_allows_anonymous_events():
    db = FakeDB()
    log_analytics_event(db, event_name="app_opened")
    _, params = db.calls[0]
    assert params["user_id"] == ""
    assert json.loads(params["properties"]) == {}


def test_record_event_commits_its_own_session(monkeypatch):
    from realsingles.services import events

    class FakeSession(FakeDB):
        committed = False

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def commit(self):
            self.committed = True

    session = FakeSession()
    monkeypatch.setattr(events, "SessionLocal", lambda: session)
    events.record_event("login_success", "00000000-0000-0000-0000-000000000001", {"method": "password"})
    assert session.committed is True
    assert session.calls[0][1]["event_name"] == "login_success"
