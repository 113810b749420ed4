import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import realsingles.main as m
from realsingles import repo
from realsingles.auth import security
from realsingles.routes import auth as auth_routes
from realsingles.services.rate_limit import limiter

USER_ID = "11111111-1111-1111-1111-111111111111"


@pytest.fixture
def store(monkeypatch):
    limiter.reset()
    state = {"users_by_email": {}, "refresh": {}, "revoked": []}

    def create_user(email: str, password_hash: str, display_name: str | None = None):
        user = {
            "id": USER_ID,
            "email": email,
            "password_hash": password_hash,
            "display_name": display_name,
            "status": "active",
            "points_balance": 0,
        }
        state["users_by_email"][email] = user
        return user

    def get_user_by_id(user_id: str):
        for user in state["users_by_email"].values():
            if user["id"] == user_id:
                return user
        return None

    def create_refresh_token_row(user_id: str, token_hash: str, expires_at):
        state["refresh"][token_hash] = {"user_id": user_id, "token_hash": token_hash, "expires_at": expires_at}

    def revoke_refresh_token(token_hash: str):
        state["revoked"].append(token_hash)
        return state["refresh"].pop(token_hash, None) is not None

    monkeypatch.setattr(security, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(auth_routes, "record_event", lambda *args, **kwargs: None)
    monkeypatch.setattr(repo, "create_user", create_user)
    monkeypatch.setattr(repo, "get_user_by_email", lambda email: state["users_by_email"].get(email))
    monkeypatch.setattr(repo, "get_user_by_id", get_user_by_id)
    monkeypatch.setattr(repo, "touch_last_active", lambda user_id: None)
    monkeypatch.setattr(repo, "create_refresh_token_row", create_refresh_token_row)
    monkeypatch.setattr(repo, "get_active_refresh_token", lambda token_hash: state["refresh"].get(token_hash))
    monkeypatch.setattr(repo, "revoke_refresh_token", revoke_refresh_token)
    monkeypatch.setattr(
        repo,
        "get_profile",
        lambda user_id: {"user_id": user_id, "display_name": "Ava", "profile_completion_skipped": []},
    )
    monkeypatch.setattr(repo, "count_gallery_images", lambda user_id: 0)
    return state


def _register(client: TestClient, **headers):
    return client.post(
        "/api/auth/register",
        json={"email": "Ava@Example.com", "password": "verysecurepw", "display_name": "Ava"},
        headers=headers,
    )


def test_register_sets_session_cookie(store):
    client = TestClient(m.app)
    res = _register(client)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["msg"] == "Account created"
    assert body["data"]["user"]["email"] == "ava@example.com"
    assert "access_token" not in body["data"]
    assert "rs_session" in res.cookies
    assert "ava@example.com" in store["users_by_email"]


def test_register_bearer_mode_returns_tokens(store):
    client = TestClient(m.app)
    res = _register(client, **{"X-Auth-Mode": "bearer"})
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert security.decode_access_token(data["access_token"])["sub"] == USER_ID


def test_register_rejects_duplicate_and_bad_input(store):
    client = TestClient(m.app)
    assert _register(client).status_code == 201

    dup = _register(client)
    assert dup.status_code == 409
    assert dup.json() == {"success": False, "msg": "Email already registered"}

    bad_email = client.post("/api/auth/register", json={"email": "nope", "password": "verysecurepw"})
    assert bad_email.status_code == 400
    assert bad_email.json()["msg"] == "Invalid email format"

    short = client.post("/api/auth/register", json={"email": "b@example.com", "password": "short"})
    assert short.status_code == 400


def test_login_checks_password_and_status(store):
    client = TestClient(m.app)
    _register(client)

    wrong = client.post("/api/auth/login", json={"email": "ava@example.com", "password": "wrong-password"})
    assert wrong.status_code == 401
    assert wrong.json()["msg"] == "Invalid credentials"

    missing = client.post("/api/auth/login", json={"email": "ava@example.com"})
    assert missing.status_code == 400

    good = client.post("/api/auth/login", json={"email": "AVA@example.com", "password": "verysecurepw"})
    assert good.status_code == 200
    assert good.json()["data"]["user"]["id"] == USER_ID

    store["users_by_email"]["ava@example.com"]["status"] = "suspended"
    blocked = client.post("/api/auth/login", json={"email": "ava@example.com", "password": "verysecurepw"})
    assert blocked.status_code == 403


def test_cookie_session_reaches_protected_route(store):
    client = TestClient(m.app)
    _register(client)
    res = client.get("/api/users/me")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["user"]["id"] == USER_ID
    assert data["completion"]["can_start_matching"] is False


def test_bearer_header_reaches_protected_route(store):
    client = TestClient(m.app)
    token = _register(client, **{"X-Auth-Mode": "bearer"}).json()["data"]["access_token"]
    client.cookies.clear()
    res = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200


def test_unauthenticated_request_uses_error_envelope(store):
    client = TestClient(m.app)
    res = client.get("/api/users/me")
    assert res.status_code == 401
    body = res.json()
    assert body["success"] is False
    assert body["msg"].startswith("Not authenticated")

    garbage = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert garbage.status_code == 401


def test_refresh_rotates_token(store):
    client = TestClient(m.app)
    first = _register(client, **{"X-Auth-Mode": "bearer"}).json()["data"]["refresh_token"]

    rotated = client.post("/api/auth/refresh", json={"refresh_token": first}, headers={"X-Auth-Mode": "bearer"})
    assert rotated.status_code == 200
    second = rotated.json()["data"]["refresh_token"]
    assert second != first
    assert security.hash_refresh_token(first) in store["revoked"]

    replay = client.post("/api/auth/refresh", json={"refresh_token": first})
    assert replay.status_code == 401
    assert replay.json()["msg"] == "Invalid refresh token"

    missing = client.post("/api/auth/refresh", json={})
    assert missing.status_code == 400


def test_concurrent_refresh_with_same_token_issues_one_session(store, monkeypatch):
    client = TestClient(m.app)
    token = _register(client, **{"X-Auth-Mode": "bearer"}).json()["data"]["refresh_token"]
    row = dict(store["refresh"][security.hash_refresh_token(token)])
    # both requests read the row before either revokes it
    monkeypatch.setattr(repo, "get_active_refresh_token", lambda token_hash: row)

    winner = client.post("/api/auth/refresh", json={"refresh_token": token}, headers={"X-Auth-Mode": "bearer"})
    loser = client.post("/api/auth/refresh", json={"refresh_token": token}, headers={"X-Auth-Mode": "bearer"})
    assert winner.status_code == 200
    assert loser.status_code == 401
    assert loser.json()["msg"] == "Invalid refresh token"
    assert "rs_session" not in loser.cookies


def test_logout_clears_cookie_and_revokes(store):
    client = TestClient(m.app)
    refresh = _register(client, **{"X-Auth-Mode": "bearer"}).json()["data"]["refresh_token"]
    res = client.post("/api/auth/logout", json={"refresh_token": refresh})
    assert res.status_code == 200
    assert res.json()["msg"] == "Logged out"
    assert security.hash_refresh_token(refresh) in store["revoked"]
    assert client.get("/api/users/me").status_code == 401
