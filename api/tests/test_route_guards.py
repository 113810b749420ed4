import pytest

pytest.importorskip("fastapi")

import realsingles.main as m


def _iter_http_routes():
    for route in m.app.routes:
        path = getattr(route, "path", None)
        methods = getattr(route, "methods", None)
        if not path or not methods:
            continue
        for method in sorted(methods):
            if method in {"HEAD", "OPTIONS"}:
                continue
            yield method, path


def test_no_duplicate_http_method_path_pairs():
    seen: set[tuple[str, str]] = set()
    duplicates: list[tuple[str, str]] = []
    for pair in _iter_http_routes():
        if pair in seen:
            duplicates.append(pair)
        seen.add(pair)
    assert duplicates == []


def test_api_routes_live_under_api_prefix():
    paths = {path for _, path in _iter_http_routes()}
    assert "/health" in paths
    for path in paths - {"/health"}:
        if path.startswith(("/docs", "/redoc", "/openapi")):
            continue
        assert path.startswith("/api/"), path


@pytest.mark.parametrize(
    "method,path",
    [
        ("POST", "/api/auth/register"),
        ("POST", "/api/auth/login"),
        ("POST", "/api/auth/refresh"),
        ("POST", "/api/auth/logout"),
        ("GET", "/api/onboarding/steps"),
        ("GET", "/api/onboarding/state"),
        ("POST", "/api/onboarding/steps/{step_id}"),
        ("POST", "/api/onboarding/steps/{step_id}/skip"),
        ("GET", "/api/profile/completion"),
        ("POST", "/api/profile/completion"),
        ("GET", "/api/discover/profiles"),
        ("GET", "/api/discover/nearby"),
        ("POST", "/api/matches"),
        ("GET", "/api/matches"),
        ("GET", "/api/matches/likes-received"),
        ("GET", "/api/matches/likes-sent"),
        ("GET", "/api/matches/undo"),
        ("POST", "/api/matches/undo"),
        ("DELETE", "/api/matches/{user_id}"),
        ("GET", "/api/conversations"),
        ("POST", "/api/conversations"),
        ("GET", "/api/conversations/{conversation_id}"),
        ("PATCH", "/api/conversations/{conversation_id}"),
        ("GET", "/api/conversations/{conversation_id}/messages"),
        ("POST", "/api/conversations/{conversation_id}/messages"),
        ("POST", "/api/conversations/{conversation_id}/read"),
        ("GET", "/api/products"),
        ("GET", "/api/orders"),
        ("POST", "/api/orders"),
        ("GET", "/api/users/me"),
        ("PATCH", "/api/users/me"),
        ("GET", "/api/users/{user_id}"),
        ("GET", "/api/users/me/gallery"),
        ("POST", "/api/users/me/gallery"),
        ("DELETE", "/api/users/me/gallery/{item_id}"),
        ("POST", "/api/users/me/gallery/{item_id}/primary"),
        ("GET", "/api/favorites"),
        ("POST", "/api/favorites"),
        ("GET", "/api/filters"),
        ("PUT", "/api/filters"),
        ("DELETE", "/api/filters"),
        ("GET", "/api/blocks"),
        ("POST", "/api/blocks"),
        ("DELETE", "/api/blocks/{user_id}"),
        ("POST", "/api/reports"),
        ("POST", "/api/admin/algorithm-simulator"),
        ("GET", "/api/admin/algorithm-simulator/users"),
    ],
)
def test_expected_routes_are_registered(method, path):
    assert (method, path) in set(_iter_http_routes())
