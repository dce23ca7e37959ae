"""
tests/test_api_routes.py -- Integration tests for the public and private listeners.

These tests exercise the full stack: FastAPI routing -> request model
validation -> SessionService -> Store -> response model serialization ->
exception handlers. Both apps share the service from the `api` fixture, so a
token issued on the public side resolves on the private side.

Coverage:
  - POST /user/create: 201 with id, 409 on duplicate login, 400 on bad body
  - POST /user/login: 302 with token pair and no-store, 400 on bad credentials
  - POST /user/refresh: 302 with new pair, old access stops resolving
  - POST /user/edit and /user/give: 400 wrong_permissions vs 200 as admin
  - POST /user/delete: account and its tokens are gone
  - POST /user/logout: token revoked, unknown token accepted
  - POST /user/id and /user/permissions on the private listener only
  - Deadline exceeded maps to 503

Fixtures used (from conftest.py):
  - api: (public_client, private_client, service)
  - admin: (admin_id, token) created through the same service
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from api.main import create_public_app
from auth.models import Token
from auth.permissions import ALL_PERMISSIONS, Permission
from auth.service import SessionService

Clients = tuple[TestClient, TestClient, SessionService]


def _create(client: TestClient, login: str = "alice", password: str = "pw1") -> str:
    resp = client.post("/user/create", json={"login": login, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def _login(client: TestClient, login: str = "alice", password: str = "pw1") -> dict:
    resp = client.post("/user/login", json={"login": login, "password": password})
    assert resp.status_code == 302, resp.text
    return resp.json()


class TestCreate:
    def test_create_returns_id(self, api: Clients) -> None:
        public, _private, service = api
        user_id = _create(public)
        assert service.user_info(user_id).login == "alice"
        assert service.user_info(user_id).permissions == 0

    def test_duplicate_login_conflict(self, api: Clients) -> None:
        public, _private, _service = api
        _create(public)
        resp = public.post("/user/create", json={"login": "alice", "password": "other"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_user"

    def test_missing_password_is_bad_request(self, api: Clients) -> None:
        public, _private, _service = api
        resp = public.post("/user/create", json={"login": "alice"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_overlong_password_is_bad_request(self, api: Clients) -> None:
        public, _private, _service = api
        resp = public.post("/user/create", json={"login": "alice", "password": "é" * 40})
        assert resp.status_code == 400

    def test_non_json_body_is_bad_request(self, api: Clients) -> None:
        public, _private, _service = api
        resp = public.post("/user/create", content=b"login=alice", headers={"Content-Type": "text/plain"})
        assert resp.status_code == 400


class TestLogin:
    def test_login_returns_token_pair(self, api: Clients) -> None:
        public, _private, _service = api
        _create(public)
        resp = public.post("/user/login", json={"login": "alice", "password": "pw1"})
        assert resp.status_code == 302
        assert resp.headers["cache-control"] == "no-store"
        assert "location" not in resp.headers
        body = resp.json()
        assert set(body) == {"access", "refresh", "expiration"}
        assert body["access"] != body["refresh"]

    def test_wrong_password(self, api: Clients) -> None:
        public, _private, _service = api
        _create(public)
        resp = public.post("/user/login", json={"login": "alice", "password": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_user"

    def test_unknown_login_same_error(self, api: Clients) -> None:
        public, _private, _service = api
        resp = public.post("/user/login", json={"login": "ghost", "password": "pw1"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_user"


class TestRefresh:
    def test_refresh_rotates(self, api: Clients) -> None:
        public, private, _service = api
        user_id = _create(public)
        old = _login(public)
        resp = public.post("/user/refresh", json={"access": old["access"], "refresh": old["refresh"]})
        assert resp.status_code == 302
        new = resp.json()
        assert new["access"] != old["access"]
        assert private.post("/user/id", json={"token": new["access"]}).json() == {"id": user_id}
        stale = private.post("/user/id", json={"token": old["access"]})
        assert stale.status_code == 400
        assert stale.json()["error"]["code"] == "token_not_found"

    def test_refresh_mismatch(self, api: Clients) -> None:
        public, _private, _service = api
        _create(public)
        pair = _login(public)
        resp = public.post("/user/refresh", json={"access": pair["access"], "refresh": "wrong"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_refresh"


class TestPermissionGatedRoutes:
    def test_edit_without_permission(self, api: Clients) -> None:
        public, _private, _service = api
        _create(public, "alice")
        bob = _create(public, "bob")
        token = _login(public)["access"]
        resp = public.post(
            "/user/edit",
            json={"token": token, "id": bob, "newLogin": "robert", "newPassword": "pw2"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "wrong_permissions"

    def test_edit_as_admin(self, api: Clients, admin) -> None:
        public, _private, _service = api
        _admin_id, token = admin
        bob = _create(public, "bob")
        resp = public.post(
            "/user/edit",
            json={"token": token.access, "id": bob, "newLogin": "robert", "newPassword": "pw2"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"id": bob, "login": "robert", "permissions": 0}
        _login(public, "robert", "pw2")

    def test_give_as_admin(self, api: Clients, admin) -> None:
        public, private, _service = api
        _admin_id, token = admin
        _create(public, "bob")
        bob = private.post("/user/id", json={"token": _login(public, "bob")["access"]}).json()["id"]
        bits = int(Permission.QUERY_USERS | Permission.MANAGE_USERS)
        resp = public.post("/user/give", json={"token": token.access, "id": bob, "permission": bits})
        assert resp.status_code == 200
        bob_token = _login(public, "bob")["access"]
        perms = private.post("/user/permissions", json={"token": bob_token}).json()
        assert perms == {"permissions": bits, "names": ["QUERY_USERS", "MANAGE_USERS"]}

    def test_give_without_permission(self, api: Clients) -> None:
        public, _private, _service = api
        alice = _create(public)
        token = _login(public)["access"]
        resp = public.post("/user/give", json={"token": token, "id": alice, "permission": ALL_PERMISSIONS})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "wrong_permissions"

    def test_give_invalid_bitmask(self, api: Clients, admin) -> None:
        public, _private, _service = api
        _admin_id, token = admin
        bob = _create(public, "bob")
        resp = public.post("/user/give", json={"token": token.access, "id": bob, "permission": 1 << 20})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_permissions"

    def test_give_oversized_id(self, api: Clients, admin) -> None:
        public, _private, _service = api
        _admin_id, token = admin
        resp = public.post("/user/give", json={"token": token.access, "id": "9" * 30, "permission": 0})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_user"

    def test_give_negative_bitmask(self, api: Clients, admin) -> None:
        public, _private, _service = api
        _admin_id, token = admin
        resp = public.post("/user/give", json={"token": token.access, "id": "1", "permission": -1})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


class TestDeleteAndLogout:
    def test_delete_self(self, api: Clients) -> None:
        public, private, service = api
        user_id = _create(public)
        token = _login(public)["access"]
        resp = public.post("/user/delete", json={"token": token})
        assert resp.status_code == 200
        assert private.post("/user/id", json={"token": token}).status_code == 400
        assert public.post("/user/login", json={"login": "alice", "password": "pw1"}).status_code == 400
        assert all(u.id != user_id for u in service.list_users())

    def test_delete_with_unknown_token(self, api: Clients) -> None:
        public, _private, _service = api
        resp = public.post("/user/delete", json={"token": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "token_not_found"

    def test_logout(self, api: Clients) -> None:
        public, private, _service = api
        _create(public)
        token = _login(public)["access"]
        assert public.post("/user/logout", json={"token": token}).status_code == 200
        assert private.post("/user/id", json={"token": token}).status_code == 400
        assert public.post("/user/logout", json={"token": token}).status_code == 200


class TestPrivateListener:
    def test_id_and_permissions(self, api: Clients, admin) -> None:
        _public, private, _service = api
        admin_id, token = admin
        assert private.post("/user/id", json={"token": token.access}).json() == {"id": admin_id}
        perms = private.post("/user/permissions", json={"token": token.access}).json()
        assert perms["permissions"] == ALL_PERMISSIONS
        assert len(perms["names"]) == len(Permission)

    def test_expired_token(self, api: Clients) -> None:
        public, private, service = api
        user_id = _create(public)
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        service.bind(Token(access="expired-a", refresh="expired-r", expiration=past), user_id)
        first = private.post("/user/id", json={"token": "expired-a"})
        assert first.status_code == 400
        assert first.json()["error"]["code"] == "token_expired"
        second = private.post("/user/id", json={"token": "expired-a"})
        assert second.json()["error"]["code"] == "token_not_found"

    def test_public_routes_not_mounted(self, api: Clients) -> None:
        _public, private, _service = api
        assert private.post("/user/login", json={"login": "a", "password": "b"}).status_code == 404

    def test_private_routes_not_on_public(self, api: Clients) -> None:
        public, _private, _service = api
        assert public.post("/user/id", json={"token": "x"}).status_code == 404


def test_deadline_exceeded_returns_503(store, settings_factory) -> None:
    """A request whose deadline passes before the engine runs is answered with 503."""
    service = SessionService(store, settings_factory(request_timeout_seconds=1e-9))
    with TestClient(create_public_app(service), follow_redirects=False) as client:
        resp = client.post("/user/create", json={"login": "alice", "password": "pw1"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "deadline_exceeded"
    assert service.list_users() == []
