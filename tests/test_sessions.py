# Tests for login sessions and the /auth routes.
# Created: 2026-10-19

from datetime import UTC, datetime, timedelta

from panelauth.api.oauth2.models import LoginSession


class TestSessionManager:
    def test_create_and_resolve(self, sessions, user):
        token = sessions.create(user)
        session = sessions.resolve(token)
        assert session.user_id == user.user_id
        assert session.email == user.email
        assert session.expires_at - session.created_at == timedelta(days=1)

    def test_unknown_and_empty(self, sessions):
        assert sessions.resolve("nope") is None
        assert sessions.resolve(None) is None
        assert sessions.resolve("") is None

    def test_destroy(self, sessions, user):
        token = sessions.create(user)
        sessions.destroy(token)
        assert sessions.resolve(token) is None

    def test_expired_session_dropped(self, sessions, storage, user):
        past = datetime.now(UTC) - timedelta(hours=1)
        storage.store_session(
            LoginSession(
                session_token="old",
                user_id=user.user_id,
                email=user.email,
                created_at=past - timedelta(days=1),
                expires_at=past,
            ),
            ttl=3600,
        )
        assert sessions.resolve("old") is None
        assert storage.get_session("old") is None

    def test_deleted_user_session_dropped(self, sessions, users, user):
        token = sessions.create(user)
        users.soft_delete(user.user_id)
        assert sessions.resolve(token) is None


class TestAuthRoutes:
    def test_current_user(self, client, session_cookie, user):
        resp = client.get("/auth/user", headers=session_cookie)
        assert resp.status_code == 200
        body = resp.json()["user"]
        assert body["user_id"] == user.user_id
        assert body["email"] == "alice@example.com"
        assert body["created_at"]

    def test_current_user_requires_session(self, client):
        assert client.get("/auth/user").status_code == 401

    def test_logout(self, client, session_cookie):
        resp = client.post("/auth/logout", headers=session_cookie)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert "panel_session=" in resp.headers["set-cookie"]
        assert client.get("/auth/user", headers=session_cookie).status_code == 401

    def test_logout_without_session(self, client):
        resp = client.post("/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}
