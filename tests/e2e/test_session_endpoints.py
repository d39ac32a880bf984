"""ABOUTME: End-to-end tests for the session management API
ABOUTME: Listing, revoking one session, revoking the others and signing out over HTTP"""

from unittest.mock import patch

from flask import Flask, make_response
from flask.testing import FlaskClient
from sqlalchemy.exc import OperationalError

from communityguard.entrypoints.decorators import establish_session
from communityguard.entrypoints.extensions import SESSION_COOKIE_NAME
from tests.e2e.helpers import csrf_headers, sign_in


class TestAuthentication:
    def test_endpoints_need_a_session(self, client: FlaskClient):
        response = client.get("/api/auth/sessions")

        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required", "code": "UNAUTHENTICATED"}

    def test_unknown_session_cookie_is_unauthenticated(self, client: FlaskClient):
        client.set_cookie(SESSION_COOKIE_NAME, "not-a-real-session")
        assert client.get("/api/auth/sessions").status_code == 401

    def test_revoke_needs_a_session(self, client: FlaskClient):
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke", json={"sessionId": "abc"}, headers=headers)

        assert response.status_code == 401


class TestListSessions:
    def test_lists_active_sessions_and_marks_current(self, client, sqlite_services, user_id):
        other = sqlite_services.sessions.create_session(user_id, "10.0.0.2", "other", device_info="Firefox on Linux")
        current = sign_in(client, sqlite_services, user_id)

        response = client.get("/api/auth/sessions")

        assert response.status_code == 200
        data = response.get_json()
        assert data["timeoutMinutes"] == 60
        assert data["warningMinutes"] == 5
        by_id = {s["id"]: s for s in data["sessions"]}
        assert set(by_id) == {current, other.session_id}
        assert by_id[current]["isCurrent"] is True
        assert by_id[other.session_id]["isCurrent"] is False
        assert by_id[other.session_id]["deviceInfo"] == "Firefox on Linux"
        assert by_id[other.session_id]["ipAddress"] == "10.0.0.2"

    def test_does_not_list_other_users_sessions(self, client, sqlite_services, user_id, other_user_id):
        sqlite_services.sessions.create_session(other_user_id, "10.0.0.3", "someone else")
        sign_in(client, sqlite_services, user_id)

        data = client.get("/api/auth/sessions").get_json()

        assert len(data["sessions"]) == 1


class TestRevokeSession:
    def test_revoke_another_session(self, client, sqlite_services, user_id):
        other = sqlite_services.sessions.create_session(user_id, "10.0.0.2", "other")
        sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke", json={"sessionId": other.session_id}, headers=headers)

        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert sqlite_services.sessions.validate_session(other.session_id).is_valid is False

    def test_missing_session_id_is_a_bad_request(self, client, sqlite_services, user_id):
        sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke", json={}, headers=headers)

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_cannot_revoke_another_users_session(self, client, sqlite_services, user_id, other_user_id):
        theirs = sqlite_services.sessions.create_session(other_user_id, "10.0.0.3", "someone else")
        sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke", json={"sessionId": theirs.session_id}, headers=headers)

        assert response.status_code == 400
        data = response.get_json()
        assert set(data) == {"error", "message"}
        assert sqlite_services.sessions.validate_session(theirs.session_id).is_valid is True

    def test_revoking_the_current_session_logs_the_client_out(self, client, sqlite_services, user_id):
        current = sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke", json={"sessionId": current}, headers=headers)

        assert response.status_code == 200
        assert client.get("/api/auth/sessions").status_code == 401


class TestRevokeOtherSessions:
    def test_revokes_everything_but_the_current_session(self, client, sqlite_services, user_id):
        others = [sqlite_services.sessions.create_session(user_id, "10.0.0.2", "other") for _ in range(2)]
        current = sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sessions/revoke-others", headers=headers)

        assert response.status_code == 200
        assert response.get_json()["revokedCount"] == 2
        for created in others:
            assert sqlite_services.sessions.validate_session(created.session_id).is_valid is False
        assert sqlite_services.sessions.validate_session(current).is_valid is True


class TestSignOut:
    def test_sign_out_revokes_session_and_clears_cookie(self, client, sqlite_services, user_id):
        current = sign_in(client, sqlite_services, user_id)
        headers = csrf_headers(client)

        response = client.post("/api/auth/sign-out", headers=headers)

        assert response.status_code == 200
        assert sqlite_services.sessions.validate_session(current).is_valid is False
        assert client.get_cookie(SESSION_COOKIE_NAME) is None


class TestEstablishSession:
    def test_sets_cookie_for_a_stored_session(self, app: Flask, sqlite_services, user_id):
        with app.test_request_context("/", headers={"User-Agent": "Mozilla/5.0 (Macintosh) Safari/605.1.15"}):
            response = make_response("ok")
            created = establish_session(response, user_id)

        set_cookie = response.headers["Set-Cookie"]
        assert set_cookie.startswith(f"{SESSION_COOKIE_NAME}={created.session_id}")
        assert "HttpOnly" in set_cookie
        assert "SameSite=Lax" in set_cookie

        validation = sqlite_services.sessions.validate_session(created.session_id)
        assert validation.is_valid is True
        assert validation.user_id == user_id


class TestSessionStoreFailure:
    def test_store_down_denies_access_with_a_500(self, client: FlaskClient, sqlite_services, user_id):
        sign_in(client, sqlite_services, user_id)
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with patch.object(sqlite_services.sessions, "uow_factory", side_effect=error):
            response = client.get("/api/auth/sessions")

        assert response.status_code == 500
        assert response.get_json()["error"] == "Internal server error"
        assert "sessions" not in response.get_json()
