"""ABOUTME: End-to-end tests for response security headers and the security endpoints
ABOUTME: Header presence over https, the admin-only audit, and CSP report intake"""

from unittest.mock import patch

import pyotp
import pytest
import structlog
from flask import Flask
from flask.testing import FlaskClient

from communityguard.service_layer import csp_reports
from tests.e2e.helpers import csrf_headers, sign_in
from tests.fakes import FakeCounterStore

HTTPS = "https://localhost"


class TestResponseHeaders:
    def test_security_headers_on_every_response(self, client: FlaskClient):
        response = client.get("/api/security/test", base_url=HTTPS)

        assert response.status_code == 200
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-XSS-Protection"] == "1; mode=block"
        assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert response.headers["Cross-Origin-Opener-Policy"] == "same-origin"
        assert "camera=(self)" in response.headers["Permissions-Policy"]

    def test_hsts_over_https(self, client: FlaskClient):
        hsts = client.get("/api/security/test", base_url=HTTPS).headers["Strict-Transport-Security"]

        assert "max-age=31536000" in hsts
        assert "includeSubDomains" in hsts
        assert "preload" in hsts

    def test_csp_has_nonce_and_report_uri(self, client: FlaskClient):
        csp = client.get("/api/security/test", base_url=HTTPS).headers["Content-Security-Policy"]

        assert "default-src 'self'" in csp
        assert "'nonce-" in csp
        assert "report-uri http://localhost:5000/api/security/csp-report" in csp

    def test_api_responses_are_not_cached(self, client: FlaskClient):
        response = client.get("/api/security/test")

        assert "no-store" in response.headers["Cache-Control"]
        assert response.headers["Pragma"] == "no-cache"
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5000"
        assert response.headers["Access-Control-Allow-Credentials"] == "true"


@pytest.fixture
def admin_client(app: Flask, client: FlaskClient, sqlite_services, user_id) -> FlaskClient:
    app.config["SECURITY_ADMIN_USER_IDS"] = [user_id]
    sign_in(client, sqlite_services, user_id)
    return client


class TestSecurityAudit:
    def test_audit_reports_a_strong_score(self, admin_client: FlaskClient):
        response = admin_client.get("/api/security/audit")

        assert response.status_code == 200
        data = response.get_json()
        assert data["score"] >= 90
        assert data["valid"] is True
        assert data["missing"] == []
        assert data["headers"]["Content-Security-Policy"]["present"] is True
        assert data["headers"]["Strict-Transport-Security"]["severity"] == "high"
        assert "timestamp" in data
        assert isinstance(data["recommendations"], list)

    def test_audit_keeps_the_callers_request_state(self, admin_client: FlaskClient, counter_store: FakeCounterStore):
        response = admin_client.get(
            "/api/security/audit", headers={"X-Request-ID": "outer-id", "X-Forwarded-For": "203.0.113.9"}
        )

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "outer-id"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert counter_store.get("rate_limit:api:203.0.113.9") == 1
        assert counter_store.get("rate_limit:api:127.0.0.1") is None
        log_context = structlog.contextvars.get_contextvars()
        assert log_context["request_id"] == "outer-id"
        assert log_context["path"] == "/api/security/audit"

    def test_audit_needs_authentication(self, client: FlaskClient):
        assert client.get("/api/security/audit").status_code == 401

    def test_audit_is_for_security_admins_only(self, client, sqlite_services, user_id):
        sign_in(client, sqlite_services, user_id)

        response = client.get("/api/security/audit")

        assert response.status_code == 403
        assert response.get_json()["error"] == "Forbidden"

    def test_audit_needs_two_factor_when_enabled(self, admin_client: FlaskClient, sqlite_services, user_id):
        setup = sqlite_services.two_factor.setup(user_id)
        sqlite_services.two_factor.enable(user_id, pyotp.TOTP(setup.secret).now())

        blocked = admin_client.get("/api/security/audit")
        assert blocked.status_code == 403
        assert blocked.get_json()["code"] == "TWO_FACTOR_REQUIRED"

        headers = csrf_headers(admin_client)
        verified = admin_client.post("/api/auth/2fa/verify", json={"token": setup.backup_codes[0]}, headers=headers)
        assert verified.status_code == 200

        assert admin_client.get("/api/security/audit").status_code == 200


class TestCspReport:
    def test_critical_violation_is_accepted_and_logged_as_error(self, client: FlaskClient):
        report = {
            "csp-report": {
                "document-uri": "https://app.example.org/dashboard",
                "violated-directive": "script-src 'self'",
                "effective-directive": "script-src-elem",
                "blocked-uri": "https://evil.example.com/x.js",
            }
        }
        with patch.object(csp_reports, "logger") as logger:
            response = client.post("/api/security/csp-report", json=report)

        assert response.status_code == 204
        assert response.data == b""
        logger.error.assert_called_once()

    def test_report_sent_as_csp_report_content_type(self, client: FlaskClient):
        response = client.post(
            "/api/security/csp-report",
            data='{"csp-report": {"violated-directive": "img-src", "blocked-uri": "https://img.example.net/a.png"}}',
            content_type="application/csp-report",
        )

        assert response.status_code == 204

    def test_extension_noise_is_accepted_but_not_escalated(self, client: FlaskClient):
        report = {"csp-report": {"violated-directive": "script-src", "blocked-uri": "chrome-extension://abcdef"}}
        with patch.object(csp_reports, "logger") as logger:
            response = client.post("/api/security/csp-report", json=report)

        assert response.status_code == 204
        logger.error.assert_not_called()
        logger.warning.assert_not_called()

    @pytest.mark.parametrize("body", ['{"not-a-report": {}}', '{"csp-report": "nope"}', "not json"])
    def test_malformed_reports_are_rejected(self, client: FlaskClient, body: str):
        response = client.post("/api/security/csp-report", data=body, content_type="application/json")

        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid CSP report"}


class TestRequestId:
    def test_generated_when_absent(self, client: FlaskClient):
        request_id = client.get("/api/security/test").headers["X-Request-ID"]
        assert len(request_id) == 32

    def test_echoes_the_callers_id(self, client: FlaskClient):
        response = client.get("/api/security/test", headers={"X-Request-ID": "trace-42"})
        assert response.headers["X-Request-ID"] == "trace-42"
