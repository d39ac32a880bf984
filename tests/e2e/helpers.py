"""ABOUTME: Shared helpers for the end-to-end tests
ABOUTME: Signing a test client in with a real session and fetching CSRF headers"""

import uuid

from flask.testing import FlaskClient

from communityguard.bootstrap import Services
from communityguard.entrypoints.extensions import SESSION_COOKIE_NAME
from communityguard.service_layer.csrf_service import CSRF_HEADER_NAME


def sign_in(client: FlaskClient, services: Services, user_id: uuid.UUID, device_info: str = "Pytest") -> str:
    """Create a stored session for the user and put its cookie on the client."""
    created = services.sessions.create_session(
        user_id, ip_address="127.0.0.1", user_agent="pytest", device_info=device_info
    )
    client.set_cookie(SESSION_COOKIE_NAME, created.session_id)
    return created.session_id


def csrf_headers(client: FlaskClient) -> dict[str, str]:
    """Fetch a token, which also sets the cookie, and return the matching request header."""
    response = client.get("/api/csrf-token")
    assert response.status_code == 200
    return {CSRF_HEADER_NAME: response.get_json()["csrfToken"]}
