"""ABOUTME: CSRF token issue endpoint
ABOUTME: Sets the signed token cookie and returns the token for the client to echo in a header"""

from flask import Blueprint, current_app, jsonify
from flask.typing import ResponseReturnValue

from communityguard.entrypoints.decorators import get_services
from communityguard.service_layer.csrf_service import CSRF_COOKIE_NAME, TOKEN_MAX_AGE

csrf_bp = Blueprint("csrf", __name__, url_prefix="/api")


@csrf_bp.route("/csrf/token", methods=["GET"])
@csrf_bp.route("/csrf-token", methods=["GET"])
def issue_token() -> ResponseReturnValue:
    """Issue a fresh CSRF token."""
    token = get_services().csrf.issue()
    response = jsonify({"csrfToken": token.token})
    response.set_cookie(
        CSRF_COOKIE_NAME,
        token.to_cookie_value(),
        max_age=int(TOKEN_MAX_AGE.total_seconds()),
        path="/",
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        httponly=True,
        samesite="Strict",
    )
    return response
