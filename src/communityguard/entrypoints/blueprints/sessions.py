"""ABOUTME: JSON API endpoints for the caller's own sessions
ABOUTME: Lists active sessions, revokes one or all others, and signs out"""

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue
from flask_login import current_user, login_required

from communityguard.domain.sessions import UserSession
from communityguard.entrypoints.decorators import (
    clear_two_factor_marker,
    get_services,
    rate_limited,
    require_two_factor,
)
from communityguard.entrypoints.extensions import SESSION_COOKIE_NAME
from communityguard.translations import _

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/auth")


def _session_to_dict(session: UserSession, current_session_id: str) -> dict[str, object]:
    return {
        "id": session.id,
        "deviceInfo": session.device_info,
        "ipAddress": session.ip_address,
        "createdAt": session.created_at.isoformat(),
        "lastActivity": session.last_activity.isoformat(),
        "expiresAt": session.expires_at.isoformat(),
        "isCurrent": session.id == current_session_id,
    }


@sessions_bp.route("/sessions", methods=["GET"])
@login_required
def list_sessions() -> ResponseReturnValue:
    """Active sessions for the caller, most recently active first."""
    sessions = get_services().sessions.get_user_sessions(current_user.id)
    return jsonify({
        "sessions": [_session_to_dict(s, current_user.session_id) for s in sessions],
        "timeoutMinutes": current_app.config["SESSION_TIMEOUT_MINUTES"],
        "warningMinutes": current_app.config["SESSION_WARNING_MINUTES"],
    })


@sessions_bp.route("/sessions/revoke", methods=["POST"])
@login_required
@rate_limited("auth")
def revoke_session() -> ResponseReturnValue:
    data = request.get_json(silent=True) or {}
    session_id = data.get("sessionId", "")
    if not isinstance(session_id, str) or not session_id:
        return jsonify({"error": _("Session ID is required"), "message": _("Session ID is required")}), 400

    result = get_services().sessions.revoke_session(session_id, current_user.id)
    if not result.success:
        return jsonify({"error": result.error, "message": result.message}), 400
    return jsonify({"success": True, "message": result.message})


@sessions_bp.route("/sessions/revoke-others", methods=["POST"])
@login_required
@require_two_factor
@rate_limited("auth")
def revoke_other_sessions() -> ResponseReturnValue:
    result = get_services().sessions.revoke_all_other_sessions(current_user.session_id, current_user.id)
    return jsonify({"success": True, "message": result.message, "revokedCount": result.count})


@sessions_bp.route("/sign-out", methods=["POST"])
@login_required
def sign_out() -> ResponseReturnValue:
    """Revoke the current session and drop its cookie and two-factor marker."""
    get_services().sessions.revoke_session(current_user.session_id, current_user.id)
    clear_two_factor_marker()
    response = jsonify({"success": True, "message": _("Signed out")})
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return response
