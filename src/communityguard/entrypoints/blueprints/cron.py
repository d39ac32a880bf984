"""ABOUTME: Scheduled maintenance endpoints called by an external cron
ABOUTME: Authenticated with a shared bearer secret rather than a user session"""

import hmac

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from communityguard.entrypoints.decorators import get_services
from communityguard.translations import _

cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET", "")
    if not secret:
        return False
    supplied = request.headers.get("Authorization", "")
    return hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode())


@cron_bp.route("/cleanup-sessions", methods=["GET", "POST"])
def cleanup_sessions() -> ResponseReturnValue:
    if not _authorized():
        current_app.logger.warning("Rejected cron call to cleanup-sessions")
        return jsonify({"error": _("Unauthorized")}), 401

    expired = get_services().sessions.cleanup_expired_sessions()
    return jsonify({"success": True, "expiredSessions": expired})
