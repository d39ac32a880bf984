"""ABOUTME: JSON API endpoints for two-factor authentication
ABOUTME: Enrollment, verification, disabling, backup code regeneration and status for the caller"""

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from flask_login import current_user, login_required

from communityguard.entrypoints.decorators import (
    clear_two_factor_marker,
    client_ip,
    get_services,
    mark_two_factor_verified,
    rate_limited,
)
from communityguard.translations import _

two_factor_bp = Blueprint("two_factor", __name__, url_prefix="/api/auth/2fa")


def _token_from_body() -> str:
    data = request.get_json(silent=True) or {}
    token = data.get("token", "")
    return token.strip() if isinstance(token, str) else ""


def _missing_token() -> ResponseReturnValue:
    return jsonify({"error": _("Verification code is required")}), 400


@two_factor_bp.route("/setup", methods=["POST"])
@login_required
@rate_limited("auth")
def setup() -> ResponseReturnValue:
    """Start enrollment. The secret and backup codes are only ever shown here."""
    data = request.get_json(silent=True) or {}
    account_name = data.get("accountName", "")
    result = get_services().two_factor.setup(
        current_user.id,
        account_name=account_name if isinstance(account_name, str) else "",
        ip_address=client_ip(),
    )
    if not result.success:
        return jsonify({"error": result.error}), 400
    return jsonify({
        "success": True,
        "secret": result.secret,
        "qrCodeUrl": result.qr_code_url,
        "otpauthUri": result.otpauth_uri,
        "backupCodes": result.backup_codes,
    })


@two_factor_bp.route("/enable", methods=["POST"])
@login_required
@rate_limited("auth")
def enable() -> ResponseReturnValue:
    token = _token_from_body()
    if not token:
        return _missing_token()

    result = get_services().two_factor.enable(current_user.id, token, ip_address=client_ip())
    if not result.success:
        return jsonify({"error": result.error}), 400
    # confirming the code proves possession, so this session counts as verified
    mark_two_factor_verified(current_user.id, current_user.session_id)
    return jsonify({"success": True, "message": result.message})


@two_factor_bp.route("/verify", methods=["POST"])
@login_required
@rate_limited("auth")
def verify() -> ResponseReturnValue:
    token = _token_from_body()
    if not token:
        return _missing_token()

    result = get_services().two_factor.verify(current_user.id, token, ip_address=client_ip())
    if not result.success:
        return jsonify({"error": result.error}), 400
    mark_two_factor_verified(current_user.id, current_user.session_id)
    return jsonify({"success": True, "backupCodeUsed": result.backup_code_used})


@two_factor_bp.route("/disable", methods=["POST"])
@login_required
@rate_limited("auth")
def disable() -> ResponseReturnValue:
    token = _token_from_body()
    if not token:
        return _missing_token()

    result = get_services().two_factor.disable(current_user.id, token, ip_address=client_ip())
    if not result.success:
        return jsonify({"error": result.error}), 400
    clear_two_factor_marker()
    return jsonify({"success": True, "message": result.message})


@two_factor_bp.route("/backup-codes", methods=["POST"])
@login_required
@rate_limited("auth")
def regenerate_backup_codes() -> ResponseReturnValue:
    token = _token_from_body()
    if not token:
        return _missing_token()

    result = get_services().two_factor.regenerate_backup_codes(current_user.id, token, ip_address=client_ip())
    if not result.success:
        return jsonify({"error": result.error}), 400
    return jsonify({"success": True, "backupCodes": result.backup_codes})


@two_factor_bp.route("/status", methods=["GET"])
@login_required
def status() -> ResponseReturnValue:
    result = get_services().two_factor.status(current_user.id)
    return jsonify({
        "isEnabled": result.is_enabled,
        "hasBackupCodes": result.has_backup_codes,
        "backupCodesRemaining": result.backup_codes_remaining,
    })
