"""ABOUTME: Security header audit, header test endpoint and CSP violation report intake
ABOUTME: The audit inspects the headers this app actually sends on its own test response"""

import contextvars
from datetime import UTC, datetime

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from communityguard.entrypoints.decorators import (
    SELF_AUDIT_ENVIRON_KEY,
    client_ip,
    require_security_admin,
    require_two_factor,
)
from communityguard.service_layer.csp_reports import record_csp_violation
from communityguard.service_layer.security_headers import audit_security_headers, validate_security_headers
from communityguard.translations import _

security_bp = Blueprint("security", __name__, url_prefix="/api/security")


@security_bp.route("/test", methods=["GET"])
def headers_test() -> ResponseReturnValue:
    """A plain response carrying the full security header set."""
    return jsonify({"message": _("Security headers test endpoint"), "timestamp": datetime.now(UTC).isoformat()})


def _own_response_headers() -> dict[str, str]:
    """Headers of a real /api/security/test response.

    The request runs in a copied context under a fresh app context, so it gets its
    own `g` and structlog context and the caller's request id and rate limit state
    are left alone.
    """
    app = current_app._get_current_object()  # type: ignore[attr-defined]

    def fetch() -> dict[str, str]:
        with app.app_context():
            # https so HSTS is included, as it would be behind the production proxy
            response = app.test_client().get(
                "/api/security/test",
                base_url="https://localhost",
                environ_base={SELF_AUDIT_ENVIRON_KEY: True},
            )
            return dict(response.headers.items())

    return contextvars.copy_context().run(fetch)


@security_bp.route("/audit", methods=["GET"])
@require_security_admin
@require_two_factor
def audit() -> ResponseReturnValue:
    headers = _own_response_headers()
    result = audit_security_headers(headers)
    validation = validate_security_headers(headers)

    body = result.to_dict()
    body["valid"] = validation.is_valid
    body["missing"] = validation.missing
    return jsonify(body)


@security_bp.route("/csp-report", methods=["POST"])
def csp_report() -> ResponseReturnValue:
    """Browser CSP violation reports. Accepts application/csp-report and JSON bodies."""
    data = request.get_json(force=True, silent=True)
    report = data.get("csp-report") if isinstance(data, dict) else None
    if not isinstance(report, dict):
        return jsonify({"error": _("Invalid CSP report")}), 400

    record_csp_violation(report, user_agent=request.headers.get("User-Agent", ""), client_ip=client_ip())
    return "", 204
