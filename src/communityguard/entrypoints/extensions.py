"""ABOUTME: Flask extensions initialization and configuration
ABOUTME: Sets up Flask-Login session authentication, Talisman security headers and Babel"""

import uuid

from flask import Flask, Request, current_app, jsonify, request
from flask.typing import ResponseReturnValue
from flask_babel import Babel
from flask_login import LoginManager, UserMixin
from flask_talisman import Talisman

from communityguard.config import FlaskBaseConfig
from communityguard.service_layer.security_headers import CSP_REPORT_PATH, build_csp, build_permissions_policy
from communityguard.translations import _

SESSION_COOKIE_NAME = "session_id"

login_manager = LoginManager()
talisman = Talisman()
babel = Babel()


class SessionUser(UserMixin):
    """The authenticated principal for a request: a user id bound to one server-side session."""

    def __init__(self, user_id: uuid.UUID, session_id: str) -> None:
        self.id = user_id
        self.session_id = session_id

    def get_id(self) -> str:
        return str(self.id)

    def __repr__(self) -> str:
        return f"<SessionUser {self.id} session={self.session_id[:8]}>"


def init_extensions(app: Flask, flask_config: FlaskBaseConfig) -> None:
    """Initialize Flask extensions with app instance."""

    login_manager.init_app(app)

    csp = {
        directive: " ".join(sources) if isinstance(sources, list) else sources
        for directive, sources in build_csp(development=flask_config.FLASK_ENV == "development").items()
    }
    talisman.init_app(
        app,
        force_https=flask_config.FORCE_HTTPS,
        frame_options="DENY",
        strict_transport_security=True,
        strict_transport_security_preload=True,
        strict_transport_security_max_age=31536000,
        strict_transport_security_include_subdomains=True,
        content_security_policy=csp,
        content_security_policy_nonce_in=["script-src"],
        content_security_policy_report_uri=f"{flask_config.APP_URL}{CSP_REPORT_PATH}",
        referrer_policy="strict-origin-when-cross-origin",
        permissions_policy=build_permissions_policy(),
        session_cookie_secure=flask_config.SESSION_COOKIE_SECURE,
        x_content_type_options=True,
    )

    babel.init_app(app, locale_selector=get_locale)


def get_locale() -> str:
    """Get the best language match for the request."""
    supported_languages = current_app.config.get("LANGUAGES", ["en"])

    requested_language = request.args.get("lang")
    if requested_language and requested_language in supported_languages:
        return requested_language

    return request.accept_languages.best_match(supported_languages) or supported_languages[0]


@login_manager.request_loader
def load_user_from_request(req: Request) -> SessionUser | None:
    """Authenticate from the session cookie against the session store."""
    from communityguard.entrypoints.decorators import get_services

    session_id = req.cookies.get(SESSION_COOKIE_NAME, "")
    if not session_id:
        return None
    validation = get_services().sessions.validate_session(session_id)
    if not validation.is_valid or validation.user_id is None:
        return None
    return SessionUser(validation.user_id, session_id)


@login_manager.unauthorized_handler
def unauthorized() -> ResponseReturnValue:
    return jsonify({"error": _("Authentication required"), "code": "UNAUTHENTICATED"}), 401
