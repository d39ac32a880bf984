"""ABOUTME: Flask application factory with configuration, blueprints, and error handling
ABOUTME: Wires the rate limit and CSRF checks into the request pipeline and adds response headers"""

import uuid

import structlog
from flask import Flask, Response, current_app, g, jsonify, request
from flask.typing import ResponseReturnValue
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import communityguard.logging
from communityguard import config
from communityguard.bootstrap import Services, bootstrap
from communityguard.entrypoints.decorators import EXTENSION_KEY, SELF_AUDIT_ENVIRON_KEY, client_ip, get_services
from communityguard.entrypoints.extensions import init_extensions
from communityguard.service_layer.csrf_service import CSRF_COOKIE_NAME, CSRF_HEADER_NAME
from communityguard.service_layer.exceptions import CsrfValidationError, RateLimitExceeded, TwoFactorRequired
from communityguard.service_layer.rate_limiter import RATE_LIMIT_RULES, RateLimitResult
from communityguard.service_layer.security_headers import API_NO_CACHE_HEADERS, EXTRA_SECURITY_HEADERS, build_cors_headers
from communityguard.translations import _

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(config_name: str = "", services: Services | None = None) -> Flask:
    """
    Flask application factory.

    Args:
        config_name: Configuration name (development, testing, production)
        services: Prebuilt service container, used by tests to inject fakes

    Returns:
        Configured Flask application instance
    """
    communityguard.logging.logging_setup(config.get_log_level())

    app = Flask(__name__)

    flask_config = config.get_config(config_name)
    app.config.from_object(flask_config)

    # Trust 1 layer of proxy (the reverse proxy in front of the app)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    app.extensions[EXTENSION_KEY] = services or bootstrap(flask_config)

    init_extensions(app, flask_config)

    register_blueprints(app)
    register_error_handlers(app)
    register_request_handlers(app)

    app.logger.info("CommunityGuard application startup")

    return app


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    from .blueprints.cron import cron_bp
    from .blueprints.csrf import csrf_bp
    from .blueprints.health import health_bp
    from .blueprints.security import security_bp
    from .blueprints.sessions import sessions_bp
    from .blueprints.two_factor import two_factor_bp

    app.register_blueprint(csrf_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(two_factor_bp)
    app.register_blueprint(security_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(health_bp)


def _rate_limit_rule_name() -> str:
    view = current_app.view_functions.get(request.endpoint or "")
    name = getattr(view, "rate_limit_rule", None)
    if name:
        return str(name)
    return "api" if request.path.startswith("/api/") else "general"


def _set_rate_limit_headers(response: Response, result: RateLimitResult) -> None:
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = result.reset_time.isoformat()


def register_request_handlers(app: Flask) -> None:
    """Register the before and after request pipeline."""

    @app.before_request
    def bind_request_context() -> None:
        structlog.contextvars.clear_contextvars()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=g.request_id, method=request.method, path=request.path)

    @app.before_request
    def enforce_rate_limit() -> None:
        if not current_app.config.get("RATE_LIMIT_ENABLED", True):
            return
        if request.environ.get(SELF_AUDIT_ENVIRON_KEY):
            return
        rule = RATE_LIMIT_RULES[_rate_limit_rule_name()]
        result = get_services().rate_limiter.check_rule(rule, client_ip())
        g.rate_limit = result
        if not result.allowed:
            raise RateLimitExceeded(rule.name, result.retry_after_seconds or 0, result=result)

    @app.before_request
    def enforce_csrf() -> None:
        validation = get_services().csrf.validate_request(
            request.method,
            request.path,
            request.headers.get(CSRF_HEADER_NAME),
            request.cookies.get(CSRF_COOKIE_NAME),
        )
        if not validation.allowed:
            raise CsrfValidationError(validation.outcome.value)

    @app.after_request
    def add_security_headers(response: Response) -> Response:
        response.headers[REQUEST_ID_HEADER] = g.get("request_id", "")
        result = g.get("rate_limit")
        if result is not None:
            _set_rate_limit_headers(response, result)

        for name, value in EXTRA_SECURITY_HEADERS.items():
            response.headers[name] = value

        if request.path.startswith("/api/"):
            for name, value in API_NO_CACHE_HEADERS.items():
                response.headers[name] = value
            for name, value in build_cors_headers(current_app.config["APP_URL"]).items():
                response.headers[name] = value

        return response


def register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers."""

    @app.errorhandler(RateLimitExceeded)
    def rate_limit_exceeded(error: RateLimitExceeded) -> ResponseReturnValue:
        body: dict[str, object] = {"error": _("Too many requests"), "message": str(error)}
        if error.result is not None:
            body.update({
                "limit": error.result.limit,
                "remaining": error.result.remaining,
                "reset": error.result.reset_time.isoformat(),
            })
        response = jsonify(body)
        response.status_code = 429
        response.headers["Retry-After"] = str(error.retry_after_seconds or 1)
        return response

    @app.errorhandler(CsrfValidationError)
    def csrf_failed(error: CsrfValidationError) -> ResponseReturnValue:
        return jsonify({"error": str(error), "code": "CSRF_INVALID", "reason": error.reason}), 403

    @app.errorhandler(TwoFactorRequired)
    def two_factor_required(error: TwoFactorRequired) -> ResponseReturnValue:
        return jsonify({"error": str(error), "code": "TWO_FACTOR_REQUIRED"}), 403

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException) -> ResponseReturnValue:
        return jsonify({"error": error.name, "message": error.description}), error.code or 500

    @app.errorhandler(Exception)
    def internal_error(error: Exception) -> ResponseReturnValue:
        app.logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"error": _("Internal server error"), "message": _("An unexpected error occurred")}), 500
