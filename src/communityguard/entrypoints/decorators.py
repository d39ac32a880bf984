"""ABOUTME: Route decorators and request helpers shared by the blueprints
ABOUTME: Named rate limits, two-factor enforcement, security admin checks and session cookie issue"""

import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from functools import wraps
from typing import Any, TypeVar

from flask import Response, abort, current_app, request, session
from flask_login import current_user

from communityguard.bootstrap import Services
from communityguard.entrypoints.extensions import SESSION_COOKIE_NAME
from communityguard.service_layer.exceptions import TwoFactorRequired
from communityguard.service_layer.rate_limiter import client_identifier
from communityguard.service_layer.session_service import SessionCreated

F = TypeVar("F", bound=Callable[..., Any])

EXTENSION_KEY = "communityguard"
TWO_FACTOR_SESSION_KEY = "two_factor"
# set on the audit endpoint's own header check so it is not counted against a client
SELF_AUDIT_ENVIRON_KEY = "communityguard.self_audit"


def get_services() -> Services:
    services = current_app.extensions[EXTENSION_KEY]
    assert isinstance(services, Services)
    return services


def client_ip() -> str:
    """Client address as seen through the proxy headers, falling back to the socket peer."""
    identifier = client_identifier(request.headers)
    if identifier == "unknown" and request.remote_addr:
        return request.remote_addr
    return identifier


def rate_limited(name: str) -> Callable[[F], F]:
    """Select the named rate limit rule for a view. The check itself runs in before_request."""

    def decorator(f: F) -> F:
        f.rate_limit_rule = name  # type: ignore[attr-defined]
        return f

    return decorator


def mark_two_factor_verified(user_id: uuid.UUID, session_id: str) -> None:
    hours = current_app.config.get("TWO_FACTOR_VERIFIED_HOURS", 24)
    session[TWO_FACTOR_SESSION_KEY] = {
        "user_id": str(user_id),
        "session_id": session_id,
        "expires_at": time.time() + hours * 3600,
    }


def clear_two_factor_marker() -> None:
    session.pop(TWO_FACTOR_SESSION_KEY, None)


def has_verified_two_factor(user_id: uuid.UUID, session_id: str) -> bool:
    """True when this session verified a second factor recently enough."""
    marker = session.get(TWO_FACTOR_SESSION_KEY)
    if not isinstance(marker, dict):
        return False
    return (
        marker.get("user_id") == str(user_id)
        and marker.get("session_id") == session_id
        and float(marker.get("expires_at", 0)) > time.time()
    )


def require_two_factor(f: F) -> F:
    """Decorator for elevated routes: users with 2FA enabled must have verified in this session."""

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        if not current_user.is_authenticated:
            return current_app.login_manager.unauthorized()  # type: ignore[attr-defined]

        if get_services().two_factor.is_enabled(current_user.id) and not has_verified_two_factor(
            current_user.id, current_user.session_id
        ):
            raise TwoFactorRequired()

        return f(*args, **kwargs)

    return decorated_function  # type: ignore[return-value]


def require_security_admin(f: F) -> F:
    """Decorator that restricts a route to the configured security administrators."""

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        if not current_user.is_authenticated:
            return current_app.login_manager.unauthorized()  # type: ignore[attr-defined]

        if current_user.id not in current_app.config.get("SECURITY_ADMIN_USER_IDS", []):
            current_app.logger.warning(f"User {current_user.id} attempted to access {request.endpoint}")
            abort(403)

        return f(*args, **kwargs)

    return decorated_function  # type: ignore[return-value]


def establish_session(response: Response, user_id: uuid.UUID, device_info: str | None = None) -> SessionCreated:
    """Create a server-side session for a freshly authenticated user and set its cookie.

    This is where primary authentication hands over to the session manager.
    """
    created = get_services().sessions.create_session(
        user_id,
        ip_address=client_ip(),
        user_agent=request.headers.get("User-Agent", ""),
        device_info=device_info,
    )
    response.set_cookie(
        SESSION_COOKIE_NAME,
        created.session_id,
        max_age=int((created.expires_at - datetime.now(UTC)).total_seconds()),
        path="/",
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        httponly=True,
        samesite="Lax",
    )
    return created
