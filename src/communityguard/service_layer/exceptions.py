"""ABOUTME: Custom exceptions for service layer operations
ABOUTME: Expected rejections are result values; these cover the conditions raised to the HTTP boundary"""

from typing import TYPE_CHECKING

from communityguard.translations import gettext as _

if TYPE_CHECKING:
    from communityguard.service_layer.rate_limiter import RateLimitResult


class CommunityGuardError(Exception):
    """Base exception for all our custom errors."""


class ServiceLayerError(CommunityGuardError):
    """Base exception for all service layer errors."""


class CounterStoreError(CommunityGuardError):
    """The distributed counter store could not be reached or answered badly."""


class RateLimitExceeded(ServiceLayerError):
    """Raised when a client has exceeded the rate limit for an operation."""

    def __init__(
        self, operation: str = "", retry_after_seconds: int = 0, result: "RateLimitResult | None" = None
    ) -> None:
        if operation and retry_after_seconds:
            message = _(
                "Rate limit exceeded for %(operation)s. Please try again in %(seconds)s seconds",
                operation=operation,
                seconds=retry_after_seconds,
            )
        elif operation:
            message = _("Rate limit exceeded for %(operation)s", operation=operation)
        else:
            message = _("Rate limit exceeded. Please try again later")
        super().__init__(message)
        self.operation = operation
        self.retry_after_seconds = retry_after_seconds
        self.result = result


class CsrfValidationError(ServiceLayerError):
    """Raised when a state-changing request fails CSRF validation."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(_("CSRF token validation failed"))
        self.reason = reason


class TwoFactorRequired(ServiceLayerError):
    """Raised when a route needs a two-factor verification the session does not have."""

    def __init__(self) -> None:
        super().__init__(_("Two-factor verification is required for this action"))
