"""ABOUTME: Translation utilities for user-facing error and status messages
ABOUTME: Provides gettext functions that work both in Flask context and standalone (CLI, tests)"""

from typing import Any

from flask import current_app, has_app_context
from flask_babel import gettext as flask_gettext


def _get_text_fallback(message: str, **kwargs: Any) -> str:
    """Fallback gettext that works without Flask context."""
    if kwargs:
        try:
            return message % kwargs
        except (KeyError, ValueError, TypeError):
            return message
    return message


def gettext(message: str, **kwargs: Any) -> str:
    """Get translated string - works both in Flask context and standalone."""
    if has_app_context() and "babel" in current_app.extensions:
        return str(flask_gettext(message, **kwargs))
    return _get_text_fallback(message, **kwargs)


_ = gettext
