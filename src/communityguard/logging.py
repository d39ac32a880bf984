"""ABOUTME: Structured logging setup shared by the web app, CLI and gunicorn
ABOUTME: Routes stdlib logging through structlog, redacting secret-bearing fields before rendering"""

import logging.config
import os
from collections.abc import MutableMapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from communityguard import config

if TYPE_CHECKING:
    import gunicorn.config
    import gunicorn.http
    import gunicorn.http.wsgi

REDACTED = "[REDACTED]"
# event keys whose values must never reach a log line
SENSITIVE_KEYS = frozenset({
    "secret",
    "totp_secret",
    "token",
    "csrf_token",
    "hash",
    "backup_code",
    "backup_codes",
    "code",
    "authorization",
    "cookie",
    "password",
})


def redact_sensitive_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that blanks out credentials passed as log context."""
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
    return event_dict


timestamper = structlog.processors.TimeStamper(fmt="iso")
# applied to records that come from plain stdlib loggers (gunicorn, werkzeug, sqlalchemy)
pre_chain = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    timestamper,
    redact_sensitive_values,
]

handler_to_use = "dev_console" if config.is_development() else "default"


def build_logging_config(handler: str) -> dict[str, Any]:
    """dictConfig for one root handler, rendering either JSON or a console view."""

    def formatter(renderer: Any) -> dict[str, Any]:
        return {"()": structlog.stdlib.ProcessorFormatter, "processor": renderer, "foreign_pre_chain": pre_chain}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": formatter(structlog.dev.ConsoleRenderer(colors=False)),
            "json": formatter(structlog.processors.JSONRenderer()),
        },
        "handlers": {
            "default": {"level": "INFO", "class": "logging.StreamHandler", "formatter": "json"},
            "dev_console": {"level": "DEBUG", "class": "logging.StreamHandler", "formatter": "console"},
        },
        "loggers": {
            "": {"handlers": [handler], "level": "INFO", "propagate": True},
        },
    }


logging.config.dictConfig(build_logging_config(handler_to_use))

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        timestamper,
        redact_sensitive_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


def logging_setup(log_level: int = logging.INFO) -> None:
    handler = logging.getHandlerByName(handler_to_use)
    assert handler is not None
    handler.setLevel(log_level)

    logging.getLogger().setLevel(log_level)

    if config.should_log_all_requests():
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("werkzeug").setLevel(logging.DEBUG)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


class GunicornLogger:
    """structlog-backed replacement for gunicorn's glogging.Logger.

    Use with `gunicorn --logger-class communityguard.logging.GunicornLogger`.
    Only the interface gunicorn calls is implemented; there are no log files.
    """

    def __init__(self, cfg: "gunicorn.config.Config") -> None:
        self.cfg = cfg
        log_level = config.get_log_level()
        self._error_logger = structlog.get_logger("gunicorn.error")
        self._error_logger.setLevel(log_level)
        self._access_logger = structlog.get_logger("gunicorn.access")
        self._access_logger.setLevel(log_level)

    def critical(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.critical(msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.error(msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.warning(msg, *args, **kwargs)

    def info(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.info(msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.debug(msg, *args, **kwargs)

    def exception(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.exception(msg, *args, **kwargs)

    def log(self, lvl: int, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.log(lvl, msg, *args, **kwargs)

    def access(
        self,
        resp: "gunicorn.http.wsgi.Response",
        req: "gunicorn.http.Request",
        environ: dict[str, object],
        request_time: timedelta,
    ) -> None:
        status = resp.status
        if isinstance(status, str):
            status = status.split(None, 1)[0]

        # path only: query strings can carry tokens
        self._access_logger.info(
            "request",
            method=environ.get("REQUEST_METHOD", ""),
            path=environ.get("PATH_INFO", ""),
            status=status,
            client=environ.get("HTTP_X_FORWARDED_FOR") or environ.get("REMOTE_ADDR", ""),
            response_length=getattr(resp, "sent", None),
            request_time_ms=round(request_time.total_seconds() * 1000, 1),
            pid=os.getpid(),
        )

    def reopen_files(self) -> None:
        pass

    def close_on_exec(self) -> None:
        pass
