"""ABOUTME: Wrapper for fire-and-forget side effects whose failure must never reach the caller
ABOUTME: Logs the failure with operation name and duration, then carries on"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@contextmanager
def best_effort(operation: str, **context: Any) -> Iterator[None]:
    """Run the enclosed block, logging and suppressing any failure.

    Only for writes that are advisory (eg last-activity timestamps). Required
    writes must not use this.
    """
    started = time.perf_counter()
    try:
        yield
    except Exception:
        logger.exception(
            "Best-effort operation failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            **context,
        )
