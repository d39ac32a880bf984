"""ABOUTME: Fixed-window rate limiter backed by the distributed counter store
ABOUTME: Fails open when the store is unavailable; named rules for auth, api, upload and general traffic"""

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from communityguard.service_layer.counter_store import AbstractCounterStore
from communityguard.service_layer.exceptions import CounterStoreError

logger = structlog.get_logger(__name__)

KEY_PREFIX = "rate_limit:"
# reported while the counter store is down and requests are let through
FAIL_OPEN_REMAINING = 999
FAIL_OPEN_WINDOW = timedelta(seconds=60)


@dataclass(slots=True, kw_only=True, frozen=True)
class RateLimitRule:
    name: str
    window_ms: int
    max_requests: int
    prefix: str = ""

    def key_for(self, client_id: str) -> str:
        return f"{self.prefix}{client_id}"


RATE_LIMIT_RULES: dict[str, RateLimitRule] = {
    "auth": RateLimitRule(name="auth", window_ms=15 * 60 * 1000, max_requests=5, prefix="auth:"),
    "api": RateLimitRule(name="api", window_ms=60 * 1000, max_requests=100, prefix="api:"),
    "upload": RateLimitRule(name="upload", window_ms=60 * 60 * 1000, max_requests=10, prefix="upload:"),
    "general": RateLimitRule(name="general", window_ms=60 * 1000, max_requests=1000, prefix="general:"),
}


@dataclass(slots=True, kw_only=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: datetime
    current: int = 0
    retry_after_seconds: int | None = None


@dataclass(slots=True, kw_only=True)
class RateLimitInfo:
    current: int
    remaining: int
    reset_time: datetime


def client_identifier(headers: Mapping[str, str]) -> str:
    """Default key generator: first forwarded-for address, then the real-ip header."""
    forwarded = headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return "unknown"


class RateLimiter:
    """Counts requests per key in fixed windows.

    The limiter holds no lock: concurrent requests rely on the store's atomic
    increment. Setting the expiry on the first increment may race and run
    twice, which is harmless.
    """

    def __init__(self, store: AbstractCounterStore, key_prefix: str = KEY_PREFIX) -> None:
        self.store = store
        self.key_prefix = key_prefix

    def _store_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        now = datetime.now(UTC)
        # a zero window disables limiting for this check
        if window_ms == 0:
            return RateLimitResult(allowed=True, limit=max_requests, remaining=max_requests, reset_time=now)

        store_key = self._store_key(key)
        started = time.perf_counter()
        try:
            count = self.store.incr(store_key)
            if count == 1:
                self.store.pexpire(store_key, window_ms)
            ttl_ms = self.store.pttl(store_key)
            if ttl_ms < 0:
                # expiry was lost (eg the first request died after INCR); never leave a counter immortal
                self.store.pexpire(store_key, window_ms)
                ttl_ms = window_ms
        except CounterStoreError:
            logger.exception(
                "Rate limit check failed, allowing request",
                operation="rate_limit.check",
                rate_limit_key=store_key,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return RateLimitResult(
                allowed=True,
                limit=max_requests,
                remaining=FAIL_OPEN_REMAINING,
                reset_time=now + FAIL_OPEN_WINDOW,
            )

        allowed = count <= max_requests
        result = RateLimitResult(
            allowed=allowed,
            limit=max_requests,
            remaining=max(0, max_requests - count),
            reset_time=now + timedelta(milliseconds=ttl_ms),
            current=count,
        )
        if not allowed:
            result.retry_after_seconds = max(1, math.ceil(ttl_ms / 1000))
            logger.warning("Rate limit exceeded", rate_limit_key=store_key, current=count, limit=max_requests)
        return result

    def check_rule(self, rule: RateLimitRule, client_id: str) -> RateLimitResult:
        return self.check(rule.key_for(client_id), rule.window_ms, rule.max_requests)

    def info(self, key: str, window_ms: int, max_requests: int) -> RateLimitInfo:
        """Current usage of a key, without counting a request."""
        store_key = self._store_key(key)
        now = datetime.now(UTC)
        current = self.store.get(store_key) or 0
        ttl_ms = self.store.pttl(store_key)
        reset_time = now + timedelta(milliseconds=ttl_ms if ttl_ms > 0 else window_ms)
        return RateLimitInfo(current=current, remaining=max(0, max_requests - current), reset_time=reset_time)

    def reset(self, key: str) -> bool:
        """Delete the counter outright. True if there was one."""
        removed = self.store.delete(self._store_key(key))
        logger.info("Rate limit reset", rate_limit_key=self._store_key(key), removed=removed)
        return removed
