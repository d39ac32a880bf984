"""ABOUTME: Stateless CSRF token issue and verification using an HMAC bound to a server secret
ABOUTME: Tokens round-trip through a cookie and a request header; nothing is stored server side"""

import hashlib
import hmac
import json
import secrets
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any
from urllib.parse import quote, unquote

import structlog

logger = structlog.get_logger(__name__)

CSRF_COOKIE_NAME = "csrf-token"
CSRF_HEADER_NAME = "X-CSRF-Token"
TOKEN_MAX_AGE = timedelta(hours=24)
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(slots=True, kw_only=True, frozen=True)
class CsrfToken:
    token: str
    hash: str
    # milliseconds since the epoch
    timestamp: int

    def to_cookie_value(self) -> str:
        payload = json.dumps({"token": self.token, "hash": self.hash, "timestamp": self.timestamp}, separators=(",", ":"))
        return quote(payload, safe="")

    @classmethod
    def from_cookie_value(cls, raw: str) -> "CsrfToken | None":
        """Parse a cookie value. Anything malformed gives None."""
        try:
            data = json.loads(unquote(raw))
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        token, token_hash, timestamp = data.get("token"), data.get("hash"), data.get("timestamp")
        if not isinstance(token, str) or not isinstance(token_hash, str):
            return None
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            return None
        return cls(token=token, hash=token_hash, timestamp=timestamp)


class CsrfOutcome(Enum):
    VALID = "valid"
    SAFE_METHOD = "safe_method"
    EXEMPT_PATH = "exempt_path"
    BYPASSED = "bypassed"
    MISSING_HEADER = "missing_header"
    MISSING_COOKIE = "missing_cookie"
    MALFORMED_COOKIE = "malformed_cookie"
    TOKEN_MISMATCH = "token_mismatch"
    INVALID_TOKEN = "invalid_token"


@dataclass(slots=True, frozen=True)
class CsrfValidation:
    outcome: CsrfOutcome

    @property
    def allowed(self) -> bool:
        return self.outcome in (CsrfOutcome.VALID, CsrfOutcome.SAFE_METHOD, CsrfOutcome.EXEMPT_PATH, CsrfOutcome.BYPASSED)


def _now_ms() -> int:
    return int(time.time() * 1000)


class CsrfService:
    """Issues and verifies CSRF tokens.

    The MAC covers both the token and its timestamp, so a client cannot extend
    a token's life by editing the timestamp in the cookie.
    """

    def __init__(
        self,
        secret: str,
        exempt_paths: Iterable[str] = (),
        bypass: bool = False,
        max_age: timedelta = TOKEN_MAX_AGE,
    ) -> None:
        if not secret:
            raise ValueError("A CSRF secret is required")
        self._secret = secret.encode("utf-8")
        self.exempt_paths = tuple(exempt_paths)
        self.bypass = bypass
        self.max_age_ms = int(max_age.total_seconds() * 1000)

    def __repr__(self) -> str:
        return f"<CsrfService exempt_paths={self.exempt_paths!r} bypass={self.bypass}>"

    def _sign(self, token: str, timestamp: int) -> str:
        message = f"{token}.{timestamp}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self) -> CsrfToken:
        token = secrets.token_bytes(32).hex()
        timestamp = _now_ms()
        return CsrfToken(token=token, hash=self._sign(token, timestamp), timestamp=timestamp)

    def verify(self, token: str, token_hash: str, timestamp: Any) -> bool:
        """Check the MAC and the token age. Malformed input is rejected."""
        if not token or not token_hash or not isinstance(token, str) or not isinstance(token_hash, str):
            return False
        if isinstance(timestamp, bool):
            return False
        try:
            issued_at = int(timestamp)
        except (TypeError, ValueError):
            return False

        expected = self._sign(token, issued_at)
        if not hmac.compare_digest(expected.encode(), token_hash.encode()):
            return False
        return _now_ms() - issued_at <= self.max_age_ms

    def is_exempt_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.exempt_paths)

    def validate_request(
        self, method: str, path: str, header_token: str | None, cookie_value: str | None
    ) -> CsrfValidation:
        if method.upper() in SAFE_METHODS:
            return CsrfValidation(CsrfOutcome.SAFE_METHOD)
        if self.is_exempt_path(path):
            return CsrfValidation(CsrfOutcome.EXEMPT_PATH)
        if self.bypass:
            return CsrfValidation(CsrfOutcome.BYPASSED)

        if not header_token:
            return self._reject(CsrfOutcome.MISSING_HEADER, method, path)
        if not cookie_value:
            return self._reject(CsrfOutcome.MISSING_COOKIE, method, path)

        cookie_token = CsrfToken.from_cookie_value(cookie_value)
        if cookie_token is None:
            return self._reject(CsrfOutcome.MALFORMED_COOKIE, method, path)
        if not hmac.compare_digest(header_token.encode(), cookie_token.token.encode()):
            return self._reject(CsrfOutcome.TOKEN_MISMATCH, method, path)
        if not self.verify(cookie_token.token, cookie_token.hash, cookie_token.timestamp):
            return self._reject(CsrfOutcome.INVALID_TOKEN, method, path)
        return CsrfValidation(CsrfOutcome.VALID)

    def _reject(self, outcome: CsrfOutcome, method: str, path: str) -> CsrfValidation:
        logger.warning("CSRF validation failed", reason=outcome.value, method=method, path=path)
        return CsrfValidation(outcome)
