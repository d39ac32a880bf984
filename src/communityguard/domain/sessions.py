"""ABOUTME: UserSession domain model for long-lived authenticated sessions
ABOUTME: Holds the session state machine (active -> revoked | expired) and device labelling"""

import secrets
import uuid
from datetime import UTC, datetime, timedelta

from communityguard.domain.value_objects import SessionState

DEFAULT_SESSION_LIFETIME = timedelta(days=30)


def generate_session_id() -> str:
    """Generate an opaque, URL-safe session id with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def parse_device_info(user_agent: str) -> str:
    """Derive a human readable device label from a user-agent string.

    Labelling only - nothing should make security decisions based on it.
    """
    ua = (user_agent or "").lower()
    if not ua:
        return "Unknown Device"

    if "iphone" in ua:
        return "iPhone"
    if "ipad" in ua:
        return "iPad"
    if "android" in ua:
        return "Android Device"
    if "mobile" in ua:
        return "Mobile Device"

    if "windows" in ua:
        return "Windows Computer"
    if "macintosh" in ua or "mac os" in ua:
        return "Mac Computer"
    if "linux" in ua:
        return "Linux Computer"

    return "Unknown Device"


class UserSession:
    """An authenticated session belonging to one user.

    A session moves from active to either revoked (explicit action) or
    expired (lifetime passed). Neither terminal state can be left.
    """

    def __init__(
        self,
        user_id: uuid.UUID,
        ip_address: str = "",
        user_agent: str = "",
        device_info: str | None = None,
        session_id: str | None = None,
        created_at: datetime | None = None,
        last_activity: datetime | None = None,
        expires_at: datetime | None = None,
        lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
        is_active: bool = True,
        revoked_at: datetime | None = None,
    ):
        current_time = created_at or datetime.now(UTC)

        self.id = session_id or generate_session_id()
        self.user_id = user_id
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.device_info = device_info or parse_device_info(user_agent)
        self.created_at = current_time
        self.last_activity = last_activity or current_time
        self.expires_at = expires_at or (current_time + lifetime)
        self.is_active = is_active
        self.revoked_at = revoked_at

    @property
    def state(self) -> SessionState:
        if self.is_active:
            return SessionState.ACTIVE
        if self.revoked_at is not None:
            return SessionState.REVOKED
        return SessionState.EXPIRED

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return now > self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        """An inactive or expired session never validates."""
        return self.is_active and not self.is_expired(now)

    def needs_refresh(self, refresh_after: timedelta, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return now - self.last_activity > refresh_after

    def touch(self, now: datetime | None = None) -> None:
        """Record activity on the session."""
        if not self.is_active:
            raise ValueError("Cannot record activity on an inactive session")
        self.last_activity = now or datetime.now(UTC)

    def revoke(self, now: datetime | None = None) -> None:
        if not self.is_active:
            raise ValueError("Session is already inactive")
        self.is_active = False
        self.revoked_at = now or datetime.now(UTC)

    def expire(self) -> None:
        if not self.is_active:
            raise ValueError("Session is already inactive")
        self.is_active = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UserSession):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        # never include the full id, it is a bearer credential
        return f"<UserSession {self.id[:8]}... user={self.user_id} state={self.state.value}>"

    def create_detached_copy(self) -> "UserSession":
        """Create a detached copy of this session for use outside SQLAlchemy sessions"""
        return UserSession(
            user_id=self.user_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            device_info=self.device_info,
            session_id=self.id,
            created_at=self.created_at,
            last_activity=self.last_activity,
            expires_at=self.expires_at,
            is_active=self.is_active,
            revoked_at=self.revoked_at,
        )
