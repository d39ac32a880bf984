"""ABOUTME: Session manager - creates, validates, refreshes, lists and revokes user sessions
ABOUTME: Persistence failures propagate (fail closed) except the best-effort activity refresh"""

import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from communityguard.domain.sessions import DEFAULT_SESSION_LIFETIME, UserSession
from communityguard.service_layer.best_effort import best_effort
from communityguard.service_layer.results import OperationResult
from communityguard.service_layer.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from communityguard.translations import gettext as _

logger = structlog.get_logger(__name__)

DEFAULT_MAX_SESSIONS = 10
DEFAULT_REFRESH_AFTER = timedelta(hours=1)


@dataclass(slots=True, kw_only=True)
class SessionCreated:
    session_id: str
    expires_at: datetime


@dataclass(slots=True, kw_only=True)
class SessionValidation:
    is_valid: bool
    user_id: uuid.UUID | None = None
    needs_refresh: bool = False
    reason: str = ""


def _short(session_id: str) -> str:
    return session_id[:8]


class SessionService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        refresh_after: timedelta = DEFAULT_REFRESH_AFTER,
    ) -> None:
        self.uow_factory = uow_factory
        self.lifetime = lifetime
        self.max_sessions = max_sessions
        self.refresh_after = refresh_after

    def create_session(
        self, user_id: uuid.UUID, ip_address: str, user_agent: str, device_info: str | None = None
    ) -> SessionCreated:
        """Persist a new active session and prune the user's older ones.

        Any persistence error propagates: there is no session without a stored record.
        """
        started = time.perf_counter()
        with self.uow_factory() as uow:
            session = UserSession(
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                device_info=device_info,
                lifetime=self.lifetime,
            )
            uow.user_sessions.add(session)
            revoked = self._revoke_beyond_limit(uow, user_id, keep=session)
            result = SessionCreated(session_id=session.id, expires_at=session.expires_at)
            uow.commit()

        logger.info(
            "Session created",
            user_id=str(user_id),
            session=_short(result.session_id),
            device=session.device_info,
            pruned=revoked,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    def _revoke_beyond_limit(self, uow: AbstractUnitOfWork, user_id: uuid.UUID, keep: UserSession) -> int:
        """Keep the newest session plus the most recently active others, up to the limit."""
        others = [s for s in uow.user_sessions.get_active_for_user(user_id) if s.id != keep.id]
        stale = others[max(0, self.max_sessions - 1) :]
        now = datetime.now(UTC)
        for session in stale:
            session.revoke(now)
        return len(stale)

    def validate_session(self, session_id: str) -> SessionValidation:
        if not session_id:
            return SessionValidation(is_valid=False, reason="missing")

        now = datetime.now(UTC)
        with self.uow_factory() as uow:
            session = uow.user_sessions.get(session_id)
            if session is None:
                return SessionValidation(is_valid=False, reason="not_found")
            if not session.is_active:
                return SessionValidation(is_valid=False, reason=session.state.value)
            if session.is_expired(now):
                session.expire()
                uow.commit()
                logger.info("Session expired", user_id=str(session.user_id), session=_short(session_id))
                return SessionValidation(is_valid=False, reason="expired")
            user_id = session.user_id
            needs_refresh = session.needs_refresh(self.refresh_after, now)

        if needs_refresh:
            self.refresh_activity(session_id)
        return SessionValidation(is_valid=True, user_id=user_id, needs_refresh=needs_refresh)

    def refresh_activity(self, session_id: str) -> None:
        """Advisory last-activity update. A failure here never invalidates the session."""
        with best_effort("session.refresh_activity", session=_short(session_id)):
            with self.uow_factory() as uow:
                session = uow.user_sessions.get(session_id)
                if session is not None and session.is_active:
                    session.touch()
                    uow.commit()

    def revoke_session(self, session_id: str, user_id: uuid.UUID) -> OperationResult:
        with self.uow_factory() as uow:
            # scoped to the owner, so one user cannot revoke another's session
            session = uow.user_sessions.get_for_user(session_id, user_id)
            if session is None or not session.is_active:
                return OperationResult.failed(_("Session not found"))
            session.revoke()
            uow.commit()

        logger.info("Session revoked", user_id=str(user_id), session=_short(session_id))
        return OperationResult.ok(_("Session revoked successfully"), count=1)

    def revoke_all_other_sessions(self, current_session_id: str, user_id: uuid.UUID) -> OperationResult:
        with self.uow_factory() as uow:
            now = datetime.now(UTC)
            others = [s for s in uow.user_sessions.get_active_for_user(user_id) if s.id != current_session_id]
            for session in others:
                session.revoke(now)
            uow.commit()

        logger.info("Other sessions revoked", user_id=str(user_id), revoked=len(others))
        return OperationResult.ok(_("%(count)s other sessions revoked", count=len(others)), count=len(others))

    def cleanup_expired_sessions(self) -> int:
        """Mark every expired but still active session inactive. Safe to re-run."""
        with self.uow_factory() as uow:
            expired = list(uow.user_sessions.get_expired_active(datetime.now(UTC)))
            for session in expired:
                session.expire()
            uow.commit()

        logger.info("Expired sessions cleaned up", expired=len(expired))
        return len(expired)

    def get_user_sessions(self, user_id: uuid.UUID) -> list[UserSession]:
        """Active, unexpired sessions for the user, most recently active first."""
        now = datetime.now(UTC)
        with self.uow_factory() as uow:
            return [s.create_detached_copy() for s in uow.user_sessions.get_active_for_user(user_id) if not s.is_expired(now)]
