"""ABOUTME: Unit of Work pattern implementation for transaction management
ABOUTME: Coordinates repository operations within database transactions"""

from __future__ import annotations

import abc
from collections.abc import Callable
from types import TracebackType

from sqlalchemy.orm import Session, sessionmaker

from communityguard.adapters.sql_repository import (
    SqlAlchemyTwoFactorAuditLogRepository,
    SqlAlchemyTwoFactorEnrollmentRepository,
    SqlAlchemyUserBackupCodeRepository,
    SqlAlchemyUserSessionRepository,
)
from communityguard.service_layer.repositories import (
    TwoFactorAuditLogRepository,
    TwoFactorEnrollmentRepository,
    UserBackupCodeRepository,
    UserSessionRepository,
)


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work interface."""

    user_sessions: UserSessionRepository
    two_factor_enrollments: TwoFactorEnrollmentRepository
    user_backup_codes: UserBackupCodeRepository
    two_factor_audit_logs: TwoFactorAuditLogRepository

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError


UnitOfWorkFactory = Callable[[], AbstractUnitOfWork]


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """SQLAlchemy implementation of Unit of Work pattern.

    Each instance opens a fresh Session on entry, so nothing read in one unit
    of work (for example a session's active flag) is cached into the next.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = self.session_factory()
        assert isinstance(self._session, Session)
        return self._session

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.user_sessions = SqlAlchemyUserSessionRepository(self.session)
        self.two_factor_enrollments = SqlAlchemyTwoFactorEnrollmentRepository(self.session)
        self.user_backup_codes = SqlAlchemyUserBackupCodeRepository(self.session)
        self.two_factor_audit_logs = SqlAlchemyTwoFactorAuditLogRepository(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()
            self._session = None

    def commit(self) -> None:
        """Commit the current transaction."""
        self.session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.session.rollback()
