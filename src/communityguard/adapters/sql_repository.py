"""ABOUTME: SQLAlchemy implementations of repository interfaces
ABOUTME: Provides concrete database operations using SQLAlchemy sessions"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from communityguard.adapters import orm
from communityguard.domain.sessions import UserSession
from communityguard.domain.two_factor import TwoFactorEnrollment
from communityguard.domain.two_factor_audit import TwoFactorAuditLog
from communityguard.domain.user_backup_codes import UserBackupCode
from communityguard.service_layer.repositories import (
    TwoFactorAuditLogRepository,
    TwoFactorEnrollmentRepository,
    UserBackupCodeRepository,
    UserSessionRepository,
)


class SqlAlchemyRepository:
    """Base SQLAlchemy repository with common functionality."""

    def __init__(self, session: Session) -> None:
        self.session = session


class SqlAlchemyUserSessionRepository(SqlAlchemyRepository, UserSessionRepository):
    """SQLAlchemy implementation of UserSessionRepository."""

    def add(self, item: UserSession) -> None:
        self.session.add(item)

    def get(self, item_id: str) -> UserSession | None:
        return self.session.query(UserSession).filter_by(id=item_id).first()

    def all(self) -> Iterable[UserSession]:
        return self.session.query(UserSession).all()

    def get_for_user(self, session_id: str, user_id: uuid.UUID) -> UserSession | None:
        return self.session.query(UserSession).filter_by(id=session_id, user_id=user_id).first()

    def get_active_for_user(self, user_id: uuid.UUID) -> list[UserSession]:
        return (
            self.session.query(UserSession)
            .filter_by(user_id=user_id, is_active=True)
            .order_by(orm.user_sessions.c.last_activity.desc(), orm.user_sessions.c.created_at.desc())
            .all()
        )

    def get_expired_active(self, now: datetime) -> Iterable[UserSession]:
        return (
            self.session.query(UserSession)
            .filter(orm.user_sessions.c.is_active.is_(True), orm.user_sessions.c.expires_at < now)
            .all()
        )


class SqlAlchemyTwoFactorEnrollmentRepository(SqlAlchemyRepository, TwoFactorEnrollmentRepository):
    """SQLAlchemy implementation of TwoFactorEnrollmentRepository."""

    def add(self, item: TwoFactorEnrollment) -> None:
        self.session.add(item)

    def get(self, item_id: uuid.UUID) -> TwoFactorEnrollment | None:
        return self.session.query(TwoFactorEnrollment).filter_by(user_id=item_id).first()

    def all(self) -> Iterable[TwoFactorEnrollment]:
        return self.session.query(TwoFactorEnrollment).all()


class SqlAlchemyUserBackupCodeRepository(SqlAlchemyRepository, UserBackupCodeRepository):
    """SQLAlchemy implementation of UserBackupCodeRepository."""

    def add(self, item: UserBackupCode) -> None:
        self.session.add(item)

    def get(self, item_id: uuid.UUID) -> UserBackupCode | None:
        return self.session.query(UserBackupCode).filter_by(id=item_id).first()

    def all(self) -> Iterable[UserBackupCode]:
        return self.session.query(UserBackupCode).all()

    def get_unused_codes_for_user(self, user_id: uuid.UUID) -> Iterable[UserBackupCode]:
        return (
            self.session.query(UserBackupCode)
            .filter(orm.user_backup_codes.c.user_id == user_id, orm.user_backup_codes.c.used_at.is_(None))
            .all()
        )

    def consume(self, user_id: uuid.UUID, code_hash: str, used_at: datetime) -> bool:
        table = orm.user_backup_codes
        # at most one row can flip from unused to used, even under concurrent attempts
        matching_id = (
            self.session.query(table.c.id)
            .filter(table.c.user_id == user_id, table.c.code_hash == code_hash, table.c.used_at.is_(None))
            .limit(1)
            .scalar()
        )
        if matching_id is None:
            return False
        result = self.session.execute(
            update(table)
            .where(table.c.id == matching_id, table.c.used_at.is_(None))
            .values(used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    def delete_codes_for_user(self, user_id: uuid.UUID) -> int:
        result = self.session.execute(
            delete(orm.user_backup_codes)
            .where(orm.user_backup_codes.c.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]


class SqlAlchemyTwoFactorAuditLogRepository(SqlAlchemyRepository, TwoFactorAuditLogRepository):
    """SQLAlchemy implementation of TwoFactorAuditLogRepository."""

    def add(self, item: TwoFactorAuditLog) -> None:
        self.session.add(item)

    def get(self, item_id: uuid.UUID) -> TwoFactorAuditLog | None:
        return self.session.query(TwoFactorAuditLog).filter_by(id=item_id).first()

    def all(self) -> Iterable[TwoFactorAuditLog]:
        return self.session.query(TwoFactorAuditLog).all()

    def get_for_user(self, user_id: uuid.UUID, limit: int = 50) -> Iterable[TwoFactorAuditLog]:
        return (
            self.session.query(TwoFactorAuditLog)
            .filter_by(user_id=user_id)
            .order_by(orm.two_factor_audit_logs.c.timestamp.desc())
            .limit(limit)
            .all()
        )
