"""ABOUTME: Abstract repository interfaces for domain objects
ABOUTME: Defines repository contracts to abstract database operations from business logic"""

from __future__ import annotations

import abc
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from communityguard.domain.sessions import UserSession
from communityguard.domain.two_factor import TwoFactorEnrollment
from communityguard.domain.user_backup_codes import UserBackupCode


class AbstractRepository(abc.ABC):
    """Base repository interface providing common operations."""

    @abc.abstractmethod
    def add(self, item: Any) -> None:
        """Add an item to the repository."""
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, item_id: Any) -> Any | None:
        """Get an item by its ID."""
        raise NotImplementedError

    @abc.abstractmethod
    def all(self) -> Iterable[Any]:
        """List all items in the repository."""
        raise NotImplementedError


class UserSessionRepository(AbstractRepository):
    """Repository interface for UserSession domain objects."""

    @abc.abstractmethod
    def get_for_user(self, session_id: str, user_id: uuid.UUID) -> UserSession | None:
        """Get a session only if it belongs to the given user."""
        raise NotImplementedError

    @abc.abstractmethod
    def get_active_for_user(self, user_id: uuid.UUID) -> list[UserSession]:
        """Active sessions for a user, most recently active first."""
        raise NotImplementedError

    @abc.abstractmethod
    def get_expired_active(self, now: datetime) -> Iterable[UserSession]:
        """Sessions still flagged active whose expiry has passed."""
        raise NotImplementedError


class TwoFactorEnrollmentRepository(AbstractRepository):
    """Repository interface for TwoFactorEnrollment, keyed by user id."""

    @abc.abstractmethod
    def get(self, item_id: uuid.UUID) -> TwoFactorEnrollment | None:
        raise NotImplementedError


class UserBackupCodeRepository(AbstractRepository):
    """Repository interface for UserBackupCode domain objects."""

    @abc.abstractmethod
    def get_unused_codes_for_user(self, user_id: uuid.UUID) -> Iterable[UserBackupCode]:
        raise NotImplementedError

    @abc.abstractmethod
    def consume(self, user_id: uuid.UUID, code_hash: str, used_at: datetime) -> bool:
        """Mark a matching unused code as used.

        Must be a single conditional update: True only for the one caller that
        flipped the code from unused to used.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def delete_codes_for_user(self, user_id: uuid.UUID) -> int:
        raise NotImplementedError


class TwoFactorAuditLogRepository(AbstractRepository):
    """Repository interface for TwoFactorAuditLog domain objects."""

    @abc.abstractmethod
    def get_for_user(self, user_id: uuid.UUID, limit: int = 50) -> Iterable[Any]:
        """Most recent audit entries for a user."""
        raise NotImplementedError
