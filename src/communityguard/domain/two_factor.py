"""ABOUTME: TwoFactorEnrollment domain model, one per user
ABOUTME: Tracks the encrypted TOTP secret through the none -> pending -> enabled -> disabled lifecycle"""

import uuid
from datetime import UTC, datetime

from communityguard.domain.value_objects import EnrollmentStatus


class TwoFactorEnrollment:
    """A user's TOTP enrollment. The secret is only ever held encrypted."""

    def __init__(
        self,
        user_id: uuid.UUID,
        secret_encrypted: str | None,
        status: EnrollmentStatus = EnrollmentStatus.PENDING,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        enabled_at: datetime | None = None,
        disabled_at: datetime | None = None,
    ):
        current_time = created_at or datetime.now(UTC)

        self.user_id = user_id
        self.secret_encrypted = secret_encrypted
        self.status = status
        self.created_at = current_time
        self.updated_at = updated_at or current_time
        self.enabled_at = enabled_at
        self.disabled_at = disabled_at

    @property
    def is_enabled(self) -> bool:
        return self.status == EnrollmentStatus.ENABLED

    @property
    def is_pending(self) -> bool:
        return self.status == EnrollmentStatus.PENDING

    def restart_setup(self, secret_encrypted: str) -> None:
        """Replace the secret with a fresh one awaiting confirmation."""
        if self.is_enabled:
            raise ValueError("Two-factor authentication is already enabled")
        self.secret_encrypted = secret_encrypted
        self.status = EnrollmentStatus.PENDING
        self.enabled_at = None
        self.updated_at = datetime.now(UTC)

    def enable(self) -> None:
        if not self.is_pending or not self.secret_encrypted:
            raise ValueError("Only a pending enrollment can be enabled")
        now = datetime.now(UTC)
        self.status = EnrollmentStatus.ENABLED
        self.enabled_at = now
        self.disabled_at = None
        self.updated_at = now

    def disable(self) -> None:
        """Turn two-factor off and purge the secret."""
        if not self.is_enabled:
            raise ValueError("Two-factor authentication is not enabled")
        now = datetime.now(UTC)
        self.status = EnrollmentStatus.DISABLED
        self.secret_encrypted = None
        self.disabled_at = now
        self.updated_at = now

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TwoFactorEnrollment):  # pragma: no cover
            return False
        return self.user_id == other.user_id

    def __hash__(self) -> int:
        return hash(self.user_id)
