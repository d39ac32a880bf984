"""ABOUTME: UserBackupCode domain model for 2FA recovery codes
ABOUTME: One row per code; only a keyed hash of the code is ever stored"""

import uuid
from datetime import UTC, datetime


class UserBackupCode:
    def __init__(
        self,
        user_id: uuid.UUID,
        code_hash: str,
        backup_code_id: uuid.UUID | None = None,
        used_at: datetime | None = None,
        created_at: datetime | None = None,
    ):
        self.id = backup_code_id or uuid.uuid4()
        self.user_id = user_id
        self.code_hash = code_hash
        self.used_at = used_at
        self.created_at = created_at or datetime.now(UTC)

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def use(self, at: datetime) -> bool:
        """Spend the code. False if it was already spent."""
        if self.is_used:
            return False
        self.used_at = at
        return True

    def __repr__(self) -> str:
        return f"<UserBackupCode {self.id} user={self.user_id} used={self.is_used}>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UserBackupCode) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)
