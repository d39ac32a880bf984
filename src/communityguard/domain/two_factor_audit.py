"""ABOUTME: TwoFactorAuditLog domain model for tracking 2FA security events
ABOUTME: Records every setup, enable, verify, disable and regeneration attempt with its outcome"""

import uuid
from datetime import UTC, datetime

from communityguard.domain.value_objects import TwoFactorAction, VerificationMethod


class TwoFactorAuditLog:
    """Audit record of a single two-factor event. Never holds codes or secrets."""

    def __init__(
        self,
        user_id: uuid.UUID,
        action: TwoFactorAction,
        success: bool,
        method: VerificationMethod | None = None,
        ip_address: str = "",
        audit_log_id: uuid.UUID | None = None,
        timestamp: datetime | None = None,
        details: dict | None = None,
    ):
        self.id = audit_log_id or uuid.uuid4()
        self.user_id = user_id
        self.action = action
        self.success = success
        self.method = method
        self.ip_address = ip_address
        self.timestamp = timestamp or datetime.now(UTC)
        self.details = details or {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TwoFactorAuditLog):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)
