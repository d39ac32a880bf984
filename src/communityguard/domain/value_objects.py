"""ABOUTME: Value objects and enums for CommunityGuard domain models
ABOUTME: Defines the session, two-factor and audit enums shared across the domain"""

from enum import Enum


class SessionState(Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class EnrollmentStatus(Enum):
    PENDING = "pending"
    ENABLED = "enabled"
    DISABLED = "disabled"


class VerificationMethod(Enum):
    TOTP = "totp"
    BACKUP_CODE = "backup_code"


class TwoFactorAction(Enum):
    SETUP = "setup"
    ENABLE = "enable"
    VERIFY = "verify"
    DISABLE = "disable"
    REGENERATE_BACKUP_CODES = "regenerate_backup_codes"


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
