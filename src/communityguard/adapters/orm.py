"""ABOUTME: SQLAlchemy table definitions for sessions, two-factor enrollments, backup codes and audit logs
ABOUTME: Defines the schema and the cross-database column types used by the imperative mappers"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Boolean, Column, Index, String, Table, Text, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID as PostgresUUID
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.orm import registry
from sqlalchemy.sql.sqltypes import String as SQLString

from communityguard.domain.value_objects import EnrollmentStatus, TwoFactorAction, VerificationMethod


def aware_utcnow() -> datetime:  # pragma: no cover
    return datetime.now(UTC)


class EnumAsString(TypeDecorator):
    """Custom type for storing Python Enums as strings."""

    impl = String
    cache_ok = True

    def __init__(self, enum_class: type[Enum], *args: Any, **kwargs: Any) -> None:
        self.enum_class = enum_class
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return value
        return value.value if hasattr(value, "value") else str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return value
        return self.enum_class(value)


class TZAwareDatetime(TypeDecorator):
    """Custom type for timezone-aware datetime objects."""

    impl = TIMESTAMP
    cache_ok = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        # Ensure timezone=True for PostgreSQL
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return value

        # If the datetime is naive, assume it's UTC and make it aware
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)

        return value


class CrossDatabaseUUID(TypeDecorator):
    """Cross-database UUID type that works with both PostgreSQL and SQLite."""

    impl = SQLString
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgresUUID(as_uuid=True))
        # For SQLite and other databases, use CHAR(36) to store UUID as string
        return dialect.type_descriptor(SQLString(36))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError as e:
                raise ValueError(f"Invalid UUID string: {value}") from e
            return parsed if dialect.name == "postgresql" else value
        raise TypeError(f"Expected UUID or string, got {type(value)}")

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


mapper_registry = registry()
metadata = mapper_registry.metadata

# The users table belongs to the primary authentication provider, so user ids
# here are plain UUID columns rather than foreign keys.

user_sessions = Table(
    "user_sessions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", CrossDatabaseUUID(), nullable=False),
    Column("device_info", String(100), nullable=False, default=""),
    Column("ip_address", String(64), nullable=False, default=""),
    Column("user_agent", Text, nullable=False, default=""),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("last_activity", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("expires_at", TZAwareDatetime(), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("revoked_at", TZAwareDatetime(), nullable=True),
    Index("ix_user_sessions_user_id_active", "user_id", "is_active"),
    Index("ix_user_sessions_expires_at", "expires_at"),
)

user_two_factor = Table(
    "user_two_factor",
    metadata,
    Column("user_id", CrossDatabaseUUID(), primary_key=True),
    Column("secret_encrypted", Text, nullable=True),
    Column("status", EnumAsString(EnrollmentStatus, 20), nullable=False),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("updated_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("enabled_at", TZAwareDatetime(), nullable=True),
    Column("disabled_at", TZAwareDatetime(), nullable=True),
)

user_backup_codes = Table(
    "user_backup_codes",
    metadata,
    Column("id", CrossDatabaseUUID(), primary_key=True, default=uuid.uuid4),
    Column("user_id", CrossDatabaseUUID(), nullable=False),
    Column("code_hash", String(64), nullable=False),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("used_at", TZAwareDatetime(), nullable=True),
    Index("ix_user_backup_codes_user_id_code_hash", "user_id", "code_hash"),
)

two_factor_audit_logs = Table(
    "two_factor_audit_logs",
    metadata,
    Column("id", CrossDatabaseUUID(), primary_key=True, default=uuid.uuid4),
    Column("user_id", CrossDatabaseUUID(), nullable=False),
    Column("action", EnumAsString(TwoFactorAction, 40), nullable=False),
    Column("success", Boolean, nullable=False),
    Column("method", EnumAsString(VerificationMethod, 20), nullable=True),
    Column("ip_address", String(64), nullable=False, default=""),
    Column("timestamp", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("details", JSON, nullable=False, default=dict),
    Index("ix_two_factor_audit_logs_user_id_timestamp", "user_id", "timestamp"),
)
