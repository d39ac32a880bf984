"""ABOUTME: Database connection setup and imperative mapping for CommunityGuard
ABOUTME: Configures bounded SQLAlchemy sessions and maps domain objects to tables"""

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import clear_mappers as sqla_clear_mappers
from sqlalchemy.orm import sessionmaker

from communityguard.adapters import orm
from communityguard.config import bool_environ_get, get_db_uri
from communityguard.domain import sessions, two_factor, two_factor_audit, user_backup_codes


class DatabaseError(Exception):
    """Base exception for database-related errors."""


def create_session_factory(database_url: str = "", echo: bool = False, statement_timeout_ms: int = 5000) -> sessionmaker:
    """Create a SQLAlchemy session factory with proper configuration.

    On postgres every connection attempt and statement is bounded, so a stuck
    database turns into an error rather than a hung request.
    """
    database_url = database_url or get_db_uri()
    echo = bool_environ_get("DB_ECHO") or echo
    extra_args: dict[str, Any] = {}
    if database_url.startswith("postgresql"):
        extra_args = {
            "pool_pre_ping": True,  # Verify connections before use
            "pool_recycle": 3600,  # Recycle connections after 1 hour
            "pool_size": 10,
            "max_overflow": 20,
            "pool_timeout": 5,  # seconds to wait for a pooled connection
            "connect_args": {
                "connect_timeout": max(1, statement_timeout_ms // 1000),
                "options": f"-c statement_timeout={statement_timeout_ms}",
            },
        }
    engine = create_engine(database_url, echo=echo, **extra_args)

    return sessionmaker(bind=engine, expire_on_commit=False)


# Track if mappers have been started
_mappers_started = False


def start_mappers() -> None:
    """Start imperative mapping between domain objects and database tables.

    The mapping is done imperatively to keep domain objects independent of SQLAlchemy.
    """
    global _mappers_started

    if _mappers_started:
        return

    try:
        orm.mapper_registry.map_imperatively(sessions.UserSession, orm.user_sessions)
        orm.mapper_registry.map_imperatively(two_factor.TwoFactorEnrollment, orm.user_two_factor)
        orm.mapper_registry.map_imperatively(user_backup_codes.UserBackupCode, orm.user_backup_codes)
        orm.mapper_registry.map_imperatively(two_factor_audit.TwoFactorAuditLog, orm.two_factor_audit_logs)

        _mappers_started = True

    except Exception as e:  # pragma: no cover
        raise DatabaseError(f"Failed to start mappers: {e}") from e


def clear_mappers() -> None:
    sqla_clear_mappers()

    global _mappers_started
    _mappers_started = False
