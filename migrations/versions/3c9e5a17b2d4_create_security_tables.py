"""Create session and two-factor tables

Revision ID: 3c9e5a17b2d4
Revises:
Create Date: 2026-10-19 09:14:52.318406

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

import communityguard.adapters.orm

# revision identifiers, used by Alembic.
revision: str = "3c9e5a17b2d4"  # pragma: allowlist secret
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "user_sessions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("device_info", sa.String(length=100), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=False),
        sa.Column("created_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("last_activity", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("expires_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_sessions_user_id_active", "user_sessions", ["user_id", "is_active"], unique=False)
    op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"], unique=False)

    op.create_table(
        "user_two_factor",
        sa.Column("user_id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("secret_encrypted", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("updated_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("enabled_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=True),
        sa.Column("disabled_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=True),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "user_backup_codes",
        sa.Column("id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("user_id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("code_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("used_at", communityguard.adapters.orm.TZAwareDatetime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_user_backup_codes_user_id_code_hash", "user_backup_codes", ["user_id", "code_hash"], unique=False
    )

    op.create_table(
        "two_factor_audit_logs",
        sa.Column("id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("user_id", communityguard.adapters.orm.CrossDatabaseUUID(), nullable=False),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("timestamp", communityguard.adapters.orm.TZAwareDatetime(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_two_factor_audit_logs_user_id_timestamp", "two_factor_audit_logs", ["user_id", "timestamp"], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_two_factor_audit_logs_user_id_timestamp", table_name="two_factor_audit_logs")
    op.drop_table("two_factor_audit_logs")
    op.drop_index("ix_user_backup_codes_user_id_code_hash", table_name="user_backup_codes")
    op.drop_table("user_backup_codes")
    op.drop_table("user_two_factor")
    op.drop_index("ix_user_sessions_expires_at", table_name="user_sessions")
    op.drop_index("ix_user_sessions_user_id_active", table_name="user_sessions")
    op.drop_table("user_sessions")
