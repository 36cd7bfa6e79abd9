"""create users and membership applications

Revision ID: 0001
Revises:
Create Date: 2026-10-18 12:00:00.000000

This migration:
1. Creates the user_role, membership_status and membership_application_status enums
2. Creates the users table
3. Creates the membership_applications table, linked to the member account
   created on approval
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create users and membership_applications."""
    bind = op.get_bind()

    user_role = postgresql.ENUM("USER", "ADMIN", name="user_role", create_type=False)
    membership_status = postgresql.ENUM(
        "PENDING", "APPROVED", "REJECTED", name="membership_status", create_type=False
    )
    application_status = postgresql.ENUM(
        "PENDING", "APPROVED", "REJECTED", name="membership_application_status", create_type=False
    )
    user_role.create(bind, checkfirst=True)
    membership_status.create(bind, checkfirst=True)
    application_status.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("student_number", sa.String(length=32), nullable=True),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False),
        sa.Column("membership_status", membership_status, nullable=False),
        sa.Column("roster_verified", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_student_number", "users", ["student_number"], unique=True)

    op.create_table(
        "membership_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        # Applicant
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("student_number", sa.String(length=32), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("payment_amount", sa.Numeric(10, 2), nullable=False),
        # Receipt
        sa.Column("receipt_filename", sa.String(length=255), nullable=False),
        sa.Column("receipt_original_name", sa.String(length=255), nullable=False),
        sa.Column("receipt_path", sa.String(length=500), nullable=False),
        sa.Column("receipt_mimetype", sa.String(length=100), nullable=False),
        sa.Column("receipt_size", sa.Integer(), nullable=False),
        # Roster verdict
        sa.Column("is_eligible", sa.Boolean(), nullable=False),
        sa.Column("roster_checked_at", sa.DateTime(timezone=True), nullable=True),
        # Review
        sa.Column("status", application_status, nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=False),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_number"),
    )
    op.create_index(
        "ix_membership_applications_status_created",
        "membership_applications",
        ["status", "created_at"],
    )


def downgrade() -> None:
    """Drop membership tables and enums."""
    op.drop_index(
        "ix_membership_applications_status_created", table_name="membership_applications"
    )
    op.drop_table("membership_applications")
    op.drop_index("ix_users_student_number", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    postgresql.ENUM(name="membership_application_status").drop(bind, checkfirst=True)
    postgresql.ENUM(name="membership_status").drop(bind, checkfirst=True)
    postgresql.ENUM(name="user_role").drop(bind, checkfirst=True)
