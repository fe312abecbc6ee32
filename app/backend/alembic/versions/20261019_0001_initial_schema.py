"""initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


organization_role = postgresql.ENUM("ADMIN", "EMPLOYEE", name="organization_role", create_type=False)
project_status = postgresql.ENUM(
    "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED", name="project_status", create_type=False
)
cost_type = postgresql.ENUM("HOURLY_RATE", "FIXED_COST", "EXPENSE", name="cost_type", create_type=False)
recurring_pattern = postgresql.ENUM(
    "DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", name="recurring_pattern", create_type=False
)
invitation_status = postgresql.ENUM(
    "PENDING", "ACCEPTED", "EXPIRED", "REVOKED", name="invitation_status", create_type=False
)


def _uuid_fk(name: str, target: str, *, nullable: bool) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target), nullable=nullable)


def upgrade() -> None:
    organization_role.create(op.get_bind(), checkfirst=True)
    project_status.create(op.get_bind(), checkfirst=True)
    cost_type.create(op.get_bind(), checkfirst=True)
    recurring_pattern.create(op.get_bind(), checkfirst=True)
    invitation_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("system_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("default_hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "default_hourly_rate IS NULL OR default_hourly_rate >= 0",
            name="ck_users_default_hourly_rate_non_negative",
        ),
    )

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        _uuid_fk("owner_id", "users.id", nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("user_id", "users.id", nullable=False),
        _uuid_fk("organization_id", "organizations.id", nullable=False),
        sa.Column("role", organization_role, nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "organization_id", name="uq_memberships_user_organization"),
    )
    op.create_index("ix_memberships_organization_id", "memberships", ["organization_id"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("organization_id", "organizations.id", nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("estimated_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("fixed_cost", sa.Numeric(14, 2), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "estimated_hours IS NULL OR estimated_hours >= 0",
            name="ck_projects_estimated_hours_non_negative",
        ),
        sa.CheckConstraint("hourly_rate IS NULL OR hourly_rate >= 0", name="ck_projects_hourly_rate_non_negative"),
        sa.CheckConstraint("fixed_cost IS NULL OR fixed_cost >= 0", name="ck_projects_fixed_cost_non_negative"),
    )
    op.create_index("ix_projects_organization_id", "projects", ["organization_id"])

    op.create_table(
        "project_employees",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("project_id", "projects.id", nullable=False),
        _uuid_fk("user_id", "users.id", nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("role", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.Column("left_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_employees_project_user"),
        sa.CheckConstraint(
            "hourly_rate IS NULL OR hourly_rate >= 0",
            name="ck_project_employees_hourly_rate_non_negative",
        ),
    )

    op.create_table(
        "project_costs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("project_id", "projects.id", nullable=False),
        _uuid_fk("user_id", "users.id", nullable=True),
        sa.Column("cost_type", cost_type, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_project_costs_amount_non_negative"),
    )
    op.create_index("ix_project_costs_project_id", "project_costs", ["project_id"])

    op.create_table(
        "time_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("user_id", "users.id", nullable=False),
        _uuid_fk("organization_id", "organizations.id", nullable=True),
        _uuid_fk("project_id", "projects.id", nullable=True),
        sa.Column("clock_in", sa.DateTime(), nullable=False),
        sa.Column("clock_out", sa.DateTime(), nullable=True),
        sa.Column("total_hours", sa.Numeric(8, 2), nullable=True),
        sa.Column("description", sa.String(length=2000), nullable=True),
        _uuid_fk("edited_by", "users.id", nullable=True),
        sa.Column("edited_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "total_hours IS NULL OR total_hours >= 0",
            name="ck_time_entries_total_hours_non_negative",
        ),
        sa.CheckConstraint(
            "clock_out IS NULL OR clock_out >= clock_in",
            name="ck_time_entries_clock_out_after_clock_in",
        ),
    )
    op.create_index("ix_time_entries_user_clock_in", "time_entries", ["user_id", "clock_in"])
    op.create_index("ix_time_entries_organization_id", "time_entries", ["organization_id"])
    op.create_index("ix_time_entries_project_id", "time_entries", ["project_id"])

    op.create_table(
        "schedules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("organization_id", "organizations.id", nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_schedules_organization_id", "schedules", ["organization_id"])

    op.create_table(
        "shifts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("schedule_id", "schedules.id", nullable=False),
        _uuid_fk("user_id", "users.id", nullable=True),
        _uuid_fk("project_id", "projects.id", nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recurring_pattern", recurring_pattern, nullable=True),
        sa.Column("recurring_end_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("end_time > start_time", name="ck_shifts_end_after_start"),
    )
    op.create_index("ix_shifts_schedule_id", "shifts", ["schedule_id"])
    op.create_index("ix_shifts_user_start", "shifts", ["user_id", "start_time"])

    op.create_table(
        "invitations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("organization_id", "organizations.id", nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", organization_role, nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False, unique=True),
        sa.Column("status", invitation_status, nullable=False),
        _uuid_fk("invited_by", "users.id", nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_invitations_organization_email", "invitations", ["organization_id", "email"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("user_id", "users.id", nullable=True),
        _uuid_fk("organization_id", "organizations.id", nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("entity_name", sa.String(length=255), nullable=True),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_organization_id", "audit_logs", ["organization_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_organization_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_invitations_organization_email", table_name="invitations")
    op.drop_table("invitations")

    op.drop_index("ix_shifts_user_start", table_name="shifts")
    op.drop_index("ix_shifts_schedule_id", table_name="shifts")
    op.drop_table("shifts")

    op.drop_index("ix_schedules_organization_id", table_name="schedules")
    op.drop_table("schedules")

    op.drop_index("ix_time_entries_project_id", table_name="time_entries")
    op.drop_index("ix_time_entries_organization_id", table_name="time_entries")
    op.drop_index("ix_time_entries_user_clock_in", table_name="time_entries")
    op.drop_table("time_entries")

    op.drop_index("ix_project_costs_project_id", table_name="project_costs")
    op.drop_table("project_costs")
    op.drop_table("project_employees")

    op.drop_index("ix_projects_organization_id", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_memberships_organization_id", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("organizations")
    op.drop_table("users")

    invitation_status.drop(op.get_bind(), checkfirst=True)
    recurring_pattern.drop(op.get_bind(), checkfirst=True)
    cost_type.drop(op.get_bind(), checkfirst=True)
    project_status.drop(op.get_bind(), checkfirst=True)
    organization_role.drop(op.get_bind(), checkfirst=True)
