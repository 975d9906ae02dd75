"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2025-07-01
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(name: str) -> bool:
    return name in inspect(op.get_bind()).get_table_names()


def upgrade() -> None:
    # -------------------------
    # Tenancy / RBAC
    # -------------------------
    if not _has_table("organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("slug", sa.String(length=80), nullable=False),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    if not _has_table("app_users"):
        op.create_table(
            "app_users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("display_name", sa.String(length=160), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    if not _has_table("org_memberships"):
        op.create_table(
            "org_memberships",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="owner"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),
        )
        op.create_index("ix_org_memberships_org_id", "org_memberships", ["org_id"])
        op.create_index("ix_org_memberships_user_id", "org_memberships", ["user_id"])

    if not _has_table("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("action", sa.String(length=80), nullable=False),
            sa.Column("entity_type", sa.String(length=80), nullable=False),
            sa.Column("entity_id", sa.String(length=80), nullable=False),
            sa.Column("before_json", sa.Text(), nullable=True),
            sa.Column("after_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_audit_events_org_id", "audit_events", ["org_id"])

    # -------------------------
    # Clients (schedule owners)
    # -------------------------
    if not _has_table("clients"):
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("company_name", sa.String(length=200), nullable=False),
            sa.Column("location", sa.String(length=200), nullable=True),
            sa.Column("selected_months", sa.JSON(), nullable=False),
            sa.Column("inactive", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("next_due", sa.Date(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_clients_org_id", "clients", ["org_id"])

    if not _has_table("workflow_events"):
        op.create_table(
            "workflow_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("payload_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_workflow_events_org_id", "workflow_events", ["org_id"])
        op.create_index("ix_workflow_events_client_id", "workflow_events", ["client_id"])
        op.create_index("ix_workflow_events_event_type", "workflow_events", ["event_type"])

    # -------------------------
    # Calendar / completion facts / counters
    # -------------------------
    if not _has_table("calendar_assignments"):
        op.create_table(
            "calendar_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
            sa.Column("job_number", sa.Integer(), nullable=False),
            sa.Column("assigned_technician_ids", sa.JSON(), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("month", sa.Integer(), nullable=False),
            sa.Column("day", sa.Integer(), nullable=True),
            sa.Column("scheduled_date", sa.Date(), nullable=False),
            sa.Column("scheduled_hour", sa.Integer(), nullable=True),
            sa.Column("auto_due_date", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("completion_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("org_id", "client_id", "year", "month", name="uq_calendar_assignments_org_client_month"),
        )
        op.create_index("ix_calendar_assignments_org_id", "calendar_assignments", ["org_id"])
        op.create_index("ix_calendar_assignments_client_id", "calendar_assignments", ["client_id"])
        op.create_index("ix_calendar_assignments_org_year_month", "calendar_assignments", ["org_id", "year", "month"])

    if not _has_table("maintenance_records"):
        op.create_table(
            "maintenance_records",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.UniqueConstraint("org_id", "client_id", "due_date", name="uq_maintenance_records_org_client_due"),
        )
        op.create_index("ix_maintenance_records_org_id", "maintenance_records", ["org_id"])
        op.create_index("ix_maintenance_records_client_id", "maintenance_records", ["client_id"])

    if not _has_table("company_counters"):
        op.create_table(
            "company_counters",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False, unique=True),
            sa.Column("next_job_number", sa.Integer(), nullable=False, server_default="10000"),
            sa.Column("next_invoice_number", sa.Integer(), nullable=False, server_default="1001"),
        )

    # -------------------------
    # Recurring series / work orders
    # -------------------------
    if not _has_table("recurring_job_series"):
        op.create_table(
            "recurring_job_series",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("location_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
            sa.Column("base_summary", sa.String(length=255), nullable=False),
            sa.Column("base_description", sa.Text(), nullable=True),
            sa.Column("base_job_type", sa.String(length=30), nullable=False, server_default="service"),
            sa.Column("base_priority", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column("default_technician_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("timezone", sa.String(length=60), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("last_generated_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_recurring_job_series_org_id", "recurring_job_series", ["org_id"])
        op.create_index("ix_recurring_job_series_location_id", "recurring_job_series", ["location_id"])

    if not _has_table("recurring_job_phases"):
        op.create_table(
            "recurring_job_phases",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "series_id",
                sa.Integer(),
                sa.ForeignKey("recurring_job_series.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("frequency", sa.String(length=20), nullable=False),
            sa.Column("interval", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("occurrences", sa.Integer(), nullable=True),
            sa.Column("until_date", sa.Date(), nullable=True),
        )
        op.create_index("ix_recurring_job_phases_series_id", "recurring_job_phases", ["series_id"])

    if not _has_table("work_orders"):
        op.create_table(
            "work_orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("location_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
            sa.Column("job_number", sa.Integer(), nullable=False),
            sa.Column("primary_technician_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("assigned_technician_ids", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column("job_type", sa.String(length=30), nullable=False, server_default="service"),
            sa.Column("summary", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("scheduled_start", sa.DateTime(), nullable=True),
            sa.Column("scheduled_end", sa.DateTime(), nullable=True),
            sa.Column("actual_start", sa.DateTime(), nullable=True),
            sa.Column("actual_end", sa.DateTime(), nullable=True),
            sa.Column(
                "recurring_series_id",
                sa.Integer(),
                sa.ForeignKey("recurring_job_series.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column(
                "calendar_assignment_id",
                sa.Integer(),
                sa.ForeignKey("calendar_assignments.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_work_orders_org_id", "work_orders", ["org_id"])
        op.create_index("ix_work_orders_location_id", "work_orders", ["location_id"])
        op.create_index("ix_work_orders_recurring_series_id", "work_orders", ["recurring_series_id"])
        op.create_index("ix_work_orders_calendar_assignment_id", "work_orders", ["calendar_assignment_id"])
        op.create_index(
            "ix_work_orders_org_series_start", "work_orders", ["org_id", "recurring_series_id", "scheduled_start"]
        )


def downgrade() -> None:
    for name in (
        "work_orders",
        "recurring_job_phases",
        "recurring_job_series",
        "company_counters",
        "maintenance_records",
        "calendar_assignments",
        "workflow_events",
        "clients",
        "audit_events",
        "org_memberships",
        "app_users",
        "organizations",
    ):
        if _has_table(name):
            op.drop_table(name)
