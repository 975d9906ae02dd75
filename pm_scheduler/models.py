from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Multitenant RBAC tables
# -----------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class OrgMembership(Base):
    __tablename__ = "org_memberships"
    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="owner")  # owner|operator|analyst
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)

    client_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Schedule owner
# -----------------------------
class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # month indexes 0-11 (Jan=0)
    selected_months: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    inactive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    next_due: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    assignments: Mapped[List["CalendarAssignment"]] = relationship(back_populates="client")

    def model_dump(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "company_name": self.company_name,
            "location": self.location,
            "selected_months": list(self.selected_months or []),
            "inactive": bool(self.inactive),
            "next_due": self.next_due.isoformat() if self.next_due else None,
        }


# -----------------------------
# Visit slots / completion facts
# -----------------------------
class CalendarAssignment(Base):
    __tablename__ = "calendar_assignments"
    __table_args__ = (
        UniqueConstraint("org_id", "client_id", "year", "month", name="uq_calendar_assignments_org_client_month"),
        Index("ix_calendar_assignments_org_year_month", "org_id", "year", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    job_number: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_technician_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-12
    day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # None = unscheduled placeholder
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    auto_due_date: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    client: Mapped["Client"] = relationship(back_populates="assignments")

    def model_dump(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "client_id": self.client_id,
            "job_number": self.job_number,
            "assigned_technician_ids": list(self.assigned_technician_ids or []),
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "scheduled_hour": self.scheduled_hour,
            "auto_due_date": bool(self.auto_due_date),
            "completed": bool(self.completed),
            "completion_notes": self.completion_notes,
        }


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"
    __table_args__ = (UniqueConstraint("org_id", "client_id", "due_date", name="uq_maintenance_records_org_client_due"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def model_dump(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class CompanyCounter(Base):
    __tablename__ = "company_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, unique=True)
    next_job_number: Mapped[int] = mapped_column(Integer, nullable=False, default=10000)
    next_invoice_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1001)


# -----------------------------
# Recurring series / work orders
# -----------------------------
class RecurringJobSeries(Base):
    __tablename__ = "recurring_job_series"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    base_summary: Mapped[str] = mapped_column(String(255), nullable=False)
    base_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    base_job_type: Mapped[str] = mapped_column(String(30), nullable=False, default="service")
    base_priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    default_technician_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(60), nullable=True, default="America/Toronto")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    phases: Mapped[List["RecurringJobPhase"]] = relationship(
        back_populates="series",
        cascade="all, delete-orphan",
        order_by="RecurringJobPhase.order_index",
    )


class RecurringJobPhase(Base):
    __tablename__ = "recurring_job_phases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recurring_job_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    frequency: Mapped[str] = mapped_column(String(20), nullable=False)  # daily|weekly|monthly|quarterly|yearly
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    occurrences: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    until_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    series: Mapped["RecurringJobSeries"] = relationship(back_populates="phases")


class WorkOrder(Base):
    __tablename__ = "work_orders"
    __table_args__ = (Index("ix_work_orders_org_series_start", "org_id", "recurring_series_id", "scheduled_start"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    job_number: Mapped[int] = mapped_column(Integer, nullable=False)
    primary_technician_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    assigned_technician_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    job_type: Mapped[str] = mapped_column(String(30), nullable=False, default="service")

    summary: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    scheduled_start: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    scheduled_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    recurring_series_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("recurring_job_series.id", ondelete="SET NULL"), nullable=True, index=True
    )
    calendar_assignment_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("calendar_assignments.id", ondelete="SET NULL"), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def model_dump(self) -> dict:
        return {
            "id": self.id,
            "job_number": self.job_number,
            "location_id": self.location_id,
            "status": self.status,
            "priority": self.priority,
            "job_type": self.job_type,
            "summary": self.summary,
            "scheduled_start": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "actual_start": self.actual_start.isoformat() if self.actual_start else None,
            "actual_end": self.actual_end.isoformat() if self.actual_end else None,
            "recurring_series_id": self.recurring_series_id,
            "calendar_assignment_id": self.calendar_assignment_id,
        }
