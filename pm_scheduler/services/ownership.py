from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import NotFound
from ..models import CalendarAssignment, Client, MaintenanceRecord, RecurringJobSeries, WorkOrder


def must_get_client(db: Session, *, org_id: int, client_id: int, for_update: bool = False) -> Client:
    q = select(Client).where(Client.id == int(client_id), Client.org_id == int(org_id))
    if for_update:
        q = q.with_for_update()
    row = db.scalar(q)
    if not row:
        raise NotFound("client", client_id)
    return row


def find_assignment(db: Session, *, org_id: int, assignment_id: int) -> Optional[CalendarAssignment]:
    return db.scalar(
        select(CalendarAssignment).where(
            CalendarAssignment.id == int(assignment_id),
            CalendarAssignment.org_id == int(org_id),
        )
    )


def must_get_assignment(db: Session, *, org_id: int, assignment_id: int) -> CalendarAssignment:
    row = find_assignment(db, org_id=org_id, assignment_id=assignment_id)
    if not row:
        raise NotFound("assignment", assignment_id)
    return row


def find_client_assignment(
    db: Session, *, org_id: int, client_id: int, year: int, month: int
) -> Optional[CalendarAssignment]:
    return db.scalar(
        select(CalendarAssignment).where(
            CalendarAssignment.org_id == int(org_id),
            CalendarAssignment.client_id == int(client_id),
            CalendarAssignment.year == int(year),
            CalendarAssignment.month == int(month),
        )
    )


def find_maintenance_record(db: Session, *, org_id: int, client_id: int, due_date: date) -> Optional[MaintenanceRecord]:
    return db.scalar(
        select(MaintenanceRecord).where(
            MaintenanceRecord.org_id == int(org_id),
            MaintenanceRecord.client_id == int(client_id),
            MaintenanceRecord.due_date == due_date,
        )
    )


def must_get_series(db: Session, *, org_id: int, series_id: int) -> RecurringJobSeries:
    row = db.scalar(
        select(RecurringJobSeries).where(
            RecurringJobSeries.id == int(series_id),
            RecurringJobSeries.org_id == int(org_id),
        )
    )
    if not row:
        raise NotFound("recurring series", series_id)
    return row


def must_get_work_order(db: Session, *, org_id: int, work_order_id: int) -> WorkOrder:
    row = db.scalar(select(WorkOrder).where(WorkOrder.id == int(work_order_id), WorkOrder.org_id == int(org_id)))
    if not row:
        raise NotFound("work order", work_order_id)
    return row
