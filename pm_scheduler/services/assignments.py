from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..db import unit_of_work
from ..domain.audit import audit_write
from ..domain.events import emit_workflow_event
from ..models import CalendarAssignment
from .assignment_store import (
    apply_patch,
    delete_row,
    insert_assignment,
    recompute_client_next_due,
    schedule_moves_next_due,
)
from .completion import set_assignment_completion_in_transaction
from .ownership import find_assignment, find_client_assignment, must_get_assignment, must_get_client

log = logging.getLogger("pm_scheduler.assignments")


def _move_next_due(db: Session, row: CalendarAssignment) -> None:
    client = must_get_client(db, org_id=row.org_id, client_id=row.client_id, for_update=True)
    if schedule_moves_next_due(client, row) and client.next_due != row.scheduled_date:
        client.next_due = row.scheduled_date
        db.add(client)
        db.flush()


def create_assignment(
    db: Session,
    p: Principal,
    *,
    client_id: int,
    year: int,
    month: int,
    day: Optional[int] = None,
    scheduled_date: Optional[date] = None,
    scheduled_hour: Optional[int] = None,
    auto_due_date: Optional[bool] = None,
    completion_notes: Optional[str] = None,
    assigned_technician_ids: Optional[list[Any]] = None,
) -> CalendarAssignment:
    """
    Create the visit slot for (client, year, month).

    DuplicateAssignment if the slot already exists (including a concurrent
    creator winning the race); NotFound if the client is not in this org.
    """
    with unit_of_work(db):
        must_get_client(db, org_id=p.org_id, client_id=client_id)
        row = insert_assignment(
            db,
            p,
            client_id=client_id,
            year=year,
            month=month,
            day=day,
            scheduled_date=scheduled_date,
            scheduled_hour=scheduled_hour,
            auto_due_date=(day is None) if auto_due_date is None else bool(auto_due_date),
            completion_notes=completion_notes,
            assigned_technician_ids=assigned_technician_ids,
        )
        _move_next_due(db, row)

        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="assignment.create",
            entity_type="CalendarAssignment",
            entity_id=row.id,
            after=row.model_dump(),
        )
        emit_workflow_event(
            db,
            principal=p,
            event_type="assignment.created",
            client_id=row.client_id,
            payload={"assignment_id": int(row.id), "job_number": row.job_number, "year": row.year, "month": row.month},
        )

    return row


def get_assignment(db: Session, p: Principal, *, assignment_id: int) -> Optional[CalendarAssignment]:
    return find_assignment(db, org_id=p.org_id, assignment_id=assignment_id)


def get_client_assignment(
    db: Session, p: Principal, *, client_id: int, year: int, month: int
) -> Optional[CalendarAssignment]:
    return find_client_assignment(db, org_id=p.org_id, client_id=client_id, year=year, month=month)


def update_assignment(db: Session, p: Principal, *, assignment_id: int, patch: dict[str, Any]) -> CalendarAssignment:
    """
    Partial update. Only keys present in `patch` change.

    `completed` is its own transition: when it differs from the slot's state it
    runs the completion toggle for the slot's cycle in the same transaction.
    Rescheduling alone never touches `completed`.
    """
    with unit_of_work(db):
        row = must_get_assignment(db, org_id=p.org_id, assignment_id=assignment_id)
        before = row.model_dump()

        changes = apply_patch(db, p, row, patch)
        if "scheduled_date" in changes:
            _move_next_due(db, row)

        if "completed" in patch and patch["completed"] is not None:
            set_assignment_completion_in_transaction(
                db, p, assignment_id=int(row.id), completed=bool(patch["completed"])
            )

        if changes:
            audit_write(
                db,
                org_id=p.org_id,
                actor_user_id=p.user_id or None,
                action="assignment.update",
                entity_type="CalendarAssignment",
                entity_id=row.id,
                before=before,
                after=row.model_dump(),
            )

    log.info(
        "assignment updated",
        extra={"org_id": p.org_id, "client_id": int(row.client_id), "assignment_id": int(row.id)},
    )
    return row


def delete_assignment(
    db: Session,
    p: Principal,
    *,
    assignment_id: int,
    recompute_next_due: bool = True,
    today: Optional[date] = None,
) -> bool:
    """
    Delete a slot. Returns False when it does not exist in this org.

    With recompute_next_due (the default) the owning client's nextDue is
    recomputed from `today` in the same transaction, so it never points at a
    slot that was just removed.
    """
    with unit_of_work(db):
        row = find_assignment(db, org_id=p.org_id, assignment_id=assignment_id)
        if row is None:
            return False

        snapshot = row.model_dump()
        client_id = int(row.client_id)
        delete_row(db, row)

        next_due = None
        if recompute_next_due:
            client = must_get_client(db, org_id=p.org_id, client_id=client_id, for_update=True)
            next_due = recompute_client_next_due(db, client, today=today or date.today())

        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="assignment.delete",
            entity_type="CalendarAssignment",
            entity_id=snapshot["id"],
            before=snapshot,
        )
        emit_workflow_event(
            db,
            principal=p,
            event_type="assignment.deleted",
            client_id=client_id,
            payload={
                "assignment_id": snapshot["id"],
                "next_due": next_due.isoformat() if next_due else None,
            },
        )

    log.info(
        "assignment deleted",
        extra={"org_id": p.org_id, "client_id": client_id, "assignment_id": snapshot["id"]},
    )
    return True


def delete_assignment_and_recompute(
    db: Session, p: Principal, *, assignment_id: int, today: Optional[date] = None
) -> bool:
    return delete_assignment(db, p, assignment_id=assignment_id, recompute_next_due=True, today=today)


def list_assignments(
    db: Session,
    p: Principal,
    *,
    year: int,
    month: int,
    technician_id: Optional[Any] = None,
) -> list[CalendarAssignment]:
    rows = db.scalars(
        select(CalendarAssignment)
        .where(
            CalendarAssignment.org_id == p.org_id,
            CalendarAssignment.year == int(year),
            CalendarAssignment.month == int(month),
        )
        .order_by(CalendarAssignment.scheduled_date.asc(), CalendarAssignment.id.asc())
    ).all()

    if technician_id is None:
        return list(rows)

    # JSON array column; filter here so the query stays portable across backends
    tid = str(technician_id)
    return [r for r in rows if tid in [str(t) for t in (r.assigned_technician_ids or [])]]
