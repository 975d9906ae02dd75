from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..db import unit_of_work
from ..domain.audit import audit_write
from ..domain.due_dates import DUE_DAY, NO_SCHEDULE_DATE, is_no_schedule, next_cycle_after, normalize_months
from ..domain.events import emit_workflow_event
from ..domain.work_order_status import assert_transition, can_transition
from ..models import CalendarAssignment, Client, MaintenanceRecord, WorkOrder
from .assignment_store import insert_assignment
from .ownership import (
    find_client_assignment,
    find_maintenance_record,
    must_get_assignment,
    must_get_client,
)

log = logging.getLogger("pm_scheduler.completion")

# -----------------------------------------------------------------------------
# Completion toggle
# -----------------------------------------------------------------------------
# One cycle (client, due_date) is either Open (no record / completed_at null)
# or Completed (completed_at set). Flipping it touches four records:
#
#   1. MaintenanceRecord.completed_at
#   2. Client.next_due
#   3. CalendarAssignment.completed for the due month (if a slot exists)
#   4. the next cycle's placeholder slot (completion only, if missing)
#
# Records are keyed on the 15th of the due month, whatever day the caller
# passes, so a visit moved to the 20th still completes the same cycle.
#
# plan_toggle() reads and decides; apply_completion() writes. Both run inside
# one unit_of_work so a failure anywhere leaves the pre-toggle state.
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CompletionCommand:
    org_id: int
    client_id: int
    due_date: date
    complete: bool  # target state
    record_id: Optional[int]
    assignment_id: Optional[int]
    client_next_due: date
    provision_slot: Optional[tuple[int, int]]  # (year, month) of the next cycle, if a slot must be created
    completed_at: Optional[datetime]


@dataclass(frozen=True)
class ToggleResult:
    completed: bool
    next_due: Optional[date] = None
    record_id: Optional[int] = None
    provisioned_assignment_id: Optional[int] = None

    def as_dict(self) -> dict:
        out: dict = {"completed": self.completed}
        if self.completed:
            out["next_due"] = self.next_due.isoformat() if self.next_due else None
        out["record_id"] = self.record_id
        out["provisioned_assignment_id"] = self.provisioned_assignment_id
        return out


def _utcnow() -> datetime:
    return datetime.utcnow()


def cycle_date_for(year: int, month: int) -> date:
    """Canonical due date of the cycle that owns the (year, month) slot."""
    # records are keyed on the 15th, never on the day the caller passed as dueDate
    return date(int(year), int(month), DUE_DAY)


def plan_toggle(
    db: Session,
    p: Principal,
    *,
    client: Client,
    due_date: date,
    now: datetime,
) -> CompletionCommand:
    key = cycle_date_for(due_date.year, due_date.month)
    record = find_maintenance_record(db, org_id=p.org_id, client_id=client.id, due_date=key)
    slot = find_client_assignment(
        db, org_id=p.org_id, client_id=client.id, year=due_date.year, month=due_date.month
    )

    if record is not None and record.completed_at is not None:
        restored = due_date
        if client.inactive or not normalize_months(client.selected_months):
            restored = NO_SCHEDULE_DATE
        return CompletionCommand(
            org_id=p.org_id,
            client_id=int(client.id),
            due_date=key,
            complete=False,
            record_id=int(record.id),
            assignment_id=int(slot.id) if slot else None,
            client_next_due=restored,
            provision_slot=None,
            completed_at=None,
        )

    nxt = next_cycle_after(client.selected_months, bool(client.inactive), due_date)
    provision: Optional[tuple[int, int]] = None
    if not is_no_schedule(nxt):
        existing_next = find_client_assignment(
            db, org_id=p.org_id, client_id=client.id, year=nxt.year, month=nxt.month
        )
        if existing_next is None:
            provision = (nxt.year, nxt.month)

    return CompletionCommand(
        org_id=p.org_id,
        client_id=int(client.id),
        complete=True,
        due_date=key,
        record_id=int(record.id) if record else None,
        assignment_id=int(slot.id) if slot else None,
        client_next_due=nxt,
        provision_slot=provision,
        completed_at=now,
    )


def _complete_linked_work_orders(db: Session, p: Principal, assignment_id: int, now: datetime) -> list[int]:
    rows = db.scalars(
        select(WorkOrder).where(
            WorkOrder.org_id == p.org_id,
            WorkOrder.calendar_assignment_id == int(assignment_id),
            WorkOrder.is_active.is_(True),
        )
    ).all()

    moved: list[int] = []
    for wo in rows:
        if wo.status == "completed" or not can_transition(wo.status, "completed"):
            continue
        assert_transition(wo.status, "completed")
        before = wo.model_dump()
        wo.status = "completed"
        if wo.actual_end is None:
            wo.actual_end = now
        wo.updated_at = now
        db.add(wo)
        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="work_order.status",
            entity_type="WorkOrder",
            entity_id=wo.id,
            before=before,
            after=wo.model_dump(),
        )
        moved.append(int(wo.id))
    return moved


def apply_completion(db: Session, p: Principal, client: Client, cmd: CompletionCommand) -> ToggleResult:
    client_before = client.model_dump()

    # 1. completion fact
    record: Optional[MaintenanceRecord] = None
    if cmd.record_id is not None:
        record = db.get(MaintenanceRecord, cmd.record_id)
    if record is None:
        record = MaintenanceRecord(org_id=p.org_id, client_id=cmd.client_id, due_date=cmd.due_date)
    record.completed_at = cmd.completed_at
    db.add(record)

    # 2. schedule owner
    client.next_due = cmd.client_next_due
    db.add(client)

    # 3. this cycle's slot
    moved: list[int] = []
    if cmd.assignment_id is not None:
        slot = db.get(CalendarAssignment, cmd.assignment_id)
        if slot is not None:
            slot.completed = cmd.complete
            db.add(slot)
            if cmd.complete:
                moved = _complete_linked_work_orders(db, p, cmd.assignment_id, cmd.completed_at or _utcnow())

    # 4. next cycle placeholder
    provisioned: Optional[CalendarAssignment] = None
    if cmd.complete and cmd.provision_slot is not None:
        year, month = cmd.provision_slot
        provisioned = insert_assignment(
            db,
            p,
            client_id=cmd.client_id,
            year=year,
            month=month,
            day=None,
            scheduled_date=cmd.client_next_due,
            auto_due_date=True,
            completed=False,
        )

    db.flush()

    audit_write(
        db,
        org_id=p.org_id,
        actor_user_id=p.user_id or None,
        action="maintenance.complete" if cmd.complete else "maintenance.reopen",
        entity_type="Client",
        entity_id=client.id,
        before=client_before,
        after={**client.model_dump(), "record": record.model_dump()},
    )
    emit_workflow_event(
        db,
        principal=p,
        event_type="maintenance.completed" if cmd.complete else "maintenance.reopened",
        client_id=client.id,
        payload={
            "due_date": cmd.due_date.isoformat(),
            "next_due": cmd.client_next_due.isoformat(),
            "assignment_id": cmd.assignment_id,
            "work_orders_completed": moved,
        },
    )
    if provisioned is not None:
        emit_workflow_event(
            db,
            principal=p,
            event_type="assignment.auto_provisioned",
            client_id=client.id,
            payload={"assignment_id": int(provisioned.id), "year": provisioned.year, "month": provisioned.month},
        )

    return ToggleResult(
        completed=cmd.complete,
        next_due=cmd.client_next_due if cmd.complete else None,
        record_id=int(record.id),
        provisioned_assignment_id=int(provisioned.id) if provisioned else None,
    )


def toggle_in_transaction(
    db: Session, p: Principal, *, client_id: int, due_date: date, now: Optional[datetime] = None
) -> ToggleResult:
    client = must_get_client(db, org_id=p.org_id, client_id=client_id, for_update=True)
    cmd = plan_toggle(db, p, client=client, due_date=due_date, now=now or _utcnow())
    return apply_completion(db, p, client, cmd)


def toggle_completion(
    db: Session, p: Principal, *, client_id: int, due_date: date, now: Optional[datetime] = None
) -> ToggleResult:
    """
    Flip the cycle identified by (client_id, due_date) between Open and Completed.

    due_date comes from the caller (the cycle on screen), never from today:
    completing an overdue or future cycle is legitimate. Raises NotFound for an
    unknown client and TransactionFailure if the store aborts; in both cases
    nothing is written.
    """
    with unit_of_work(db):
        res = toggle_in_transaction(db, p, client_id=client_id, due_date=due_date, now=now)

    log.info(
        "maintenance %s",
        "completed" if res.completed else "reopened",
        extra={"org_id": p.org_id, "client_id": int(client_id)},
    )
    return res


def set_assignment_completion_in_transaction(
    db: Session, p: Principal, *, assignment_id: int, completed: bool, now: Optional[datetime] = None
) -> Optional[ToggleResult]:
    """
    Drive the toggle from a calendar slot. The slot's scheduled date names the
    cycle; the record itself is keyed on the 15th of the slot's month.
    Returns None when the cycle is already in the requested state.
    """
    slot = must_get_assignment(db, org_id=p.org_id, assignment_id=assignment_id)
    client = must_get_client(db, org_id=p.org_id, client_id=slot.client_id, for_update=True)
    due = slot.scheduled_date
    if due is None or (due.year, due.month) != (slot.year, slot.month):
        due = cycle_date_for(slot.year, slot.month)

    cmd = plan_toggle(db, p, client=client, due_date=due, now=now or _utcnow())
    if cmd.complete != bool(completed):
        # cycle already in the requested state; keep the slot flag in step
        if slot.completed != bool(completed):
            slot.completed = bool(completed)
            db.add(slot)
            db.flush()
        return None
    return apply_completion(db, p, client, cmd)


def set_assignment_completion(
    db: Session, p: Principal, *, assignment_id: int, completed: bool, now: Optional[datetime] = None
) -> Optional[ToggleResult]:
    with unit_of_work(db):
        return set_assignment_completion_in_transaction(
            db, p, assignment_id=assignment_id, completed=completed, now=now
        )
