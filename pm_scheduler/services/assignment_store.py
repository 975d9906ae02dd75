from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.due_dates import DUE_DAY, compute_next_due, is_no_schedule, normalize_months
from ..domain.errors import DuplicateAssignment
from ..models import CalendarAssignment, Client
from .counters import issue_job_number
from .ownership import find_client_assignment

log = logging.getLogger("pm_scheduler.assignments")

# -----------------------------------------------------------------------------
# Calendar assignment primitives
# -----------------------------------------------------------------------------
# Nothing here commits. Each helper adds/flushes inside the caller's
# transaction so multi-record operations (completion, delete + recompute)
# stay one atomic unit.
# -----------------------------------------------------------------------------

PATCHABLE_FIELDS = (
    "year",
    "month",
    "day",
    "scheduled_date",
    "scheduled_hour",
    "auto_due_date",
    "completion_notes",
    "assigned_technician_ids",
)


def _validate_slot(year: int, month: int, day: Optional[int]) -> None:
    if not 1 <= int(month) <= 12:
        raise ValueError("month must be 1-12")
    if day is not None:
        # raises ValueError for impossible days (Feb 30 ...)
        date(int(year), int(month), int(day))


def default_scheduled_date(year: int, month: int, day: Optional[int]) -> date:
    return date(int(year), int(month), int(day) if day is not None else DUE_DAY)


def insert_assignment(
    db: Session,
    p: Principal,
    *,
    client_id: int,
    year: int,
    month: int,
    day: Optional[int] = None,
    scheduled_date: Optional[date] = None,
    scheduled_hour: Optional[int] = None,
    auto_due_date: bool = True,
    completed: bool = False,
    completion_notes: Optional[str] = None,
    assigned_technician_ids: Optional[list[Any]] = None,
) -> CalendarAssignment:
    _validate_slot(year, month, day)

    existing = find_client_assignment(db, org_id=p.org_id, client_id=client_id, year=year, month=month)
    if existing is not None:
        raise DuplicateAssignment(client_id=client_id, year=year, month=month, existing_id=int(existing.id))

    row = CalendarAssignment(
        org_id=p.org_id,
        client_id=int(client_id),
        job_number=issue_job_number(db, org_id=p.org_id),
        assigned_technician_ids=[str(t) for t in (assigned_technician_ids or [])],
        year=int(year),
        month=int(month),
        day=int(day) if day is not None else None,
        scheduled_date=scheduled_date or default_scheduled_date(year, month, day),
        scheduled_hour=scheduled_hour,
        auto_due_date=bool(auto_due_date),
        completed=bool(completed),
        completion_notes=completion_notes,
    )

    # unique (org, client, year, month) backs up the check above when two
    # creators race; only the savepoint is lost, not the caller's transaction
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        winner = find_client_assignment(db, org_id=p.org_id, client_id=client_id, year=year, month=month)
        raise DuplicateAssignment(
            client_id=client_id, year=year, month=month, existing_id=int(winner.id) if winner is not None else None
        )

    log.info(
        "assignment inserted",
        extra={"org_id": p.org_id, "client_id": int(client_id), "assignment_id": int(row.id)},
    )
    return row


def apply_patch(db: Session, p: Principal, row: CalendarAssignment, patch: dict[str, Any]) -> dict[str, tuple[Any, Any]]:
    """
    Partial update: only keys present in `patch` change. Returns {field: (old, new)}.

    The slot stays in its (year, month) unless year/month are sent explicitly,
    so a scheduled_date outside the slot's month is a reschedule, not a move.
    `day` and `scheduled_date` are independent fields. `completed` is not
    handled here.
    """
    changes: dict[str, tuple[Any, Any]] = {}
    data = {k: v for k, v in patch.items() if k in PATCHABLE_FIELDS}

    if "year" in data or "month" in data or "day" in data:
        new_year = int(data.get("year", row.year))
        new_month = int(data.get("month", row.month))
        new_day = data["day"] if "day" in data else row.day
        _validate_slot(new_year, new_month, new_day)

        if (new_year, new_month) != (row.year, row.month):
            clash = find_client_assignment(db, org_id=p.org_id, client_id=row.client_id, year=new_year, month=new_month)
            if clash is not None and clash.id != row.id:
                raise DuplicateAssignment(client_id=row.client_id, year=new_year, month=new_month, existing_id=int(clash.id))

    if "assigned_technician_ids" in data:
        data["assigned_technician_ids"] = [str(t) for t in (data["assigned_technician_ids"] or [])]

    for k, v in data.items():
        if k == "scheduled_date" and v is None:
            continue
        old = getattr(row, k)
        if old != v:
            setattr(row, k, v)
            changes[k] = (old, v)

    if changes:
        db.add(row)
        db.flush()
    return changes


def schedule_moves_next_due(client: Client, row: CalendarAssignment) -> bool:
    """
    Placing the open cycle's visit on a day moves nextDue onto that day.

    Only the slot for the month nextDue currently points at counts; slots for
    later cycles, completed slots and clients without an active schedule leave
    nextDue alone.
    """
    if client.inactive or is_no_schedule(client.next_due) or row.completed:
        return False
    if (row.month - 1) not in normalize_months(client.selected_months):
        return False
    return (row.year, row.month) == (client.next_due.year, client.next_due.month)


def recompute_client_next_due(db: Session, client: Client, *, today: date) -> date:
    client.next_due = compute_next_due(client.selected_months, bool(client.inactive), today)
    db.add(client)
    db.flush()
    return client.next_due


def delete_row(db: Session, row: CalendarAssignment) -> None:
    db.delete(row)
    db.flush()
