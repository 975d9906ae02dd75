from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.due_dates import month_window, normalize_months
from ..models import CalendarAssignment, Client, MaintenanceRecord

# -----------------------------------------------------------------------------
# Backlog scanner (read-only)
# -----------------------------------------------------------------------------
# Window is exactly {previous, current, next} calendar month relative to
# `today`, rebuilt on every call. Gaps older than the window are reported by
# old_unscheduled(), never by scan_backlog().
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BacklogEntry:
    kind: str  # existing | missing
    client_id: int
    company_name: str
    year: int
    month: int
    assignment_id: Optional[int] = None
    job_number: Optional[int] = None
    scheduled_date: Optional[date] = None

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "client_id": self.client_id,
            "company_name": self.company_name,
            "year": self.year,
            "month": self.month,
            "assignment_id": self.assignment_id,
            "job_number": self.job_number,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
        }


@dataclass(frozen=True)
class BacklogResult:
    window: list[tuple[int, int]]
    existing: list[BacklogEntry] = field(default_factory=list)
    missing: list[BacklogEntry] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "window": [{"year": y, "month": m} for (y, m) in self.window],
            "existing": [e.as_dict() for e in self.existing],
            "missing": [e.as_dict() for e in self.missing],
        }


def _in_window(window: list[tuple[int, int]]):
    return or_(*[and_(CalendarAssignment.year == y, CalendarAssignment.month == m) for (y, m) in window])


def _period_key(col_year, col_month):
    return col_year * 100 + col_month


def scan_backlog(db: Session, p: Principal, *, today: Optional[date] = None) -> BacklogResult:
    today = today or date.today()
    window = month_window(today)

    existing_rows = db.execute(
        select(CalendarAssignment, Client)
        .join(Client, Client.id == CalendarAssignment.client_id)
        .where(
            CalendarAssignment.org_id == p.org_id,
            Client.org_id == p.org_id,
            Client.inactive.is_(False),
            CalendarAssignment.day.is_(None),
            CalendarAssignment.completed.is_(False),
            _in_window(window),
        )
        .order_by(CalendarAssignment.year, CalendarAssignment.month, Client.company_name)
    ).all()

    existing = [
        BacklogEntry(
            kind="existing",
            client_id=int(c.id),
            company_name=c.company_name,
            year=a.year,
            month=a.month,
            assignment_id=int(a.id),
            job_number=a.job_number,
            scheduled_date=a.scheduled_date,
        )
        for (a, c) in existing_rows
    ]

    # every slot in the window, scheduled or not, completed or not
    taken = {
        (int(cid), int(y), int(m))
        for (cid, y, m) in db.execute(
            select(CalendarAssignment.client_id, CalendarAssignment.year, CalendarAssignment.month).where(
                CalendarAssignment.org_id == p.org_id,
                _in_window(window),
            )
        ).all()
    }

    clients = db.scalars(
        select(Client)
        .where(Client.org_id == p.org_id, Client.inactive.is_(False))
        .order_by(Client.company_name, Client.id)
    ).all()

    missing: list[BacklogEntry] = []
    for (y, m) in window:
        for c in clients:
            if (m - 1) not in normalize_months(c.selected_months):
                continue
            if (int(c.id), y, m) in taken:
                continue
            missing.append(
                BacklogEntry(kind="missing", client_id=int(c.id), company_name=c.company_name, year=y, month=m)
            )

    return BacklogResult(window=window, existing=existing, missing=missing)


def old_unscheduled(db: Session, p: Principal, *, today: Optional[date] = None) -> list[BacklogEntry]:
    """Unscheduled, incomplete slots older than the backlog window."""
    today = today or date.today()
    y, m = month_window(today)[0]

    rows = db.execute(
        select(CalendarAssignment, Client)
        .join(Client, Client.id == CalendarAssignment.client_id)
        .where(
            CalendarAssignment.org_id == p.org_id,
            Client.inactive.is_(False),
            CalendarAssignment.day.is_(None),
            CalendarAssignment.completed.is_(False),
            _period_key(CalendarAssignment.year, CalendarAssignment.month) < y * 100 + m,
        )
        .order_by(CalendarAssignment.year, CalendarAssignment.month, Client.company_name)
    ).all()

    return [
        BacklogEntry(
            kind="existing",
            client_id=int(c.id),
            company_name=c.company_name,
            year=a.year,
            month=a.month,
            assignment_id=int(a.id),
            job_number=a.job_number,
            scheduled_date=a.scheduled_date,
        )
        for (a, c) in rows
    ]


def overdue_assignments(db: Session, p: Principal, *, today: Optional[date] = None) -> list[CalendarAssignment]:
    today = today or date.today()
    return list(
        db.scalars(
            select(CalendarAssignment)
            .join(Client, Client.id == CalendarAssignment.client_id)
            .where(
                CalendarAssignment.org_id == p.org_id,
                Client.inactive.is_(False),
                CalendarAssignment.completed.is_(False),
                CalendarAssignment.scheduled_date < today,
            )
            .order_by(CalendarAssignment.scheduled_date.asc(), CalendarAssignment.id.asc())
        ).all()
    )


def maintenance_status_summary(
    db: Session,
    p: Principal,
    *,
    today: Optional[date] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> dict[str, int]:
    today = today or date.today()

    q = select(
        CalendarAssignment.completed,
        CalendarAssignment.scheduled_date,
    ).where(CalendarAssignment.org_id == p.org_id)
    if year is not None:
        q = q.where(CalendarAssignment.year == int(year))
    if month is not None:
        q = q.where(CalendarAssignment.month == int(month))

    out = {"completed": 0, "overdue": 0, "today": 0, "scheduled": 0}
    for (completed, sd) in db.execute(q).all():
        if completed:
            out["completed"] += 1
        elif sd < today:
            out["overdue"] += 1
        elif sd == today:
            out["today"] += 1
        else:
            out["scheduled"] += 1
    return out


def recently_completed(db: Session, p: Principal, *, limit: int = 20) -> list[dict]:
    rows = db.execute(
        select(MaintenanceRecord, Client)
        .join(Client, Client.id == MaintenanceRecord.client_id)
        .where(
            MaintenanceRecord.org_id == p.org_id,
            MaintenanceRecord.completed_at.is_not(None),
        )
        .order_by(MaintenanceRecord.completed_at.desc(), MaintenanceRecord.id.desc())
        .limit(max(1, min(int(limit), 200)))
    ).all()
    return [{**r.model_dump(), "company_name": c.company_name} for (r, c) in rows]

