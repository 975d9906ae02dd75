from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..db import unit_of_work
from ..domain.audit import audit_write
from ..domain.due_dates import compute_next_due, normalize_months
from ..domain.events import emit_workflow_event
from ..models import CalendarAssignment, Client
from .ownership import must_get_client

log = logging.getLogger("pm_scheduler.clients")


def preview_next_due(selected_months: Iterable[Any], inactive: bool, today: Optional[date] = None) -> date:
    return compute_next_due(selected_months, inactive, today or date.today())


def create_client(
    db: Session,
    p: Principal,
    *,
    company_name: str,
    selected_months: Iterable[Any] = (),
    inactive: bool = False,
    location: Optional[str] = None,
    today: Optional[date] = None,
) -> Client:
    months = normalize_months(selected_months)
    with unit_of_work(db):
        c = Client(
            org_id=p.org_id,
            company_name=company_name,
            location=location,
            selected_months=months,
            inactive=bool(inactive),
            next_due=compute_next_due(months, bool(inactive), today or date.today()),
        )
        db.add(c)
        db.flush()
        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="client.create",
            entity_type="Client",
            entity_id=c.id,
            after=c.model_dump(),
        )
    return c


def list_clients_next_due(db: Session, p: Principal, *, include_inactive: bool = False) -> list[Client]:
    """Clients ordered by nextDue; the no-schedule sentinel sorts last."""
    q = select(Client).where(Client.org_id == p.org_id)
    if not include_inactive:
        q = q.where(Client.inactive.is_(False))
    return list(db.scalars(q.order_by(Client.next_due.asc(), Client.company_name.asc())).all())


def update_client_schedule(
    db: Session,
    p: Principal,
    *,
    client_id: int,
    selected_months: Optional[Iterable[Any]] = None,
    inactive: Optional[bool] = None,
    today: Optional[date] = None,
) -> tuple[Client, list[int]]:
    """
    Change a client's months and/or active flag, recompute nextDue, and drop
    open slots in months that are no longer selected.

    Completed slots are history and stay. Returns (client, removed slot ids).
    """
    today = today or date.today()

    with unit_of_work(db):
        c = must_get_client(db, org_id=p.org_id, client_id=client_id, for_update=True)
        before = c.model_dump()

        if selected_months is not None:
            c.selected_months = normalize_months(selected_months)
        if inactive is not None:
            c.inactive = bool(inactive)
        c.next_due = compute_next_due(c.selected_months, bool(c.inactive), today)
        db.add(c)

        months = set(normalize_months(c.selected_months))
        stale = db.scalars(
            select(CalendarAssignment).where(
                CalendarAssignment.org_id == p.org_id,
                CalendarAssignment.client_id == int(c.id),
                CalendarAssignment.completed.is_(False),
            )
        ).all()

        removed: list[int] = []
        for a in stale:
            if (a.month - 1) in months:
                continue
            removed.append(int(a.id))
            db.delete(a)
        db.flush()

        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="client.schedule",
            entity_type="Client",
            entity_id=c.id,
            before=before,
            after={**c.model_dump(), "removed_assignment_ids": removed},
        )
        emit_workflow_event(
            db,
            principal=p,
            event_type="client.schedule_changed",
            client_id=int(c.id),
            payload={"next_due": c.next_due.isoformat(), "removed_assignment_ids": removed},
        )

    log.info(
        "client schedule updated",
        extra={"org_id": p.org_id, "client_id": int(client_id)},
    )
    return c, removed
