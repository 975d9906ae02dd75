from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..auth import Principal
from ..db import unit_of_work
from ..domain.audit import audit_write
from ..domain.events import emit_workflow_event
from ..domain.work_order_status import ENDS_WORK, STARTS_WORK, assert_transition
from ..models import WorkOrder
from .ownership import must_get_work_order

log = logging.getLogger("pm_scheduler.work_orders")


def get_work_order(db: Session, p: Principal, *, work_order_id: int) -> WorkOrder:
    return must_get_work_order(db, org_id=p.org_id, work_order_id=work_order_id)


def update_work_order_status(
    db: Session,
    p: Principal,
    *,
    work_order_id: int,
    to_status: str,
    now: Optional[datetime] = None,
) -> WorkOrder:
    """
    Move a work order to `to_status` after checking the transition table.

    Entering in_progress/on_site stamps actual_start (first time only);
    entering completed/closed stamps actual_end. Same-status is a no-op.
    """
    now = now or datetime.utcnow()
    target = (to_status or "").strip().lower()

    with unit_of_work(db):
        wo = must_get_work_order(db, org_id=p.org_id, work_order_id=work_order_id)
        current = wo.status
        assert_transition(current, target)
        if current == target:
            return wo

        before = wo.model_dump()
        wo.status = target
        if target in STARTS_WORK and wo.actual_start is None:
            wo.actual_start = now
        if target in ENDS_WORK and wo.actual_end is None:
            wo.actual_end = now
        wo.updated_at = now
        db.add(wo)
        db.flush()

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
        emit_workflow_event(
            db,
            principal=p,
            event_type="work_order.status_changed",
            client_id=int(wo.location_id),
            payload={"work_order_id": int(wo.id), "from": current, "to": target},
        )

    log.info(
        "work order %s -> %s",
        current,
        target,
        extra={"org_id": p.org_id, "work_order_id": int(work_order_id)},
    )
    return wo
