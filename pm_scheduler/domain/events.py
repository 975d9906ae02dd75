# events.py - workflow event emission for scheduling operations.
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..models import WorkflowEvent


def emit_workflow_event(
    db: Session,
    *,
    principal: Principal,
    event_type: str,
    client_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
) -> WorkflowEvent:
    """
    NOTE:
    - Does NOT commit. Adds + flushes only.
    - Callers decide when to commit.
    """
    if not event_type:
        raise ValueError("event_type required")

    ev = WorkflowEvent(
        org_id=int(principal.org_id),
        client_id=int(client_id) if client_id is not None else None,
        actor_user_id=int(principal.user_id) if principal.user_id else None,
        event_type=str(event_type),
        payload_json=json.dumps(payload or {}, ensure_ascii=False, default=str),
        created_at=datetime.utcnow(),
    )
    db.add(ev)
    db.flush()
    return ev


def list_workflow_events(
    db: Session,
    *,
    org_id: int,
    client_id: Optional[int] = None,
    event_type: Optional[str] = None,
    limit: int = 200,
) -> list[WorkflowEvent]:
    q = select(WorkflowEvent).where(WorkflowEvent.org_id == int(org_id)).order_by(WorkflowEvent.id.desc())
    if client_id is not None:
        q = q.where(WorkflowEvent.client_id == int(client_id))
    if event_type:
        q = q.where(WorkflowEvent.event_type == event_type)
    return list(db.scalars(q.limit(int(limit))).all())
