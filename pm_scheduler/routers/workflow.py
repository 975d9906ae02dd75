from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..domain.events import list_workflow_events
from ..schemas import WorkflowEventOut

router = APIRouter(prefix="/workflow", tags=["workflow"])


@router.get("/events", response_model=list[WorkflowEventOut])
def list_events(
    client_id: int | None = Query(default=None),
    event_type: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return list_workflow_events(db, org_id=p.org_id, client_id=client_id, event_type=event_type, limit=limit)
