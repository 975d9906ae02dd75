# pm_scheduler/routers/maintenance.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..schemas import CompletedRecordOut, MaintenanceStatusOut, ToggleIn, ToggleOut
from ..services.backlog import maintenance_status_summary, recently_completed
from ..services.completion import toggle_completion

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/{client_id}/toggle", response_model=ToggleOut)
def toggle(
    client_id: int,
    payload: ToggleIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    return toggle_completion(db, p, client_id=client_id, due_date=payload.due_date).as_dict()


@router.get("/statuses", response_model=MaintenanceStatusOut)
def statuses(
    year: Optional[int] = Query(default=None),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return maintenance_status_summary(db, p, today=today, year=year, month=month)


@router.get("/recently-completed", response_model=list[CompletedRecordOut])
def recent(
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return recently_completed(db, p, limit=limit)
