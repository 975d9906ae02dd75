# pm_scheduler/routers/calendar.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..schemas import AssignmentCreate, AssignmentOut, AssignmentUpdate, BacklogEntryOut, BacklogOut
from ..services.assignments import (
    create_assignment,
    delete_assignment,
    list_assignments,
    update_assignment,
)
from ..services.backlog import old_unscheduled, overdue_assignments, scan_backlog

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("", response_model=list[AssignmentOut])
def get_calendar(
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    technician_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return list_assignments(db, p, year=year, month=month, technician_id=technician_id)


@router.post("/assign", response_model=AssignmentOut, status_code=201)
def assign(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    return create_assignment(db, p, **payload.model_dump())


@router.patch("/assign/{assignment_id}", response_model=AssignmentOut)
def patch_assignment(
    assignment_id: int,
    payload: AssignmentUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    return update_assignment(db, p, assignment_id=assignment_id, patch=payload.model_dump(exclude_unset=True))


@router.delete("/assign/{assignment_id}", response_model=dict)
def remove_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    if not delete_assignment(db, p, assignment_id=assignment_id):
        raise HTTPException(status_code=404, detail="assignment not found")
    return {"ok": True, "deleted": assignment_id}


@router.get("/unscheduled", response_model=BacklogOut)
def unscheduled(
    today: Optional[date] = Query(default=None, description="Override 'now' (testing / back-dated views)"),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return scan_backlog(db, p, today=today).as_dict()


@router.get("/old-unscheduled", response_model=list[BacklogEntryOut])
def old_unscheduled_view(
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return [e.as_dict() for e in old_unscheduled(db, p, today=today)]


@router.get("/overdue", response_model=list[AssignmentOut])
def overdue(
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return overdue_assignments(db, p, today=today)
