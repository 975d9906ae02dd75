# pm_scheduler/routers/clients.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..domain.due_dates import is_no_schedule
from ..schemas import ClientCreate, ClientOut, ClientScheduleIn, ClientScheduleOut, NextDuePreviewOut
from ..services.clients import create_client, list_clients_next_due, preview_next_due, update_client_schedule

router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("", response_model=ClientOut, status_code=201)
def create(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    return create_client(db, p, **payload.model_dump())


@router.get("", response_model=list[ClientOut])
def list_by_next_due(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return list_clients_next_due(db, p, include_inactive=include_inactive)


@router.get("/next-due", response_model=NextDuePreviewOut)
def next_due_preview(
    months: list[int] = Query(default=[], description="Selected month indexes, 0=Jan .. 11=Dec"),
    inactive: bool = Query(default=False),
    today: Optional[date] = Query(default=None),
    _p=Depends(get_principal),
):
    d = preview_next_due(months, inactive, today)
    return {"next_due": d, "no_schedule": is_no_schedule(d)}


@router.patch("/{client_id}/schedule", response_model=ClientScheduleOut)
def patch_schedule(
    client_id: int,
    payload: ClientScheduleIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    client, removed = update_client_schedule(
        db,
        p,
        client_id=client_id,
        selected_months=payload.selected_months,
        inactive=payload.inactive,
    )
    return {"client": ClientOut.model_validate(client), "removed_assignment_ids": removed}
