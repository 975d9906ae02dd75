# pm_scheduler/routers/work_orders.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..domain.work_order_status import WORK_ORDER_STATUSES, valid_transitions
from ..schemas import TransitionsOut, WorkOrderOut, WorkOrderStatusIn
from ..services.work_orders import get_work_order, update_work_order_status

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


@router.get("/transitions/{status}", response_model=TransitionsOut)
def transitions(status: str):
    s = (status or "").strip().lower()
    if s not in WORK_ORDER_STATUSES:
        raise HTTPException(status_code=404, detail=f"unknown status: {status}")
    return {"status": s, "allowed": list(valid_transitions(s))}


@router.get("/{work_order_id}", response_model=WorkOrderOut)
def read(
    work_order_id: int,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return get_work_order(db, p, work_order_id=work_order_id)


@router.patch("/{work_order_id}/status", response_model=WorkOrderOut)
def set_status(
    work_order_id: int,
    payload: WorkOrderStatusIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    return update_work_order_status(db, p, work_order_id=work_order_id, to_status=payload.status)
