# pm_scheduler/routers/series.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..schemas import GenerateIn, GenerateOut, SeriesCreate, SeriesOut
from ..services.series import create_series, generate_from_series, get_series, materialize_series

router = APIRouter(prefix="/series", tags=["series"])


@router.post("", response_model=SeriesOut, status_code=201)
def create(
    payload: SeriesCreate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    data = payload.model_dump()
    phases = data.pop("phases")
    return create_series(db, p, phases=phases, **data)


@router.get("/{series_id}", response_model=SeriesOut)
def read(
    series_id: int,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    return get_series(db, p, series_id=series_id)


@router.post("/{series_id}/generate", response_model=GenerateOut)
def generate(
    series_id: int,
    payload: GenerateIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    _op=Depends(require_operator),
):
    if payload.materialize:
        return materialize_series(db, p, series_id=series_id, count=payload.count).as_dict()

    visits = generate_from_series(db, p, series_id=series_id, count=payload.count)
    return {"series_id": series_id, "visits": [v.as_dict() for v in visits]}
