# tests/test_series_generator.py
from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import select

from pm_scheduler.config import settings
from pm_scheduler.domain.errors import NotFound
from pm_scheduler.models import WorkOrder
from pm_scheduler.services.series import (
    create_series,
    generate_from_series,
    get_series,
    materialize_series,
    series_dump,
)

START = date(2025, 1, 10)
ROLLOUT = [
    {"frequency": "monthly", "occurrences": 3},
    {"frequency": "quarterly", "occurrences": 2},
]


def _series(db, p, client, phases=ROLLOUT, **kw):
    return create_series(
        db,
        p,
        location_id=client.id,
        base_summary="Rooftop unit PM",
        start_date=START,
        phases=phases,
        default_technician_id=p.user_id,
        **kw,
    )


def test_create_series_stores_phases_in_order(db, principal, make_client):
    c = make_client(principal, [0], today=START)
    s = _series(db, principal, c, base_priority="high")

    dumped = series_dump(get_series(db, principal, series_id=s.id))
    assert [ph["frequency"] for ph in dumped["phases"]] == ["monthly", "quarterly"]
    assert [ph["order_index"] for ph in dumped["phases"]] == [0, 1]
    assert dumped["base_priority"] == "high"
    assert dumped["is_active"] is True
    assert dumped["last_generated_at"] is None


def test_generate_walks_phases_without_writing(db, principal, make_client):
    c = make_client(principal, [0], today=START)
    s = _series(db, principal, c)

    visits = generate_from_series(db, principal, series_id=s.id, count=10)
    assert [v.scheduled_date for v in visits] == [
        date(2025, 1, 10),
        date(2025, 2, 10),
        date(2025, 3, 10),
        date(2025, 4, 10),
        date(2025, 7, 10),
    ]
    assert visits[0].technician_id == principal.user_id
    assert db.scalars(select(WorkOrder).where(WorkOrder.recurring_series_id == s.id)).all() == []


def test_materialize_is_idempotent(db, principal, make_client):
    c = make_client(principal, [0], today=START)
    s = _series(db, principal, c)
    now = datetime(2025, 1, 2, 8)

    first = materialize_series(db, principal, series_id=s.id, count=10, now=now)
    assert len(first.work_order_ids) == 5
    assert first.skipped_existing == 0

    wos = db.scalars(
        select(WorkOrder).where(WorkOrder.recurring_series_id == s.id).order_by(WorkOrder.scheduled_start)
    ).all()
    assert {w.status for w in wos} == {"scheduled"}
    assert wos[0].scheduled_start == datetime(2025, 1, 10)
    assert len({w.job_number for w in wos}) == 5

    again = materialize_series(db, principal, series_id=s.id, count=10)
    assert again.work_order_ids == []
    assert again.skipped_existing == 5

    db.refresh(s)
    assert s.last_generated_at is not None


def test_inactive_series_generates_nothing(db, principal, make_client):
    c = make_client(principal, [0], today=START)
    s = _series(db, principal, c)
    s.is_active = False
    db.commit()

    assert generate_from_series(db, principal, series_id=s.id, count=5) == []
    assert materialize_series(db, principal, series_id=s.id, count=5).work_order_ids == []


def test_count_is_clamped(db, principal, make_client, monkeypatch):
    c = make_client(principal, [0], today=START)
    s = _series(db, principal, c, phases=[{"frequency": "weekly"}])

    monkeypatch.setattr(settings, "series_generate_max", 4)
    monkeypatch.setattr(settings, "series_generate_default", 2)
    assert len(generate_from_series(db, principal, series_id=s.id, count=50)) == 4
    assert len(generate_from_series(db, principal, series_id=s.id)) == 2
    assert generate_from_series(db, principal, series_id=s.id, count=-3) == []


@pytest.mark.parametrize(
    "phases",
    [
        [],
        [{"frequency": "hourly"}],
        [{"frequency": "weekly", "interval": 0}],
        [{"frequency": "monthly", "occurrences": 0}],
    ],
)
def test_bad_phases_are_rejected(db, principal, make_client, phases):
    c = make_client(principal, [0], today=START)
    with pytest.raises(ValueError):
        _series(db, principal, c, phases=phases)


def test_series_is_tenant_scoped(db, make_principal, make_client):
    p1 = make_principal()
    p2 = make_principal()
    c = make_client(p1, [0], today=START)
    s = _series(db, p1, c)

    with pytest.raises(NotFound):
        generate_from_series(db, p2, series_id=s.id)
    with pytest.raises(NotFound):
        materialize_series(db, p2, series_id=s.id)
    with pytest.raises(NotFound):
        _series(db, p2, c)
