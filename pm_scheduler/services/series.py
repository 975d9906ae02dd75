from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..db import unit_of_work
from ..domain.audit import audit_write
from ..domain.events import emit_workflow_event
from ..domain.recurrence import FREQUENCIES, PhaseSpec, Visit, VisitTemplate, expand_phases
from ..domain.work_order_status import assert_transition
from ..models import RecurringJobPhase, RecurringJobSeries, WorkOrder
from .counters import issue_job_number
from .ownership import must_get_client, must_get_series

log = logging.getLogger("pm_scheduler.series")


@dataclass(frozen=True)
class GenerationResult:
    series_id: int
    visits: list[Visit] = field(default_factory=list)
    work_order_ids: list[int] = field(default_factory=list)
    skipped_existing: int = 0

    def as_dict(self) -> dict:
        return {
            "series_id": self.series_id,
            "visits": [v.as_dict() for v in self.visits],
            "work_order_ids": list(self.work_order_ids),
            "skipped_existing": self.skipped_existing,
        }


def _utcnow() -> datetime:
    return datetime.utcnow()


def _validate_phase(raw: dict[str, Any], position: int) -> PhaseSpec:
    freq = str(raw.get("frequency") or "").strip().lower()
    if freq not in FREQUENCIES:
        raise ValueError(f"frequency must be one of {', '.join(FREQUENCIES)}")

    interval = int(raw["interval"]) if raw.get("interval") is not None else 1
    if interval < 1:
        raise ValueError("interval must be >= 1")

    occ = raw.get("occurrences")
    if occ is not None and int(occ) < 1:
        raise ValueError("occurrences must be >= 1 when set")

    return PhaseSpec(
        frequency=freq,
        interval=interval,
        occurrences=int(occ) if occ is not None else None,
        until_date=raw.get("until_date"),
        order_index=int(raw["order_index"]) if raw.get("order_index") is not None else position,
    )


def create_series(
    db: Session,
    p: Principal,
    *,
    location_id: int,
    base_summary: str,
    start_date: date,
    phases: Sequence[dict[str, Any]],
    base_description: Optional[str] = None,
    base_job_type: str = "service",
    base_priority: str = "normal",
    default_technician_id: Optional[int] = None,
    timezone: Optional[str] = None,
    notes: Optional[str] = None,
) -> RecurringJobSeries:
    if not phases:
        raise ValueError("a series needs at least one phase")
    specs = [_validate_phase(dict(ph), i) for i, ph in enumerate(phases)]

    with unit_of_work(db):
        must_get_client(db, org_id=p.org_id, client_id=location_id)

        s = RecurringJobSeries(
            org_id=p.org_id,
            location_id=int(location_id),
            base_summary=base_summary,
            base_description=base_description,
            base_job_type=base_job_type,
            base_priority=base_priority,
            default_technician_id=default_technician_id,
            start_date=start_date,
            timezone=timezone or "America/Toronto",
            notes=notes,
            is_active=True,
            created_at=_utcnow(),
        )
        for spec in specs:
            s.phases.append(
                RecurringJobPhase(
                    order_index=spec.order_index,
                    frequency=spec.frequency,
                    interval=spec.interval,
                    occurrences=spec.occurrences,
                    until_date=spec.until_date,
                )
            )
        db.add(s)
        db.flush()

        audit_write(
            db,
            org_id=p.org_id,
            actor_user_id=p.user_id or None,
            action="series.create",
            entity_type="RecurringJobSeries",
            entity_id=s.id,
            after=series_dump(s),
        )

    log.info("series created", extra={"org_id": p.org_id, "series_id": int(s.id), "client_id": int(location_id)})
    return s


def get_series(db: Session, p: Principal, *, series_id: int) -> RecurringJobSeries:
    return must_get_series(db, org_id=p.org_id, series_id=series_id)


def series_dump(s: RecurringJobSeries) -> dict:
    return {
        "id": s.id,
        "location_id": s.location_id,
        "base_summary": s.base_summary,
        "base_description": s.base_description,
        "base_job_type": s.base_job_type,
        "base_priority": s.base_priority,
        "default_technician_id": s.default_technician_id,
        "start_date": s.start_date.isoformat() if s.start_date else None,
        "timezone": s.timezone,
        "notes": s.notes,
        "is_active": bool(s.is_active),
        "last_generated_at": s.last_generated_at.isoformat() if s.last_generated_at else None,
        "phases": [
            {
                "order_index": ph.order_index,
                "frequency": ph.frequency,
                "interval": ph.interval,
                "occurrences": ph.occurrences,
                "until_date": ph.until_date.isoformat() if ph.until_date else None,
            }
            for ph in s.phases
        ],
    }


def _clamp_count(count: Optional[int]) -> int:
    n = settings.series_generate_default if count is None else int(count)
    return max(0, min(n, int(settings.series_generate_max)))


def _expand(s: RecurringJobSeries, count: int) -> list[Visit]:
    if not s.is_active:
        return []
    specs = [
        PhaseSpec(
            frequency=ph.frequency,
            interval=ph.interval,
            occurrences=ph.occurrences,
            until_date=ph.until_date,
            order_index=ph.order_index,
        )
        for ph in s.phases
    ]
    template = VisitTemplate(
        summary=s.base_summary,
        description=s.base_description,
        job_type=s.base_job_type,
        priority=s.base_priority,
        technician_id=s.default_technician_id,
    )
    return expand_phases(s.start_date, specs, template, count)


def generate_from_series(
    db: Session, p: Principal, *, series_id: int, count: Optional[int] = None
) -> list[Visit]:
    """
    Expand the series into up to `count` upcoming visits without writing work orders.

    Returns fewer than `count` once every phase is exhausted; an inactive series
    yields nothing.
    """
    s = must_get_series(db, org_id=p.org_id, series_id=series_id)
    return _expand(s, _clamp_count(count))


def materialize_series(
    db: Session,
    p: Principal,
    *,
    series_id: int,
    count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> GenerationResult:
    """
    Generate visits and persist each as a `scheduled` work order with a fresh job number.

    A visit whose (series, date) already has a work order is skipped, so
    re-running generation over the same range is safe.
    """
    now = now or _utcnow()

    with unit_of_work(db):
        s = must_get_series(db, org_id=p.org_id, series_id=series_id)
        visits = _expand(s, _clamp_count(count))

        starts = [datetime.combine(v.scheduled_date, time()) for v in visits]
        existing = set()
        if starts:
            existing = set(
                db.scalars(
                    select(WorkOrder.scheduled_start).where(
                        WorkOrder.org_id == p.org_id,
                        WorkOrder.recurring_series_id == int(s.id),
                        WorkOrder.scheduled_start.in_(starts),
                    )
                ).all()
            )

        created: list[int] = []
        skipped = 0
        for v, start in zip(visits, starts):
            if start in existing:
                skipped += 1
                continue

            assert_transition("draft", "scheduled")
            wo = WorkOrder(
                org_id=p.org_id,
                location_id=int(s.location_id),
                job_number=issue_job_number(db, org_id=p.org_id),
                primary_technician_id=v.technician_id,
                assigned_technician_ids=[str(v.technician_id)] if v.technician_id is not None else [],
                status="scheduled",
                priority=v.priority,
                job_type=v.job_type,
                summary=v.summary,
                description=v.description,
                scheduled_start=start,
                recurring_series_id=int(s.id),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            db.add(wo)
            db.flush()
            created.append(int(wo.id))

        s.last_generated_at = now
        s.updated_at = now
        db.add(s)

        emit_workflow_event(
            db,
            principal=p,
            event_type="series.generated",
            client_id=int(s.location_id),
            payload={"series_id": int(s.id), "visits": len(visits), "work_order_ids": created, "skipped": skipped},
        )

    log.info(
        "series materialized",
        extra={"org_id": p.org_id, "series_id": int(series_id)},
    )
    return GenerationResult(series_id=int(series_id), visits=visits, work_order_ids=created, skipped_existing=skipped)
