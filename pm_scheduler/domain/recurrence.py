from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence

FREQUENCIES = ("daily", "weekly", "monthly", "quarterly", "yearly")


@dataclass(frozen=True)
class PhaseSpec:
    frequency: str
    interval: int = 1
    occurrences: Optional[int] = None
    until_date: Optional[date] = None
    order_index: int = 0


@dataclass(frozen=True)
class VisitTemplate:
    summary: str
    description: Optional[str] = None
    job_type: str = "service"
    priority: str = "normal"
    technician_id: Optional[int] = None


@dataclass(frozen=True)
class Visit:
    scheduled_date: date
    phase_index: int
    occurrence: int  # 1-based within its phase
    summary: str
    description: Optional[str]
    job_type: str
    priority: str
    technician_id: Optional[int]

    def as_dict(self) -> dict:
        return {
            "scheduled_date": self.scheduled_date.isoformat(),
            "phase_index": self.phase_index,
            "occurrence": self.occurrence,
            "summary": self.summary,
            "description": self.description,
            "job_type": self.job_type,
            "priority": self.priority,
            "technician_id": self.technician_id,
        }


def add_months(d: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    idx = d.year * 12 + (d.month - 1) + int(months)
    y, m = divmod(idx, 12)
    last = calendar.monthrange(y, m + 1)[1]
    return date(y, m + 1, min(d.day, last))


def advance(d: date, frequency: str, interval: int) -> date:
    f = (frequency or "").strip().lower()
    n = max(1, int(interval or 1))
    if f == "daily":
        return d + timedelta(days=n)
    if f == "weekly":
        return d + timedelta(days=7 * n)
    if f == "monthly":
        return add_months(d, n)
    if f == "quarterly":
        return add_months(d, 3 * n)
    if f == "yearly":
        return add_months(d, 12 * n)
    raise ValueError(f"unknown frequency: {frequency!r}")


def _exhausted(phase: PhaseSpec, produced: int, cursor: date) -> bool:
    if phase.occurrences is not None and produced >= int(phase.occurrences):
        return True
    if phase.until_date is not None and cursor > phase.until_date:
        return True
    return False


def expand_phases(
    start_date: date,
    phases: Sequence[PhaseSpec],
    template: VisitTemplate,
    count: int,
) -> list[Visit]:
    """
    Walk the phases in order_index order from start_date and emit up to `count` visits.

    The cursor is shared across phases: when a phase runs out (cap reached or
    cursor past its until_date) the next phase continues from where the cursor
    stands. Fewer than `count` visits come back once every phase is exhausted.
    """
    ordered = sorted(phases, key=lambda p: p.order_index)
    out: list[Visit] = []
    if count <= 0 or not ordered:
        return out

    cursor = start_date
    phase_idx = 0
    produced = 0

    while len(out) < count and phase_idx < len(ordered):
        phase = ordered[phase_idx]
        if _exhausted(phase, produced, cursor):
            phase_idx += 1
            produced = 0
            continue

        produced += 1
        out.append(
            Visit(
                scheduled_date=cursor,
                phase_index=phase_idx,
                occurrence=produced,
                summary=template.summary,
                description=template.description,
                job_type=template.job_type,
                priority=template.priority,
                technician_id=template.technician_id,
            )
        )
        cursor = advance(cursor, phase.frequency, phase.interval)

    return out
