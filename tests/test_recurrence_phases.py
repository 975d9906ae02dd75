# tests/test_recurrence_phases.py
from __future__ import annotations

from datetime import date

import pytest

from pm_scheduler.domain.recurrence import PhaseSpec, VisitTemplate, add_months, advance, expand_phases

TPL = VisitTemplate(summary="PM visit", description="filters + belts", job_type="maintenance", priority="high", technician_id=7)


def test_capped_phase_stops_before_count():
    visits = expand_phases(date(2025, 1, 10), [PhaseSpec("monthly", occurrences=3)], TPL, 10)
    assert [v.scheduled_date for v in visits] == [date(2025, 1, 10), date(2025, 2, 10), date(2025, 3, 10)]
    assert [v.occurrence for v in visits] == [1, 2, 3]


def test_visits_carry_template_fields():
    v = expand_phases(date(2025, 1, 10), [PhaseSpec("weekly")], TPL, 1)[0]
    assert (v.summary, v.description, v.job_type, v.priority, v.technician_id) == (
        "PM visit",
        "filters + belts",
        "maintenance",
        "high",
        7,
    )


def test_next_phase_continues_from_the_shared_cursor():
    phases = [
        PhaseSpec("monthly", occurrences=3, order_index=0),
        PhaseSpec("quarterly", occurrences=2, order_index=1),
    ]
    visits = expand_phases(date(2025, 1, 10), phases, TPL, 10)
    assert [v.scheduled_date for v in visits] == [
        date(2025, 1, 10),
        date(2025, 2, 10),
        date(2025, 3, 10),
        date(2025, 4, 10),
        date(2025, 7, 10),
    ]
    assert [v.phase_index for v in visits] == [0, 0, 0, 1, 1]
    assert [v.occurrence for v in visits] == [1, 2, 3, 1, 2]


def test_phases_are_consumed_in_order_index_order():
    phases = [
        PhaseSpec("yearly", occurrences=1, order_index=1),
        PhaseSpec("daily", interval=2, occurrences=2, order_index=0),
    ]
    visits = expand_phases(date(2025, 3, 1), phases, TPL, 10)
    assert [v.scheduled_date for v in visits] == [date(2025, 3, 1), date(2025, 3, 3), date(2025, 3, 5)]


def test_count_limits_output():
    visits = expand_phases(date(2025, 1, 1), [PhaseSpec("daily")], TPL, 4)
    assert len(visits) == 4
    assert expand_phases(date(2025, 1, 1), [PhaseSpec("daily")], TPL, 0) == []
    assert expand_phases(date(2025, 1, 1), [], TPL, 5) == []


def test_until_date_ends_a_phase():
    visits = expand_phases(date(2025, 1, 1), [PhaseSpec("weekly", until_date=date(2025, 1, 20))], TPL, 10)
    assert [v.scheduled_date for v in visits] == [date(2025, 1, 1), date(2025, 1, 8), date(2025, 1, 15)]


def test_month_arithmetic_clamps_and_then_drifts():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 2, 29), 12) == date(2025, 2, 28)
    assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)

    visits = expand_phases(date(2025, 1, 31), [PhaseSpec("monthly")], TPL, 3)
    assert [v.scheduled_date for v in visits] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 28)]


def test_advance_by_frequency():
    d = date(2025, 5, 15)
    assert advance(d, "daily", 3) == date(2025, 5, 18)
    assert advance(d, "weekly", 2) == date(2025, 5, 29)
    assert advance(d, "monthly", 1) == date(2025, 6, 15)
    assert advance(d, "quarterly", 1) == date(2025, 8, 15)
    assert advance(d, "quarterly", 2) == date(2025, 11, 15)
    assert advance(d, "yearly", 2) == date(2027, 5, 15)
    with pytest.raises(ValueError):
        advance(d, "fortnightly", 1)
