from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

# Day of month every preventive-maintenance cycle falls due on.
DUE_DAY = 15

# "No active schedule". Sorts after every real date and is never overdue.
NO_SCHEDULE_DATE = date(9999, 12, 31)


def is_no_schedule(d: Optional[date]) -> bool:
    return d is None or d >= NO_SCHEDULE_DATE


def normalize_months(selected_months: Optional[Iterable[int]]) -> list[int]:
    """Sorted, de-duplicated month indexes (0=Jan .. 11=Dec); out-of-range values are dropped."""
    out: set[int] = set()
    for m in selected_months or []:
        try:
            mi = int(m)
        except (TypeError, ValueError):
            continue
        if 0 <= mi <= 11:
            out.add(mi)
    return sorted(out)


def _due(year: int, month_index: int) -> date:
    return date(year, month_index + 1, DUE_DAY)


def _first_after(months: list[int], month_index: int) -> Optional[int]:
    for m in months:
        if m > month_index:
            return m
    return None


def compute_next_due(selected_months: Optional[Iterable[int]], inactive: bool, today: date) -> date:
    """
    Next due date of a client's recurring schedule, as seen on `today`.

    - inactive or no months -> NO_SCHEDULE_DATE
    - current month selected and before the 15th -> 15th of this month
    - otherwise the 15th of the next selected month, wrapping into next year
    """
    months = normalize_months(selected_months)
    if inactive or not months:
        return NO_SCHEDULE_DATE

    current = today.month - 1
    if current in months and today.day < DUE_DAY:
        return _due(today.year, current)

    nxt = _first_after(months, current)
    if nxt is not None:
        return _due(today.year, nxt)
    return _due(today.year + 1, months[0])


def next_cycle_after(selected_months: Optional[Iterable[int]], inactive: bool, due_date: date) -> date:
    """
    Due date of the cycle that follows the one due on `due_date`.

    Anchored on the completed cycle's month, not on today, so completing an
    overdue or future cycle advances exactly one step.
    """
    months = normalize_months(selected_months)
    if inactive or not months:
        return NO_SCHEDULE_DATE

    nxt = _first_after(months, due_date.month - 1)
    if nxt is not None:
        return _due(due_date.year, nxt)
    return _due(due_date.year + 1, months[0])


def month_window(today: date) -> list[tuple[int, int]]:
    """(year, month) for the previous, current and next calendar month. Months are 1-12."""
    y, m = today.year, today.month
    prev = (y - 1, 12) if m == 1 else (y, m - 1)
    nxt = (y + 1, 1) if m == 12 else (y, m + 1)
    return [prev, (y, m), nxt]
