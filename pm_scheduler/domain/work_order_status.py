from __future__ import annotations

from .errors import InvalidTransition

# -----------------------------------------------------------------------------
# Work-order / invoice status rules
# -----------------------------------------------------------------------------
# Static successor tables. Terminal statuses map to an empty tuple.
# Anything that flips a status as a side effect (completion, series
# generation, manual edits) goes through assert_transition first.
# -----------------------------------------------------------------------------

WORK_ORDER_STATUSES = (
    "draft",
    "scheduled",
    "dispatched",
    "en_route",
    "on_site",
    "in_progress",
    "needs_parts",
    "on_hold",
    "completed",
    "invoiced",
    "closed",
    "archived",
    "cancelled",
)

WORK_ORDER_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("scheduled", "dispatched", "cancelled"),
    "scheduled": ("dispatched", "en_route", "in_progress", "on_hold", "cancelled"),
    "dispatched": ("en_route", "on_site", "in_progress", "on_hold", "cancelled"),
    "en_route": ("on_site", "in_progress", "on_hold", "cancelled"),
    "on_site": ("in_progress", "needs_parts", "completed", "on_hold", "cancelled"),
    "in_progress": ("needs_parts", "completed", "on_hold", "cancelled"),
    "needs_parts": ("in_progress", "on_site", "on_hold", "cancelled"),
    "on_hold": ("scheduled", "dispatched", "in_progress", "cancelled"),
    "completed": ("invoiced", "closed", "archived"),
    "invoiced": ("closed", "archived"),
    "closed": ("archived",),
    "archived": (),
    "cancelled": (),
}

INVOICE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("pending", "sent", "void", "cancelled"),
    "pending": ("sent", "void", "cancelled"),
    "sent": ("paid", "void", "cancelled"),
    "paid": ("void",),
    "void": (),
    "cancelled": (),
}

# entering these stamps actual_start / actual_end on the work order
STARTS_WORK = frozenset({"in_progress", "on_site"})
ENDS_WORK = frozenset({"completed", "closed"})


def _norm(s: str) -> str:
    return (s or "").strip().lower()


def valid_transitions(from_status: str) -> tuple[str, ...]:
    return WORK_ORDER_TRANSITIONS.get(_norm(from_status), ())


def can_transition(from_status: str, to_status: str) -> bool:
    f, t = _norm(from_status), _norm(to_status)
    if f == t:
        return True
    return t in WORK_ORDER_TRANSITIONS.get(f, ())


def assert_transition(from_status: str, to_status: str) -> None:
    """No-op when unchanged; InvalidTransition when `to` is not a legal successor of `from`."""
    if not can_transition(from_status, to_status):
        raise InvalidTransition(_norm(from_status), _norm(to_status))


def assert_invoice_transition(from_status: str, to_status: str) -> None:
    f, t = _norm(from_status), _norm(to_status)
    if f == t:
        return
    if t not in INVOICE_TRANSITIONS.get(f, ()):
        raise InvalidTransition(f, t, kind="invoice")
