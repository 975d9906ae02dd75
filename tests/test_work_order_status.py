# tests/test_work_order_status.py
from __future__ import annotations

import pytest

from pm_scheduler.domain.errors import InvalidTransition
from pm_scheduler.domain.work_order_status import (
    INVOICE_TRANSITIONS,
    WORK_ORDER_STATUSES,
    WORK_ORDER_TRANSITIONS,
    assert_invoice_transition,
    assert_transition,
    can_transition,
    valid_transitions,
)


def test_same_status_is_a_noop():
    for s in WORK_ORDER_STATUSES:
        assert_transition(s, s)


def test_completed_moves_only_to_billing_and_archive():
    assert set(valid_transitions("completed")) == {"invoiced", "closed", "archived"}
    assert_transition("completed", "invoiced")

    with pytest.raises(InvalidTransition) as ei:
        assert_transition("completed", "draft")
    assert ei.value.from_status == "completed"
    assert ei.value.to_status == "draft"


def test_archived_and_cancelled_are_terminal():
    for terminal in ("archived", "cancelled"):
        assert valid_transitions(terminal) == ()
        with pytest.raises(InvalidTransition):
            assert_transition(terminal, "scheduled")


def test_table_only_references_known_statuses():
    assert set(WORK_ORDER_TRANSITIONS) == set(WORK_ORDER_STATUSES)
    for succ in WORK_ORDER_TRANSITIONS.values():
        assert set(succ) <= set(WORK_ORDER_STATUSES)


def test_status_names_are_normalized():
    assert can_transition(" Scheduled ", "IN_PROGRESS")
    assert not can_transition("draft", "completed")
    assert valid_transitions("unknown") == ()


def test_invoice_transitions():
    assert_invoice_transition("sent", "paid")
    assert_invoice_transition("paid", "paid")
    with pytest.raises(InvalidTransition) as ei:
        assert_invoice_transition("void", "paid")
    assert "invoice" in ei.value.message
    assert INVOICE_TRANSITIONS["void"] == ()
