# tests/test_counters.py
from __future__ import annotations

from datetime import date

from pm_scheduler.db import SessionLocal
from pm_scheduler.services import counters
from pm_scheduler.services.assignments import create_assignment
from pm_scheduler.services.counters import issue_invoice_number, issue_job_number


def test_job_numbers_start_at_10000_and_increase(db, principal):
    a = issue_job_number(db, org_id=principal.org_id)
    b = issue_job_number(db, org_id=principal.org_id)
    db.commit()
    assert (a, b) == (10000, 10001)


def test_invoice_numbers_have_their_own_sequence(db, principal):
    issue_job_number(db, org_id=principal.org_id)
    assert issue_invoice_number(db, org_id=principal.org_id) == 1001
    assert issue_invoice_number(db, org_id=principal.org_id) == 1002
    assert issue_job_number(db, org_id=principal.org_id) == 10001
    db.commit()


def test_numbering_is_per_org(db, make_principal):
    p1 = make_principal()
    p2 = make_principal()
    assert issue_job_number(db, org_id=p1.org_id) == 10000
    assert issue_job_number(db, org_id=p1.org_id) == 10001
    assert issue_job_number(db, org_id=p2.org_id) == 10000
    db.commit()


def test_rolled_back_issue_is_not_consumed(db, principal):
    assert issue_job_number(db, org_id=principal.org_id) == 10000
    db.commit()
    assert issue_job_number(db, org_id=principal.org_id) == 10001
    db.rollback()
    assert issue_job_number(db, org_id=principal.org_id) == 10001
    db.commit()


def test_first_issue_that_loses_the_row_insert_uses_the_winners_row(db, principal, monkeypatch):
    # another issuer creates and commits the org's row first
    other = SessionLocal()
    try:
        assert issue_job_number(other, org_id=principal.org_id) == 10000
        other.commit()
    finally:
        other.close()

    real_bump = counters._bump
    calls = []

    def stale_bump(db, *, org_id, column):
        calls.append(org_id)
        if len(calls) == 1:
            # the increment ran before the winner committed: no row matched
            return real_bump(db, org_id=-1, column=column)
        return real_bump(db, org_id=org_id, column=column)

    monkeypatch.setattr(counters, "_bump", stale_bump)
    assert issue_job_number(db, org_id=principal.org_id) == 10001
    db.commit()
    monkeypatch.undo()

    assert len(calls) == 2
    assert issue_job_number(db, org_id=principal.org_id) == 10002
    db.commit()


def test_concurrent_creates_get_distinct_job_numbers(principal, make_client, run_in_threads):
    c = make_client(principal, [2, 5, 8, 11], today=date(2025, 7, 10))
    n = 8

    def create(s, i):
        return create_assignment(s, principal, client_id=c.id, year=2026, month=i + 1).job_number

    numbers = run_in_threads(create, n)

    assert all(isinstance(x, int) for x in numbers), numbers
    assert sorted(numbers) == list(range(10000, 10000 + n))
