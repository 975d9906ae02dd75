# tests/test_assignment_store.py
from __future__ import annotations

from datetime import date

import pytest

from pm_scheduler.domain.errors import DuplicateAssignment, NotFound
from pm_scheduler.services.assignments import (
    create_assignment,
    delete_assignment,
    delete_assignment_and_recompute,
    get_assignment,
    get_client_assignment,
    list_assignments,
    update_assignment,
)
from pm_scheduler.services.counters import issue_job_number

TODAY = date(2025, 7, 10)
QUARTERLY = [2, 5, 8, 11]  # Mar / Jun / Sep / Dec


def test_create_issues_job_number_and_defaults_to_the_15th(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(db, principal, client_id=c.id, year=2025, month=9)

    assert a.job_number == 10000
    assert a.day is None
    assert a.scheduled_date == date(2025, 9, 15)
    assert a.auto_due_date is True
    assert a.completed is False
    assert get_client_assignment(db, principal, client_id=c.id, year=2025, month=9).id == a.id


def test_explicit_day_sets_scheduled_date(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(
        db, principal, client_id=c.id, year=2025, month=12, day=3, assigned_technician_ids=[4, "9"]
    )
    assert a.scheduled_date == date(2025, 12, 3)
    assert a.auto_due_date is False
    assert a.assigned_technician_ids == ["4", "9"]


def test_second_slot_for_same_month_is_rejected(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    first = create_assignment(db, principal, client_id=c.id, year=2025, month=9)

    with pytest.raises(DuplicateAssignment) as ei:
        create_assignment(db, principal, client_id=c.id, year=2025, month=9, day=20)
    assert ei.value.existing_id == first.id

    # failed attempt did not burn a job number
    nxt = create_assignment(db, principal, client_id=c.id, year=2025, month=12)
    assert nxt.job_number == first.job_number + 1


def test_racing_creator_loses_on_the_unique_constraint(db, principal, make_client, monkeypatch):
    c = make_client(principal, QUARTERLY, today=TODAY)
    first = create_assignment(db, principal, client_id=c.id, year=2025, month=9)

    # simulate a second creator whose pre-check ran before the first committed
    monkeypatch.setattr(
        "pm_scheduler.services.assignment_store.find_client_assignment", lambda *a, **k: None
    )
    with pytest.raises(DuplicateAssignment):
        create_assignment(db, principal, client_id=c.id, year=2025, month=9)
    monkeypatch.undo()

    rows = list_assignments(db, principal, year=2025, month=9)
    assert [r.id for r in rows] == [first.id]
    assert issue_job_number(db, org_id=principal.org_id) == first.job_number + 1
    db.rollback()


def test_invalid_slot_values(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    with pytest.raises(ValueError):
        create_assignment(db, principal, client_id=c.id, year=2025, month=13)
    with pytest.raises(ValueError):
        create_assignment(db, principal, client_id=c.id, year=2025, month=2, day=30)


def test_unknown_client_is_not_found(db, principal):
    with pytest.raises(NotFound):
        create_assignment(db, principal, client_id=999999, year=2025, month=9)


def test_partial_update_changes_only_given_fields(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(
        db, principal, client_id=c.id, year=2025, month=12, assigned_technician_ids=[1], completion_notes="gate code 1234"
    )

    out = update_assignment(db, principal, assignment_id=a.id, patch={"scheduled_hour": 9})
    assert out.scheduled_hour == 9
    assert out.assigned_technician_ids == ["1"]
    assert out.completion_notes == "gate code 1234"
    assert out.scheduled_date == date(2025, 12, 15)


def test_moving_scheduled_date_keeps_the_slot_in_its_month(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(db, principal, client_id=c.id, year=2025, month=12)

    out = update_assignment(db, principal, assignment_id=a.id, patch={"scheduled_date": date(2026, 1, 8)})
    assert (out.year, out.month) == (2025, 12)
    assert out.day is None
    assert out.scheduled_date == date(2026, 1, 8)
    assert out.completed is False


def test_day_only_patch_leaves_scheduled_date_alone(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(db, principal, client_id=c.id, year=2025, month=12, day=3)

    out = update_assignment(db, principal, assignment_id=a.id, patch={"day": 20})
    assert out.day == 20
    assert out.scheduled_date == date(2025, 12, 3)


def test_rescheduling_into_an_occupied_month_does_not_clash(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    sep = create_assignment(db, principal, client_id=c.id, year=2025, month=9)
    create_assignment(db, principal, client_id=c.id, year=2025, month=10)

    out = update_assignment(db, principal, assignment_id=sep.id, patch={"scheduled_date": date(2025, 10, 2)})
    assert (out.year, out.month) == (2025, 9)
    assert out.scheduled_date == date(2025, 10, 2)
    assert get_client_assignment(db, principal, client_id=c.id, year=2025, month=9).id == sep.id


def test_moving_onto_an_occupied_month_clashes(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    sep = create_assignment(db, principal, client_id=c.id, year=2025, month=9)
    dec = create_assignment(db, principal, client_id=c.id, year=2025, month=12)

    with pytest.raises(DuplicateAssignment) as ei:
        update_assignment(db, principal, assignment_id=dec.id, patch={"month": 9})
    assert ei.value.existing_id == sep.id

    db.expire_all()
    assert get_assignment(db, principal, assignment_id=dec.id).month == 12


def test_scheduling_the_open_cycle_moves_next_due(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    assert c.next_due == date(2025, 9, 15)

    create_assignment(db, principal, client_id=c.id, year=2025, month=9, day=22)
    db.refresh(c)
    assert c.next_due == date(2025, 9, 22)

    # a later cycle's slot leaves nextDue alone
    create_assignment(db, principal, client_id=c.id, year=2025, month=12, day=2)
    db.refresh(c)
    assert c.next_due == date(2025, 9, 22)


def test_rescheduling_the_open_cycle_follows_the_new_date(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(db, principal, client_id=c.id, year=2025, month=9)

    update_assignment(db, principal, assignment_id=a.id, patch={"scheduled_date": date(2025, 9, 5)})
    db.refresh(c)
    assert c.next_due == date(2025, 9, 5)


def test_delete_recomputes_next_due(db, principal, make_client):
    c = make_client(principal, QUARTERLY, today=TODAY)
    a = create_assignment(db, principal, client_id=c.id, year=2025, month=9, day=2)
    db.refresh(c)
    assert c.next_due == date(2025, 9, 2)

    assert delete_assignment_and_recompute(db, principal, assignment_id=a.id, today=TODAY) is True
    db.refresh(c)
    assert c.next_due == date(2025, 9, 15)
    assert get_assignment(db, principal, assignment_id=a.id) is None


def test_delete_missing_slot_returns_false(db, principal):
    assert delete_assignment(db, principal, assignment_id=987654) is False


def test_list_filters_by_technician(db, principal, make_client):
    c1 = make_client(principal, QUARTERLY, today=TODAY)
    c2 = make_client(principal, QUARTERLY, today=TODAY)
    a1 = create_assignment(db, principal, client_id=c1.id, year=2025, month=9, day=3, assigned_technician_ids=[7])
    a2 = create_assignment(db, principal, client_id=c2.id, year=2025, month=9, day=1, assigned_technician_ids=[8, 7])
    create_assignment(db, principal, client_id=c1.id, year=2025, month=12)

    assert [a.id for a in list_assignments(db, principal, year=2025, month=9)] == [a2.id, a1.id]
    assert {a.id for a in list_assignments(db, principal, year=2025, month=9, technician_id=7)} == {a1.id, a2.id}
    assert [a.id for a in list_assignments(db, principal, year=2025, month=9, technician_id="8")] == [a2.id]
    assert list_assignments(db, principal, year=2025, month=9, technician_id=99) == []


def test_other_orgs_cannot_see_or_touch_slots(db, make_principal, make_client):
    p1 = make_principal()
    p2 = make_principal()
    c = make_client(p1, QUARTERLY, today=TODAY)
    a = create_assignment(db, p1, client_id=c.id, year=2025, month=9)

    assert get_assignment(db, p2, assignment_id=a.id) is None
    assert list_assignments(db, p2, year=2025, month=9) == []
    assert delete_assignment(db, p2, assignment_id=a.id) is False
    with pytest.raises(NotFound):
        update_assignment(db, p2, assignment_id=a.id, patch={"day": 3})
    with pytest.raises(NotFound):
        create_assignment(db, p2, client_id=c.id, year=2025, month=12)


def test_concurrent_creates_for_one_slot_keep_a_single_row(db, principal, make_client, run_in_threads):
    c = make_client(principal, QUARTERLY, today=TODAY)

    def create(s, _i):
        return create_assignment(s, principal, client_id=c.id, year=2026, month=3).id

    outcomes = run_in_threads(create, 2)

    created = [x for x in outcomes if isinstance(x, int)]
    rejected = [x for x in outcomes if isinstance(x, DuplicateAssignment)]
    assert len(created) == 1 and len(rejected) == 1, outcomes
    assert rejected[0].existing_id == created[0]
    assert [r.id for r in list_assignments(db, principal, year=2026, month=3)] == created
