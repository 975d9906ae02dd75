# tests/test_calendar_api.py
from __future__ import annotations

import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient

from pm_scheduler.domain.due_dates import compute_next_due
from pm_scheduler.main import app

QUARTERLY = [2, 5, 8, 11]


def _headers(org: str, role: str = "owner", email: str | None = None) -> dict[str, str]:
    return {
        "X-Org-Slug": org,
        "X-User-Email": email or f"{role}-{org}@example.com",
        "X-User-Role": role,
    }


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def org() -> str:
    return f"api-{uuid.uuid4().hex[:10]}"


def _new_client(client, h, months=QUARTERLY, name="Northside Clinic"):
    r = client.post("/api/clients", json={"company_name": name, "selected_months": months}, headers=h)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_request_id_is_echoed_or_generated(client):
    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"

    r = client.get("/api/health")
    assert len(r.headers["X-Request-ID"]) == 36

    r = client.get("/api/health", headers={"X-Request-ID": "x" * 500})
    assert r.headers["X-Request-ID"] != "x" * 500


def test_missing_org_header_is_401(client):
    assert client.get("/api/clients").status_code == 401


def test_client_create_and_next_due_preview(client, org):
    h = _headers(org)
    c = _new_client(client, h)
    assert c["next_due"] == compute_next_due(QUARTERLY, False, date.today()).isoformat()

    r = client.get(
        "/api/clients/next-due",
        params=[("months", 2), ("months", 5), ("months", 8), ("months", 11), ("today", "2025-07-10")],
        headers=h,
    )
    assert r.json() == {"next_due": "2025-09-15", "no_schedule": False}

    r = client.get("/api/clients/next-due", params={"months": 6, "inactive": True}, headers=h)
    assert r.json() == {"next_due": "9999-12-31", "no_schedule": True}


def test_assign_duplicate_patch_delete(client, org):
    h = _headers(org)
    c = _new_client(client, h)

    r = client.post("/api/calendar/assign", json={"client_id": c["id"], "year": 2031, "month": 3}, headers=h)
    assert r.status_code == 201, r.text
    a = r.json()
    assert a["scheduled_date"] == "2031-03-15"
    assert a["day"] is None

    r = client.post("/api/calendar/assign", json={"client_id": c["id"], "year": 2031, "month": 3, "day": 4}, headers=h)
    assert r.status_code == 409
    assert r.json()["existing_id"] == a["id"]

    r = client.patch(f"/api/calendar/assign/{a['id']}", json={"day": 9, "scheduled_date": "2031-03-09", "assigned_technician_ids": ["t1"]}, headers=h)
    assert r.status_code == 200
    assert r.json()["scheduled_date"] == "2031-03-09"
    assert r.json()["assigned_technician_ids"] == ["t1"]

    r = client.get("/api/calendar", params={"year": 2031, "month": 3, "technician_id": "t1"}, headers=h)
    assert [x["id"] for x in r.json()] == [a["id"]]

    assert client.delete(f"/api/calendar/assign/{a['id']}", headers=h).status_code == 200
    assert client.delete(f"/api/calendar/assign/{a['id']}", headers=h).status_code == 404


def test_impossible_day_is_422(client, org):
    h = _headers(org)
    c = _new_client(client, h)
    r = client.post("/api/calendar/assign", json={"client_id": c["id"], "year": 2031, "month": 2, "day": 30}, headers=h)
    assert r.status_code == 422


def test_toggle_round_trip(client, org):
    h = _headers(org)
    c = _new_client(client, h)

    r = client.post(f"/api/maintenance/{c['id']}/toggle", json={"due_date": "2031-09-15"}, headers=h)
    assert r.status_code == 200
    body = r.json()
    assert body["completed"] is True
    assert body["next_due"] == "2031-12-15"
    assert body["provisioned_assignment_id"]

    r = client.get("/api/calendar", params={"year": 2031, "month": 12}, headers=h)
    assert [x["id"] for x in r.json()] == [body["provisioned_assignment_id"]]

    r = client.post(f"/api/maintenance/{c['id']}/toggle", json={"due_date": "2031-09-15"}, headers=h)
    assert r.json()["completed"] is False

    r = client.get("/api/maintenance/recently-completed", headers=h)
    assert r.json() == []

    assert client.post("/api/maintenance/999999/toggle", json={"due_date": "2031-09-15"}, headers=h).status_code == 404


def test_backlog_window_over_http(client, org):
    h = _headers(org)
    c = _new_client(client, h, months=[5])

    r = client.get("/api/calendar/unscheduled", params={"today": "2025-07-20"}, headers=h)
    assert r.status_code == 200
    body = r.json()
    assert body["window"] == [{"year": 2025, "month": 6}, {"year": 2025, "month": 7}, {"year": 2025, "month": 8}]
    assert [(m["client_id"], m["month"]) for m in body["missing"]] == [(c["id"], 6)]


def test_analyst_cannot_write(client, org):
    owner = _headers(org)
    c = _new_client(client, owner)

    analyst = _headers(org, role="analyst")
    r = client.post("/api/calendar/assign", json={"client_id": c["id"], "year": 2031, "month": 3}, headers=analyst)
    assert r.status_code == 403
    r = client.post(f"/api/maintenance/{c['id']}/toggle", json={"due_date": "2031-09-15"}, headers=analyst)
    assert r.status_code == 403

    # reads are fine
    assert client.get("/api/clients", headers=analyst).status_code == 200


def test_orgs_are_isolated(client, org):
    c = _new_client(client, _headers(org))
    other = _headers(f"{org}-other")

    assert client.get("/api/clients", headers=other).json() == []
    r = client.post("/api/calendar/assign", json={"client_id": c["id"], "year": 2031, "month": 3}, headers=other)
    assert r.status_code == 404


def test_series_and_work_order_status(client, org):
    h = _headers(org)
    c = _new_client(client, h)

    r = client.post(
        "/api/series",
        json={
            "location_id": c["id"],
            "base_summary": "Chiller PM",
            "start_date": "2031-01-06",
            "phases": [{"frequency": "weekly", "occurrences": 2}, {"frequency": "monthly", "occurrences": 1}],
        },
        headers=h,
    )
    assert r.status_code == 201, r.text
    sid = r.json()["id"]

    r = client.post(f"/api/series/{sid}/generate", json={"count": 5}, headers=h)
    assert [v["scheduled_date"] for v in r.json()["visits"]] == ["2031-01-06", "2031-01-13", "2031-01-20"]

    r = client.post(f"/api/series/{sid}/generate", json={"count": 5, "materialize": True}, headers=h)
    wo_ids = r.json()["work_order_ids"]
    assert len(wo_ids) == 3

    r = client.patch(f"/api/work-orders/{wo_ids[0]}/status", json={"status": "invoiced"}, headers=h)
    assert r.status_code == 422
    assert r.json()["from_status"] == "scheduled"

    r = client.patch(f"/api/work-orders/{wo_ids[0]}/status", json={"status": "dispatched"}, headers=h)
    assert r.status_code == 200
    assert r.json()["status"] == "dispatched"

    r = client.get("/api/work-orders/transitions/completed")
    assert set(r.json()["allowed"]) == {"invoiced", "closed", "archived"}
    assert client.get("/api/work-orders/transitions/bogus").status_code == 404

    r = client.post(
        "/api/series",
        json={"location_id": c["id"], "base_summary": "x", "start_date": "2031-01-06", "phases": [{"frequency": "hourly"}]},
        headers=h,
    )
    assert r.status_code == 422


def test_writes_leave_audit_and_workflow_trail(client, org):
    h = _headers(org)
    c = _new_client(client, h)
    client.post(f"/api/maintenance/{c['id']}/toggle", json={"due_date": "2031-09-15"}, headers=h)

    r = client.get("/api/audit", params={"action": "maintenance.complete"}, headers=h)
    assert r.status_code == 200
    rows = r.json()
    assert len(rows) == 1
    assert rows[0]["entity_type"] == "Client"
    assert rows[0]["after"]["next_due"] == "2031-12-15"

    r = client.get("/api/workflow/events", params={"client_id": c["id"]}, headers=h)
    types = [e["event_type"] for e in r.json()]
    assert "maintenance.completed" in types
    assert "assignment.auto_provisioned" in types
