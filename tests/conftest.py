# tests/conftest.py
from __future__ import annotations

import os
import tempfile
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Iterable, Optional

# must be set before pm_scheduler.config is imported anywhere
_DB_DIR = tempfile.mkdtemp(prefix="pm_scheduler_tests_")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["APP_ENV"] = "test"
os.environ["AUTH_MODE"] = "dev"

import pytest

from pm_scheduler.auth import Principal
from pm_scheduler.db import Base, SessionLocal, engine
from pm_scheduler.models import AppUser, Organization, OrgMembership
from pm_scheduler.services.clients import create_client

Base.metadata.create_all(engine)


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


def _mk_principal(db, role: str = "owner") -> Principal:
    tag = uuid.uuid4().hex[:10]
    org = Organization(slug=f"org-{tag}", name=f"Org {tag}", created_at=datetime.utcnow())
    user = AppUser(email=f"u-{tag}@t.local", display_name=tag, created_at=datetime.utcnow())
    db.add(org); db.add(user); db.commit()
    db.refresh(org); db.refresh(user)
    db.add(OrgMembership(org_id=org.id, user_id=user.id, role=role, created_at=datetime.utcnow()))
    db.commit()
    return Principal(org_id=int(org.id), org_slug=org.slug, user_id=int(user.id), email=user.email, role=role)


def _mk_client(
    db,
    p: Principal,
    months: Iterable[int],
    *,
    today: date,
    inactive: bool = False,
    name: Optional[str] = None,
):
    return create_client(
        db,
        p,
        company_name=name or f"Client {uuid.uuid4().hex[:6]}",
        selected_months=list(months),
        inactive=inactive,
        today=today,
    )


@pytest.fixture()
def principal(db) -> Principal:
    return _mk_principal(db)


@pytest.fixture()
def make_principal(db):
    def _make(role: str = "owner") -> Principal:
        return _mk_principal(db, role)

    return _make


@pytest.fixture()
def make_client(db):
    def _make(p: Principal, months: Iterable[int], *, today: date, inactive: bool = False, name: Optional[str] = None):
        return _mk_client(db, p, months, today=today, inactive=inactive, name=name)

    return _make


@pytest.fixture()
def run_in_threads():
    """
    Calls fn(session, i) for i in range(n) on n threads released together.
    Each thread gets its own session. Returns the results (or raised exceptions) in order.
    """

    def _run(fn, n: int) -> list:
        barrier = threading.Barrier(n)

        def _one(i: int):
            s = SessionLocal()
            try:
                barrier.wait()
                return fn(s, i)
            finally:
                s.close()

        with ThreadPoolExecutor(max_workers=n) as pool:
            futures = [pool.submit(_one, i) for i in range(n)]
        return [f.exception() or f.result() for f in futures]

    return _run
