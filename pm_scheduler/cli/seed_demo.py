# pm_scheduler/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pm_scheduler.auth import Principal
from pm_scheduler.db import SessionLocal
from pm_scheduler.models import AppUser, Client, Organization, OrgMembership
from pm_scheduler.services.clients import create_client

# (company, location, selected months 0=Jan .. 11=Dec)
DEMO_CLIENTS: tuple[tuple[str, str, list[int]], ...] = (
    ("Harbourfront Dental", "Toronto", [2, 5, 8, 11]),
    ("Maple Ridge Arena", "Oakville", [0, 6]),
    ("Northgate Bakery", "Hamilton", [3, 9]),
    ("Lakeshore Offices", "Mississauga", list(range(12))),
)


@dataclass(frozen=True)
class SeedResult:
    org_slug: str
    user_email: str
    client_ids: list[int]


def _get_or_create_org(db: Session, slug: str, name: str) -> Organization:
    row = db.scalar(select(Organization).where(Organization.slug == slug))
    if row:
        return row
    row = Organization(slug=slug, name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _ensure_membership(db: Session, org_id: int, user_id: int, role: str = "owner") -> None:
    existing = db.scalar(
        select(OrgMembership).where(OrgMembership.org_id == int(org_id), OrgMembership.user_id == int(user_id))
    )
    if existing:
        return
    db.add(OrgMembership(org_id=int(org_id), user_id=int(user_id), role=str(role)))
    db.commit()


def seed_demo(
    *,
    org_slug: str = "demo",
    org_name: str = "Demo Mechanical",
    user_email: str = "dispatch@demo.local",
    user_name: str = "Dispatch",
    today: Optional[date] = None,
) -> SeedResult:
    """Idempotent: clients that already exist (by company name) are left alone."""
    db = SessionLocal()
    try:
        org = _get_or_create_org(db, org_slug, org_name)
        user = _get_or_create_user(db, user_email, user_name)
        _ensure_membership(db, int(org.id), int(user.id), role="owner")

        p = Principal(
            org_id=int(org.id),
            org_slug=str(org.slug),
            user_id=int(user.id),
            email=str(user.email),
            role="owner",
        )

        ids: list[int] = []
        for (company, location, months) in DEMO_CLIENTS:
            existing = db.scalar(
                select(Client).where(Client.org_id == p.org_id, Client.company_name == company)
            )
            if existing is None:
                existing = create_client(
                    db, p, company_name=company, location=location, selected_months=months, today=today
                )
            ids.append(int(existing.id))

        return SeedResult(org_slug=str(org.slug), user_email=str(user.email), client_ids=ids)
    finally:
        db.close()
