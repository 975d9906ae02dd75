from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import CompanyCounter

log = logging.getLogger("pm_scheduler.counters")


def _bump(db: Session, *, org_id: int, column) -> Optional[int]:
    stmt = (
        update(CompanyCounter)
        .where(CompanyCounter.org_id == int(org_id))
        .values({column.key: column + 1})
        .returning(column)
    )
    return db.execute(stmt).scalar_one_or_none()


def _issue(db: Session, *, org_id: int, column) -> int:
    """
    Atomic increment-and-read of one per-org counter.

    UPDATE ... SET n = n + 1 RETURNING n holds the row lock for the rest of the
    caller's transaction, so two concurrent issuers can never read the same value.
    Returns the value issued (the pre-increment number).

    The org's row is created on first issuance inside a SAVEPOINT. A concurrent
    first issuer that loses on the unique org_id constraint rolls back only the
    savepoint and increments the winner's row instead.
    """
    new_value = _bump(db, org_id=org_id, column=column)
    if new_value is not None:
        return int(new_value) - 1

    row = CompanyCounter(
        org_id=int(org_id),
        next_job_number=int(settings.job_number_start),
        next_invoice_number=int(settings.invoice_number_start),
    )
    issued = int(getattr(row, column.key))
    setattr(row, column.key, issued + 1)
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        log.info("counter row created concurrently", extra={"org_id": int(org_id)})
        new_value = _bump(db, org_id=org_id, column=column)
        if new_value is None:
            raise
        return int(new_value) - 1

    log.info("counter row created", extra={"org_id": int(org_id)})
    return issued


def issue_job_number(db: Session, *, org_id: int) -> int:
    return _issue(db, org_id=org_id, column=CompanyCounter.next_job_number)


def issue_invoice_number(db: Session, *, org_id: int) -> int:
    return _issue(db, org_id=org_id, column=CompanyCounter.next_invoice_number)
