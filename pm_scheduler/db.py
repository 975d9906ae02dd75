from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings
from .domain.errors import SchedulingError, TransactionFailure

log = logging.getLogger("pm_scheduler.db")


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    kw: dict = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # request handlers run in a threadpool
        kw["connect_args"] = {"check_same_thread": False}
    return kw


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def get_db():
    """
    IMPORTANT (Postgres):
    If any SQL statement fails, the transaction is aborted and the session
    cannot run further statements until a rollback happens.

    This dependency guarantees rollback on exceptions so errors don't cascade
    into "InFailedSqlTransaction" on later queries in the same request.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    One ACID transaction around a multi-record engine operation.

    - commits once at the end
    - any failure rolls back every write made inside the block
    - SchedulingError subclasses and ValueError (bad input) propagate unchanged after the rollback
    - anything else (store aborts, failed partial writes) surfaces as TransactionFailure
    """
    try:
        yield db
        db.commit()
    except (SchedulingError, ValueError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log.warning("transaction rolled back: %s", e.__class__.__name__, exc_info=True)
        raise TransactionFailure(f"store aborted the transaction: {e.__class__.__name__}") from e
    except Exception as e:
        db.rollback()
        log.warning("transaction rolled back after partial failure", exc_info=True)
        raise TransactionFailure(f"operation failed and was rolled back: {e}") from e
