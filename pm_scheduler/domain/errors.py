from __future__ import annotations

from typing import Optional


class SchedulingError(Exception):
    """Base for every error the scheduling engine raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    def __init__(self, entity: str, entity_id: object = None):
        msg = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(msg)
        self.entity = entity
        self.entity_id = entity_id


class DuplicateAssignment(SchedulingError):
    def __init__(self, *, client_id: int, year: int, month: int, existing_id: Optional[int] = None):
        super().__init__(f"client {client_id} already has an assignment for {year}-{month:02d}")
        self.client_id = client_id
        self.year = year
        self.month = month
        self.existing_id = existing_id


class InvalidTransition(SchedulingError):
    def __init__(self, from_status: str, to_status: str, kind: str = "work order"):
        super().__init__(f"Invalid {kind} status transition: cannot move from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


class TransactionFailure(SchedulingError):
    """Store-level abort. Nothing from the failed operation was kept; safe to retry."""
