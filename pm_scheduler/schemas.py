# pm_scheduler/schemas.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Optional, List, Any

from pydantic import BaseModel, Field, ConfigDict, model_validator


# -------------------- Clients --------------------

class ClientCreate(BaseModel):
    company_name: str
    location: Optional[str] = None
    selected_months: List[int] = Field(default_factory=list, description="0=Jan .. 11=Dec")
    inactive: bool = False


class ClientOut(BaseModel):
    id: int
    company_name: str
    location: Optional[str] = None
    selected_months: List[int] = Field(default_factory=list)
    inactive: bool
    next_due: date
    model_config = ConfigDict(from_attributes=True)


class ClientScheduleIn(BaseModel):
    selected_months: Optional[List[int]] = None
    inactive: Optional[bool] = None


class ClientScheduleOut(BaseModel):
    client: ClientOut
    removed_assignment_ids: List[int] = Field(default_factory=list)


class NextDuePreviewOut(BaseModel):
    next_due: date
    no_schedule: bool


# -------------------- Calendar assignments --------------------

class AssignmentCreate(BaseModel):
    client_id: int
    year: int = Field(..., ge=1970, le=9999)
    month: int = Field(..., ge=1, le=12)
    day: Optional[int] = Field(default=None, ge=1, le=31)
    scheduled_date: Optional[date] = None
    scheduled_hour: Optional[int] = Field(default=None, ge=0, le=23)
    auto_due_date: Optional[bool] = None
    completion_notes: Optional[str] = None
    assigned_technician_ids: List[str] = Field(default_factory=list)


class AssignmentUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are applied
    (read with model_dump(exclude_unset=True)).
    """

    year: Optional[int] = Field(default=None, ge=1970, le=9999)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    day: Optional[int] = Field(default=None, ge=1, le=31)
    scheduled_date: Optional[date] = None
    scheduled_hour: Optional[int] = Field(default=None, ge=0, le=23)
    auto_due_date: Optional[bool] = None
    completed: Optional[bool] = None
    completion_notes: Optional[str] = None
    assigned_technician_ids: Optional[List[str]] = None


class AssignmentOut(BaseModel):
    id: int
    client_id: int
    job_number: int
    year: int
    month: int
    day: Optional[int] = None
    scheduled_date: date
    scheduled_hour: Optional[int] = None
    auto_due_date: bool
    completed: bool
    completion_notes: Optional[str] = None
    assigned_technician_ids: List[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


# -------------------- Completion / backlog --------------------

class ToggleIn(BaseModel):
    due_date: date = Field(..., description="The cycle being completed, not today")


class ToggleOut(BaseModel):
    completed: bool
    next_due: Optional[date] = None
    record_id: Optional[int] = None
    provisioned_assignment_id: Optional[int] = None


class BacklogEntryOut(BaseModel):
    kind: str
    client_id: int
    company_name: str
    year: int
    month: int
    assignment_id: Optional[int] = None
    job_number: Optional[int] = None
    scheduled_date: Optional[date] = None


class BacklogWindowMonth(BaseModel):
    year: int
    month: int


class BacklogOut(BaseModel):
    window: List[BacklogWindowMonth]
    existing: List[BacklogEntryOut] = Field(default_factory=list)
    missing: List[BacklogEntryOut] = Field(default_factory=list)


class MaintenanceStatusOut(BaseModel):
    completed: int = 0
    overdue: int = 0
    today: int = 0
    scheduled: int = 0


class CompletedRecordOut(BaseModel):
    id: int
    client_id: int
    company_name: str
    due_date: date
    completed_at: datetime


# -------------------- Recurring series --------------------

class PhaseIn(BaseModel):
    frequency: str = Field(..., description="daily | weekly | monthly | quarterly | yearly")
    interval: int = Field(default=1, ge=1)
    occurrences: Optional[int] = Field(default=None, ge=1)
    until_date: Optional[date] = None
    order_index: Optional[int] = None


class SeriesCreate(BaseModel):
    location_id: int
    base_summary: str
    base_description: Optional[str] = None
    base_job_type: str = "service"
    base_priority: str = "normal"
    default_technician_id: Optional[int] = None
    start_date: date
    timezone: Optional[str] = None
    notes: Optional[str] = None
    phases: List[PhaseIn] = Field(..., min_length=1)


class PhaseOut(BaseModel):
    order_index: int
    frequency: str
    interval: int
    occurrences: Optional[int] = None
    until_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


class SeriesOut(BaseModel):
    id: int
    location_id: int
    base_summary: str
    base_description: Optional[str] = None
    base_job_type: str
    base_priority: str
    default_technician_id: Optional[int] = None
    start_date: date
    timezone: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool
    last_generated_at: Optional[datetime] = None
    phases: List[PhaseOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class GenerateIn(BaseModel):
    count: Optional[int] = Field(default=None, ge=0)
    materialize: bool = False


class VisitOut(BaseModel):
    scheduled_date: date
    phase_index: int
    occurrence: int
    summary: str
    description: Optional[str] = None
    job_type: str
    priority: str
    technician_id: Optional[int] = None


class GenerateOut(BaseModel):
    series_id: int
    visits: List[VisitOut] = Field(default_factory=list)
    work_order_ids: List[int] = Field(default_factory=list)
    skipped_existing: int = 0


# -------------------- Work orders --------------------

class WorkOrderStatusIn(BaseModel):
    status: str


class WorkOrderOut(BaseModel):
    id: int
    job_number: int
    location_id: int
    status: str
    priority: str
    job_type: str
    summary: str
    scheduled_start: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    recurring_series_id: Optional[int] = None
    calendar_assignment_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class TransitionsOut(BaseModel):
    status: str
    allowed: List[str] = Field(default_factory=list)


# -------------------- Audit / workflow --------------------

def _loads(raw: Any) -> Any:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return {"_unparsed": raw}


class AuditEventOut(BaseModel):
    """DB stores before_json/after_json TEXT; the API returns parsed objects."""

    id: int
    actor_user_id: Optional[int] = None
    action: str
    entity_type: str
    entity_id: str
    before: Optional[Any] = None
    after: Optional[Any] = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _coerce_json(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "actor_user_id": data.actor_user_id,
            "action": data.action,
            "entity_type": data.entity_type,
            "entity_id": data.entity_id,
            "before": _loads(data.before_json),
            "after": _loads(data.after_json),
            "created_at": data.created_at,
        }


class WorkflowEventOut(BaseModel):
    id: int
    client_id: Optional[int] = None
    actor_user_id: Optional[int] = None
    event_type: str
    payload: Optional[Any] = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _coerce_json(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "client_id": data.client_id,
            "actor_user_id": data.actor_user_id,
            "event_type": data.event_type,
            "payload": _loads(data.payload_json),
            "created_at": data.created_at,
        }
