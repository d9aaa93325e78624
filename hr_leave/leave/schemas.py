"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hr_leave.common.constants import ApproverRole, Decision, LeaveStatus, LeaveType
from hr_leave.common.pagination import PaginationMeta
from hr_leave.config import settings


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type: LeaveType
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(
        None, min_length=5, max_length=1000, description="Reason for leave"
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date.")
        if (self.to_date - self.from_date).days >= settings.MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"Leave request cannot span more than {settings.MAX_LEAVE_SPAN_DAYS} days."
            )
        return self


# ═════════════════════════════════════════════════════════════════════
# Decisions / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Payload for a manager or HR decision."""

    approve: bool
    remarks: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for withdrawing a pending leave request."""

    reason: Optional[str] = Field(None, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class TrailEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    actor_id: uuid.UUID
    actor_role: ApproverRole
    decision: Decision
    status: LeaveStatus
    at: datetime
    remarks: Optional[str] = None


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    manager_id: Optional[uuid.UUID] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: int
    year: int
    reason: Optional[str] = None
    status: LeaveStatus
    trail: list[TrailEntryOut] = []
    created_at: datetime
    updated_at: datetime


class LeaveRequestListOut(BaseModel):
    """Paginated leave requests: ``{"data": [...], "meta": {...}}``."""

    data: list[LeaveRequestOut]
    meta: PaginationMeta


class LeaveBalanceOut(BaseModel):
    """Balance for one (employee, leave type, accounting year) key.

    ``allotted`` and ``available`` are ``None`` for uncapped types.
    """

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int
    allotted: Optional[int] = None
    consumed: int
    reserved: int
    available: Optional[int] = None
