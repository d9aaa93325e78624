"""In-memory leave records owned by the engine.

These are the engine's working copies of ``leave_requests`` / ``leave_balances``
rows. Callers only ever receive response schemas built from them.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.common.constants import (
    ApproverRole,
    Decision,
    LeaveStatus,
    LeaveType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BalanceKey(NamedTuple):
    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int


class TrailEntry(BaseModel):
    """One immutable step of a request's approval trail."""

    model_config = ConfigDict(frozen=True)

    actor_id: uuid.UUID
    actor_role: ApproverRole
    decision: Decision
    status: LeaveStatus
    at: datetime = Field(default_factory=utcnow)
    remarks: Optional[str] = None


class LeaveRecord(BaseModel):
    """A leave request as tracked by the engine."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    employee_id: uuid.UUID
    manager_id: Optional[uuid.UUID] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: int
    year: int
    reason: Optional[str] = None
    status: LeaveStatus = LeaveStatus.pending
    trail: tuple[TrailEntry, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def balance_key(self) -> BalanceKey:
        return BalanceKey(self.employee_id, self.leave_type, self.year)

    def append_trail(self, entry: TrailEntry) -> None:
        # Trail is replaced, never edited in place
        self.trail = (*self.trail, entry)
        self.status = entry.status
        self.updated_at = entry.at


class BalanceRecord(BaseModel):
    """Quota accounting for one (employee, leave type, accounting year) key.

    ``allotted`` is ``None`` for uncapped types.
    """

    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int
    allotted: Optional[int] = None
    consumed: int = 0
    reserved: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.employee_id, self.leave_type, self.year)

    @property
    def available(self) -> Optional[int]:
        if self.allotted is None:
            return None
        return self.allotted - self.consumed - self.reserved
