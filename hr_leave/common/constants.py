"""Enums and constants for the leave engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


HR_ROLES: frozenset[UserRole] = frozenset({UserRole.hr_admin, UserRole.system_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    paid = "paid"
    sick = "sick"
    unpaid = "unpaid"
    maternity = "maternity"

    @classmethod
    def _missing_(cls, value):
        # PAID, Sick, ... resolve to the lowercase member
        if isinstance(value, str):
            return cls.__members__.get(value.strip().lower())
        return None


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    manager_approved = "manager_approved"
    hr_approved = "hr_approved"
    rejected = "rejected"
    cancelled = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Statuses whose date range blocks other requests of the same employee
ACTIVE_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.pending,
    LeaveStatus.manager_approved,
    LeaveStatus.hr_approved,
})

TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.hr_approved,
    LeaveStatus.rejected,
    LeaveStatus.cancelled,
})


class ApproverRole(str, enum.Enum):
    """Role in which an actor touched a leave request (approval trail)."""

    employee = "employee"
    manager = "manager"
    hr = "hr"


class Decision(str, enum.Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LeaveEventType(str, enum.Enum):
    submitted = "leave.submitted"
    manager_approved = "leave.manager_approved"
    hr_approved = "leave.hr_approved"
    rejected = "leave.rejected"
    cancelled = "leave.cancelled"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    reminder = "reminder"
    alert = "alert"


# ── Misc constants ──────────────────────────────────────────────────

# MATERNITY allotments are not annual; all years map onto this period key
STATUTORY_PERIOD = 0
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
