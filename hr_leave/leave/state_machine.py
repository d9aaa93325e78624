"""Approval state machine for leave requests.

    pending ──manager approve──▶ manager_approved ──hr approve──▶ hr_approved
       │  ╲                            │
       │   ╲ manager reject            │ hr reject
       │    ╲──────────────▶ rejected ◀┘
       │
       └──employee cancel──▶ cancelled

Ledger effects are tied to target states: reaching ``rejected`` or
``cancelled`` releases the reservation, reaching ``hr_approved`` confirms it.
No other transition touches the ledger.

Leaving the active set is applied to the overlap index by ``settle``, after
the caller has made the transition durable.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from hr_leave.common.constants import (
    HR_ROLES,
    ApproverRole,
    Decision,
    LeaveEventType,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hr_leave.common.exceptions import (
    ForbiddenException,
    InvalidTransition,
    OverlapConflict,
)
from hr_leave.leave.ledger import BalanceLedger
from hr_leave.leave.overlap import OverlapIndex
from hr_leave.leave.records import LeaveRecord, TrailEntry
from hr_leave.notifications.schemas import LeaveEvent

logger = logging.getLogger(__name__)


# (current status, decision, role of the actor) → next status
TRANSITIONS: dict[tuple[LeaveStatus, Decision, ApproverRole], LeaveStatus] = {
    (LeaveStatus.pending, Decision.approved, ApproverRole.manager): LeaveStatus.manager_approved,
    (LeaveStatus.pending, Decision.rejected, ApproverRole.manager): LeaveStatus.rejected,
    (LeaveStatus.manager_approved, Decision.approved, ApproverRole.hr): LeaveStatus.hr_approved,
    (LeaveStatus.manager_approved, Decision.rejected, ApproverRole.hr): LeaveStatus.rejected,
    (LeaveStatus.pending, Decision.cancelled, ApproverRole.employee): LeaveStatus.cancelled,
}

_EVENT_FOR_STATUS: dict[LeaveStatus, LeaveEventType] = {
    LeaveStatus.pending: LeaveEventType.submitted,
    LeaveStatus.manager_approved: LeaveEventType.manager_approved,
    LeaveStatus.hr_approved: LeaveEventType.hr_approved,
    LeaveStatus.rejected: LeaveEventType.rejected,
    LeaveStatus.cancelled: LeaveEventType.cancelled,
}

_ACTION_NAMES: dict[tuple[Decision, ApproverRole], str] = {
    (Decision.approved, ApproverRole.manager): "manager-approve",
    (Decision.rejected, ApproverRole.manager): "manager-reject",
    (Decision.approved, ApproverRole.hr): "hr-approve",
    (Decision.rejected, ApproverRole.hr): "hr-reject",
    (Decision.cancelled, ApproverRole.employee): "cancel",
}


def count_days(start: date, end: date) -> int:
    """Inclusive calendar days in ``[start, end]``."""
    return (end - start).days + 1


def _event(record: LeaveRecord, actor_id: uuid.UUID) -> LeaveEvent:
    return LeaveEvent(
        event_type=_EVENT_FOR_STATUS[record.status],
        request_id=record.id,
        employee_id=record.employee_id,
        new_status=record.status,
        actor_id=actor_id,
        manager_id=record.manager_id,
    )


class ApprovalStateMachine:
    """Drives leave records through their lifecycle against a ledger and index.

    Callers hold the record's balance-key lock for the duration of a call.
    Each method either raises before mutating anything or completes the
    transition and its ledger effect together.
    """

    def __init__(self, ledger: BalanceLedger, index: OverlapIndex) -> None:
        self.ledger = ledger
        self.index = index

    # ─────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────

    def submit(
        self,
        *,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
    ) -> tuple[LeaveRecord, LeaveEvent]:
        """Create a request in ``pending``. Nothing is created on failure."""

        conflict = self.index.find_conflict(employee_id, start_date, end_date)
        if conflict is not None:
            logger.info(
                "Submission by %s for %s..%s overlaps request %s",
                employee_id, start_date, end_date, conflict,
            )
            raise OverlapConflict(
                "You already have a pending or approved leave request "
                "overlapping with these dates.",
                conflicting_request_id=conflict,
            )

        days = count_days(start_date, end_date)
        year = start_date.year
        self.ledger.reserve(employee_id, leave_type, year, days)

        record = LeaveRecord(
            employee_id=employee_id,
            manager_id=manager_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days=days,
            year=year,
            reason=reason,
        )
        record.append_trail(TrailEntry(
            actor_id=employee_id,
            actor_role=ApproverRole.employee,
            decision=Decision.submitted,
            status=LeaveStatus.pending,
            remarks=reason,
        ))
        self.index.register(record)

        logger.info(
            "Leave request %s submitted: %s %s day(s) for employee %s",
            record.id, leave_type.value, days, employee_id,
        )
        return record, _event(record, employee_id)

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    def manager_decide(
        self,
        record: LeaveRecord,
        approve: bool,
        manager_id: uuid.UUID,
        remarks: Optional[str] = None,
    ) -> LeaveEvent:
        if record.manager_id is None or record.manager_id != manager_id:
            raise ForbiddenException(
                "Only the employee's manager of record can decide this leave request."
            )
        decision = Decision.approved if approve else Decision.rejected
        return self._apply(record, decision, ApproverRole.manager, manager_id, remarks)

    def hr_decide(
        self,
        record: LeaveRecord,
        approve: bool,
        hr_id: uuid.UUID,
        hr_role: UserRole,
        remarks: Optional[str] = None,
    ) -> LeaveEvent:
        if hr_role not in HR_ROLES:
            raise ForbiddenException("Only HR can take the final decision on leave requests.")
        decision = Decision.approved if approve else Decision.rejected
        return self._apply(record, decision, ApproverRole.hr, hr_id, remarks)

    def cancel(
        self,
        record: LeaveRecord,
        employee_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> LeaveEvent:
        if record.employee_id != employee_id:
            raise ForbiddenException("You can only cancel your own leave requests.")
        return self._apply(record, Decision.cancelled, ApproverRole.employee, employee_id, reason)

    # ─────────────────────────────────────────────────────────────────
    # Core transition
    # ─────────────────────────────────────────────────────────────────

    def _apply(
        self,
        record: LeaveRecord,
        decision: Decision,
        role: ApproverRole,
        actor_id: uuid.UUID,
        remarks: Optional[str],
    ) -> LeaveEvent:
        target = TRANSITIONS.get((record.status, decision, role))
        if target is None:
            raise InvalidTransition(record.status, _ACTION_NAMES[(decision, role)])

        # A failing ledger effect leaves the record untouched
        key = record.balance_key
        if target is LeaveStatus.hr_approved:
            self.ledger.confirm(key.employee_id, key.leave_type, key.year, record.days)
        elif target in (LeaveStatus.rejected, LeaveStatus.cancelled):
            self.ledger.release(key.employee_id, key.leave_type, key.year, record.days)

        previous = record.status
        record.append_trail(TrailEntry(
            actor_id=actor_id,
            actor_role=role,
            decision=decision,
            status=target,
            remarks=remarks,
        ))
        logger.info(
            "Leave request %s: %s → %s by %s %s",
            record.id, previous.value, target.value, role.value, actor_id,
        )
        return _event(record, actor_id)

    def settle(self, record: LeaveRecord) -> None:
        """Drop a record that left the active set from the overlap index."""
        if not record.status.is_active:
            self.index.unregister(record)
