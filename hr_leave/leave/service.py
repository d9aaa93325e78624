"""Leave workflow service — public entry point of the leave engine.

Sequences the overlap index, balance ledger and approval state machine,
and talks to the persistence and notification collaborators:

  - submit → overlap check → reserve → pending → persist → notify
  - decide / cancel → transition → confirm | release → persist → notify

Every call runs inside a per-key mutual-exclusion scope. Mutations are
applied to working copies and only become visible once persisted; a storage
failure rolls the ledger back and leaves no trace.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import AsyncExitStack
from datetime import date
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from hr_leave.auth.schemas import Principal
from hr_leave.common.constants import LeaveStatus, LeaveType
from hr_leave.common.exceptions import (
    ForbiddenException,
    InvariantViolation,
    NotFoundException,
    ValidationException,
)
from hr_leave.common.locks import KeyedLock
from hr_leave.leave.ledger import BalanceLedger
from hr_leave.leave.overlap import OverlapIndex
from hr_leave.leave.records import BalanceKey, BalanceRecord, LeaveRecord
from hr_leave.leave.schemas import LeaveBalanceOut, LeaveRequestCreate, LeaveRequestOut
from hr_leave.leave.state_machine import ApprovalStateMachine
from hr_leave.leave.store import LeaveStore
from hr_leave.notifications.schemas import LeaveEvent
from hr_leave.notifications.service import NotificationDispatcher

logger = logging.getLogger(__name__)

RequestId = Union[uuid.UUID, str]


def _validation_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = ".".join(str(p) for p in loc) if loc else "request"
        errors.setdefault(name, []).append(err.get("msg", "Invalid value"))
    return errors


# ═════════════════════════════════════════════════════════════════════
# LeaveWorkflowService
# ═════════════════════════════════════════════════════════════════════


class LeaveWorkflowService:
    """Async leave operations: submit, decide, cancel, balances, listings."""

    def __init__(
        self,
        store: LeaveStore,
        notifier: NotificationDispatcher,
        *,
        ledger: Optional[BalanceLedger] = None,
        index: Optional[OverlapIndex] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.ledger = ledger if ledger is not None else BalanceLedger()
        self.index = index if index is not None else OverlapIndex()
        self.machine = ApprovalStateMachine(self.ledger, self.index)

        self._requests: dict[uuid.UUID, LeaveRecord] = {}
        self._by_employee: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
        self._employee_locks: KeyedLock[uuid.UUID] = KeyedLock()
        self._balance_locks: KeyedLock[BalanceKey] = KeyedLock()

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _parse_request_id(request_id: RequestId) -> uuid.UUID:
        if isinstance(request_id, uuid.UUID):
            return request_id
        try:
            return uuid.UUID(str(request_id))
        except ValueError:
            raise ValidationException({"request_id": ["Not a valid UUID."]})

    @staticmethod
    def _parse_leave_type(leave_type: Any) -> LeaveType:
        try:
            return LeaveType(leave_type)
        except ValueError:
            allowed = ", ".join(t.value for t in LeaveType)
            raise ValidationException(
                {"leave_type": [f"Unknown leave type '{leave_type}'. Expected one of: {allowed}."]}
            )

    @staticmethod
    def _check_year(year: int) -> None:
        if not isinstance(year, int) or not (date.min.year <= year <= date.max.year):
            raise ValidationException({"year": ["Not a valid accounting year."]})

    def _get(self, request_id: RequestId) -> LeaveRecord:
        rid = self._parse_request_id(request_id)
        record = self._requests.get(rid)
        if record is None:
            raise NotFoundException("LeaveRequest", str(rid))
        return record

    def _lock_key(self, record: LeaveRecord) -> BalanceKey:
        return self.ledger.key_for(record.employee_id, record.leave_type, record.year)

    def _commit(self, record: LeaveRecord) -> None:
        if record.id not in self._requests:
            self._by_employee[record.employee_id].append(record.id)
        self._requests[record.id] = record

    def _notify(self, event: LeaveEvent) -> None:
        try:
            self.notifier.dispatch(event)
        except Exception:
            logger.warning(
                "Could not hand %s for request %s to the notifier",
                event.event_type.value, event.request_id, exc_info=True,
            )

    @staticmethod
    def _out(record: LeaveRecord) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(record.model_dump())

    @staticmethod
    def _balance_out(balance: BalanceRecord) -> LeaveBalanceOut:
        return LeaveBalanceOut(
            employee_id=balance.employee_id,
            leave_type=balance.leave_type,
            year=balance.year,
            allotted=balance.allotted,
            consumed=balance.consumed,
            reserved=balance.reserved,
            available=balance.available,
        )

    async def _persist(self, record: LeaveRecord, key: BalanceKey) -> bool:
        """Write ``record`` and the balance row of ``key``.

        The write is shielded and always runs to its outcome, so memory
        follows what the store holds. Returns True when the caller was
        cancelled while waiting; a failed write raises as usual.
        """
        save = asyncio.ensure_future(self.store.save(record, self.ledger.snapshot(key)))
        try:
            await asyncio.shield(save)
            return False
        except asyncio.CancelledError:
            if save.cancelled():
                raise
        while not save.done():
            try:
                await asyncio.wait({save})
            except asyncio.CancelledError:
                continue
        save.result()
        logger.info("Caller cancelled after request %s was stored", record.id)
        return True

    # ─────────────────────────────────────────────────────────────────
    # Startup
    # ─────────────────────────────────────────────────────────────────

    async def hydrate(self) -> None:
        """Rebuild ledger, index and registry from storage.

        Raises InvariantViolation when stored reservations do not match the
        stored requests that hold them.
        """
        balances = await self.store.load_balances()
        requests = await self.store.load_requests()

        for balance in balances:
            self.ledger.load(balance)

        held: dict[BalanceKey, int] = defaultdict(int)
        for record in requests:
            self._commit(record)
            if record.status.is_active:
                self.index.register(record)
            if record.status in (LeaveStatus.pending, LeaveStatus.manager_approved):
                held[self._lock_key(record)] += record.days

        stored = {balance.key: balance.reserved for balance in balances}
        for key in stored.keys() | held.keys():
            if stored.get(key, 0) != held.get(key, 0):
                raise InvariantViolation(
                    f"Stored reservation for {key} is {stored.get(key, 0)} day(s) "
                    f"but open requests hold {held.get(key, 0)}."
                )

        logger.info(
            "Leave engine hydrated: %d request(s), %d balance(s)",
            len(requests), len(balances),
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    async def submit(
        self,
        principal: Principal,
        *,
        leave_type: Any,
        start_date: Any,
        end_date: Any,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Apply for leave on behalf of ``principal``.

        Raises ValidationException, OverlapConflict, InsufficientBalance or
        StorageFailure. No request or reservation survives a failure.
        """
        try:
            data = LeaveRequestCreate.model_validate({
                "leave_type": leave_type,
                "from_date": start_date,
                "to_date": end_date,
                "reason": reason,
            })
        except PydanticValidationError as exc:
            raise ValidationException(_validation_errors(exc))

        employee_id = principal.employee_id
        key = self.ledger.key_for(employee_id, data.leave_type, data.from_date.year)

        # Employee scope first: overlap spans all leave types of the employee
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(self._employee_locks.hold(employee_id))
            await stack.enter_async_context(self._balance_locks.hold(key))

            before = self.ledger.snapshot(key)
            record, event = self.machine.submit(
                employee_id=employee_id,
                manager_id=principal.manager_id,
                leave_type=data.leave_type,
                start_date=data.from_date,
                end_date=data.to_date,
                reason=data.reason,
            )
            try:
                interrupted = await self._persist(record, key)
            except BaseException:
                self.index.unregister(record)
                self.ledger.restore(key, before)
                raise
            self._commit(record)

        self._notify(event)
        if interrupted:
            raise asyncio.CancelledError()
        return self._out(record)

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    async def _transition(
        self,
        request_id: RequestId,
        apply: Callable[[LeaveRecord], LeaveEvent],
    ) -> LeaveRequestOut:
        """Run ``apply(working_copy)`` under the key lock and make it durable."""
        key = self._lock_key(self._get(request_id))

        async with self._balance_locks.hold(key):
            # Re-read under the lock; the record may have moved meanwhile
            current = self._get(request_id)
            working = current.model_copy()
            before = self.ledger.snapshot(key)

            event = apply(working)
            try:
                interrupted = await self._persist(working, key)
            except BaseException:
                self.ledger.restore(key, before)
                raise
            self._commit(working)
            self.machine.settle(working)

        self._notify(event)
        if interrupted:
            raise asyncio.CancelledError()
        return self._out(working)

    async def manager_decide(
        self,
        request_id: RequestId,
        approve: bool,
        principal: Principal,
        remarks: Optional[str] = None,
    ) -> LeaveRequestOut:
        """First-stage decision by the requester's manager of record."""
        return await self._transition(
            request_id,
            lambda rec: self.machine.manager_decide(
                rec, approve, principal.employee_id, remarks,
            ),
        )

    async def hr_decide(
        self,
        request_id: RequestId,
        approve: bool,
        principal: Principal,
        remarks: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Final decision by HR on a manager-approved request."""
        return await self._transition(
            request_id,
            lambda rec: self.machine.hr_decide(
                rec, approve, principal.employee_id, principal.role, remarks,
            ),
        )

    async def cancel(
        self,
        request_id: RequestId,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Withdraw an own request that is still pending."""
        return await self._transition(
            request_id,
            lambda rec: self.machine.cancel(rec, principal.employee_id, reason),
        )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def get_balance(
        self,
        employee_id: uuid.UUID,
        leave_type: Any,
        year: int,
    ) -> LeaveBalanceOut:
        """Balance for one key, read under its lock (no in-flight state)."""
        lt = self._parse_leave_type(leave_type)
        self._check_year(year)
        key = self.ledger.key_for(employee_id, lt, year)
        async with self._balance_locks.hold(key):
            return self._balance_out(self.ledger.get_balance(employee_id, lt, year))

    async def get_balances(self, employee_id: uuid.UUID, year: int) -> list[LeaveBalanceOut]:
        """Balances of every leave type for the accounting year."""
        return [
            await self.get_balance(employee_id, lt, year) for lt in LeaveType
        ]

    async def get_request(self, request_id: RequestId, principal: Principal) -> LeaveRequestOut:
        record = self._get(request_id)
        if not (
            principal.employee_id in (record.employee_id, record.manager_id)
            or principal.is_hr
        ):
            raise ForbiddenException("You are not allowed to view this leave request.")
        return self._out(record)

    async def list_for_employee(
        self,
        employee_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        """Employee's requests, latest start date first."""
        records = [self._requests[rid] for rid in self._by_employee.get(employee_id, ())]
        if status is not None:
            records = [r for r in records if r.status == status]
        records.sort(key=lambda r: (r.start_date, r.created_at), reverse=True)
        return [self._out(r) for r in records]

    async def list_pending_for_manager(self, manager_id: uuid.UUID) -> list[LeaveRequestOut]:
        """Requests awaiting this manager's decision, oldest first."""
        records = [
            r for r in self._requests.values()
            if r.manager_id == manager_id and r.status == LeaveStatus.pending
        ]
        records.sort(key=lambda r: r.created_at)
        return [self._out(r) for r in records]

    async def list_awaiting_hr(self) -> list[LeaveRequestOut]:
        """Manager-approved requests awaiting the HR decision, oldest first."""
        records = [
            r for r in self._requests.values()
            if r.status == LeaveStatus.manager_approved
        ]
        records.sort(key=lambda r: r.created_at)
        return [self._out(r) for r in records]
