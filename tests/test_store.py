"""SQLAlchemy leave store tests — persistence, reload and failure mapping."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.constants import LeaveStatus, LeaveType
from hr_leave.common.exceptions import StorageFailure
from hr_leave.database import Base
from hr_leave.leave.models import LeaveBalance, LeaveRequest
from hr_leave.leave.service import LeaveWorkflowService
from tests.conftest import RecordingNotifier, engine


async def _drop_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


class TestSqlAlchemyLeaveStore:

    async def test_submission_writes_request_and_balance(self, sql_store, employee, db: AsyncSession):
        service = LeaveWorkflowService(sql_store, RecordingNotifier())
        req = await service.submit(
            employee,
            leave_type=LeaveType.paid,
            start_date=date(2026, 2, 1),
            end_date=date(2026, 2, 5),
            reason="Family function",
        )

        row = await db.get(LeaveRequest, req.id)
        assert row is not None
        assert row.status == LeaveStatus.pending
        assert row.days == 5
        assert row.manager_id == employee.manager_id
        assert len(row.approval_trail) == 1
        assert row.approval_trail[0]["decision"] == "submitted"

        result = await db.execute(select(LeaveBalance))
        balance = result.scalars().one()
        assert (balance.allotted, balance.consumed, balance.reserved) == (25, 0, 5)

    async def test_decisions_update_rows_in_place(self, sql_store, employee, manager, hr, db: AsyncSession):
        service = LeaveWorkflowService(sql_store, RecordingNotifier())
        req = await service.submit(
            employee,
            leave_type=LeaveType.sick,
            start_date=date(2026, 4, 6),
            end_date=date(2026, 4, 7),
        )
        await service.manager_decide(req.id, True, manager)
        await service.hr_decide(req.id, True, hr, remarks="Get well soon")

        rows = (await db.execute(select(LeaveRequest))).scalars().all()
        assert len(rows) == 1
        assert rows[0].status == LeaveStatus.hr_approved
        assert [e["status"] for e in rows[0].approval_trail] == [
            "pending", "manager_approved", "hr_approved",
        ]
        balances = (await db.execute(select(LeaveBalance))).scalars().all()
        assert len(balances) == 1
        assert (balances[0].consumed, balances[0].reserved) == (2, 0)

    async def test_hydrate_from_database(self, sql_store, employee, manager):
        service = LeaveWorkflowService(sql_store, RecordingNotifier())
        first = await service.submit(
            employee, leave_type=LeaveType.paid,
            start_date=date(2026, 2, 1), end_date=date(2026, 2, 5),
        )
        await service.manager_decide(first.id, True, manager)
        await service.submit(
            employee, leave_type=LeaveType.maternity,
            start_date=date(2026, 6, 1), end_date=date(2026, 6, 30),
        )

        restarted = LeaveWorkflowService(sql_store, RecordingNotifier())
        await restarted.hydrate()

        paid = await restarted.get_balance(employee.employee_id, LeaveType.paid, 2026)
        maternity = await restarted.get_balance(employee.employee_id, LeaveType.maternity, 2026)
        assert paid.reserved == 5
        assert maternity.year == 0
        assert maternity.reserved == 30
        queue = await restarted.list_awaiting_hr()
        assert [r.id for r in queue] == [first.id]
        assert restarted.index.check_overlap(employee.employee_id, date(2026, 6, 15), date(2026, 6, 15))

    async def test_database_error_becomes_storage_failure(self, sql_store, employee):
        service = LeaveWorkflowService(sql_store, RecordingNotifier())
        await _drop_tables()

        with pytest.raises(StorageFailure):
            await service.submit(
                employee, leave_type=LeaveType.paid,
                start_date=date(2026, 2, 1), end_date=date(2026, 2, 5),
            )

        bal = await service.get_balance(employee.employee_id, LeaveType.paid, 2026)
        assert bal.reserved == 0
        assert await service.list_for_employee(employee.employee_id) == []

    async def test_load_failure_becomes_storage_failure(self, sql_store):
        await _drop_tables()
        with pytest.raises(StorageFailure):
            await sql_store.load_requests()
        with pytest.raises(StorageFailure):
            await sql_store.load_balances()
