"""Persistence for leave requests and balances.

The engine writes one request and its balance per call, in one transaction.
Any database error surfaces as ``StorageFailure``. Writes are never retried.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_leave.common.exceptions import StorageFailure
from hr_leave.leave.models import LeaveBalance, LeaveRequest
from hr_leave.leave.records import BalanceRecord, LeaveRecord, TrailEntry

logger = logging.getLogger(__name__)


class LeaveStore(Protocol):
    """Durable storage used by the workflow service."""

    async def save(
        self, request: LeaveRecord, balance: Optional[BalanceRecord] = None,
    ) -> None:
        ...

    async def load_requests(self) -> Sequence[LeaveRecord]:
        ...

    async def load_balances(self) -> Sequence[BalanceRecord]:
        ...


# ── Row ⇄ record mapping ────────────────────────────────────────────

def request_to_record(row: LeaveRequest) -> LeaveRecord:
    return LeaveRecord(
        id=row.id,
        employee_id=row.employee_id,
        manager_id=row.manager_id,
        leave_type=row.leave_type,
        start_date=row.start_date,
        end_date=row.end_date,
        days=row.days,
        year=row.year,
        reason=row.reason,
        status=row.status,
        trail=tuple(TrailEntry.model_validate(e) for e in row.approval_trail or ()),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def balance_to_record(row: LeaveBalance) -> BalanceRecord:
    return BalanceRecord(
        employee_id=row.employee_id,
        leave_type=row.leave_type,
        year=row.year,
        allotted=row.allotted,
        consumed=row.consumed,
        reserved=row.reserved,
        updated_at=row.updated_at,
    )


def _trail_json(record: LeaveRecord) -> list[dict]:
    return [entry.model_dump(mode="json") for entry in record.trail]


# ── SQLAlchemy implementation ───────────────────────────────────────

class SqlAlchemyLeaveStore:
    """``LeaveStore`` backed by the ``leave_requests`` / ``leave_balances`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(
        self, request: LeaveRecord, balance: Optional[BalanceRecord] = None,
    ) -> None:
        """Upsert the request and (optionally) its balance atomically."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._upsert_request(session, request)
                    if balance is not None:
                        await self._upsert_balance(session, balance)
        except SQLAlchemyError as exc:
            logger.error("Failed to persist leave request %s: %s", request.id, exc)
            raise StorageFailure(
                f"Leave request {request.id} could not be persisted."
            ) from exc

    async def load_requests(self) -> list[LeaveRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(LeaveRequest).order_by(LeaveRequest.created_at)
                )
                return [request_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to load leave requests: %s", exc)
            raise StorageFailure("Leave requests could not be loaded.") from exc

    async def load_balances(self) -> list[BalanceRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(LeaveBalance))
                return [balance_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to load leave balances: %s", exc)
            raise StorageFailure("Leave balances could not be loaded.") from exc

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _upsert_request(session: AsyncSession, record: LeaveRecord) -> None:
        row = await session.get(LeaveRequest, record.id)
        if row is None:
            row = LeaveRequest(
                id=record.id,
                employee_id=record.employee_id,
                manager_id=record.manager_id,
                leave_type=record.leave_type,
                start_date=record.start_date,
                end_date=record.end_date,
                days=record.days,
                year=record.year,
                reason=record.reason,
                created_at=record.created_at,
            )
            session.add(row)
        row.status = record.status
        row.approval_trail = _trail_json(record)
        row.updated_at = record.updated_at
        await session.flush()

    @staticmethod
    async def _upsert_balance(session: AsyncSession, balance: BalanceRecord) -> None:
        result = await session.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == balance.employee_id,
                LeaveBalance.leave_type == balance.leave_type,
                LeaveBalance.year == balance.year,
            )
        )
        row = result.scalars().first()
        if row is None:
            row = LeaveBalance(
                employee_id=balance.employee_id,
                leave_type=balance.leave_type,
                year=balance.year,
            )
            session.add(row)
        row.allotted = balance.allotted
        row.consumed = balance.consumed
        row.reserved = balance.reserved
        row.updated_at = balance.updated_at
        await session.flush()
