"""Leave ORM models: LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from hr_leave.common.constants import LeaveStatus, LeaveType
from hr_leave.database import Base

# Shared so the PostgreSQL type is emitted once
leave_type_enum = sa.Enum(LeaveType, name="leave_type")
leave_status_enum = sa.Enum(LeaveStatus, name="leave_status")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("reserved >= 0", name="ck_leave_balance_reserved"),
        sa.CheckConstraint("consumed >= 0", name="ck_leave_balance_consumed"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        leave_type_enum, nullable=False
    )
    # Calendar year, or 0 for the statutory (non-annual) maternity period
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    # NULL = uncapped
    allotted: Mapped[Optional[int]] = mapped_column(sa.Integer)
    consumed: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_manager_status", "manager_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    leave_type: Mapped[LeaveType] = mapped_column(
        leave_type_enum, nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        leave_status_enum,
        nullable=False,
        server_default="pending",
    )
    # Append-only list of {actor_id, actor_role, decision, status, at, remarks}
    approval_trail: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
