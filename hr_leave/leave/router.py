"""Leave router — apply, manager/HR decisions, cancel, balances, queues.

All endpoints require a gateway-authenticated caller. HR-specific endpoints
enforce role checks; per-request authority is enforced by the engine.
"""


import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from hr_leave.auth.dependencies import get_principal, require_role
from hr_leave.auth.schemas import Principal
from hr_leave.common.constants import LeaveStatus, LeaveType, UserRole
from hr_leave.common.pagination import PaginationParams, paginate_items
from hr_leave.common.rate_limit import limiter
from hr_leave.config import settings
from hr_leave.dependencies import get_leave_service
from hr_leave.leave.schemas import (
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestListOut,
    LeaveRequestOut,
)
from hr_leave.leave.service import LeaveWorkflowService

router = APIRouter(prefix="", tags=["leave"])


def _current_year() -> int:
    return datetime.now(timezone.utc).year


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.SUBMIT_RATE_LIMIT)
async def apply_leave(
    request: Request,
    body: LeaveRequestCreate,
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Apply for leave. Rejects overlapping ranges and exhausted quotas."""
    return await service.submit(
        principal,
        leave_type=body.leave_type,
        start_date=body.from_date,
        end_date=body.to_date,
        reason=body.reason,
    )


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=LeaveRequestListOut)
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Get the caller's leave requests with pagination."""
    items = await service.list_for_employee(principal.employee_id, status=status)
    data, meta = paginate_items(items, pagination)
    return LeaveRequestListOut(data=data, meta=meta)


# ── GET /team-pending ───────────────────────────────────────────────

@router.get("/team-pending", response_model=list[LeaveRequestOut])
async def team_pending(
    principal: Principal = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Requests waiting on the caller as manager of record."""
    return await service.list_pending_for_manager(principal.employee_id)


# ── GET /hr-queue ───────────────────────────────────────────────────

@router.get("/hr-queue", response_model=list[LeaveRequestOut])
async def hr_queue(
    principal: Principal = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Manager-approved requests waiting on the HR decision."""
    return await service.list_awaiting_hr()


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, description="Accounting year; defaults to current year"),
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Get the caller's balances for every leave type."""
    return await service.get_balances(principal.employee_id, year or _current_year())


@router.get("/balances/{leave_type}", response_model=LeaveBalanceOut)
async def get_balance(
    leave_type: LeaveType,
    year: Optional[int] = Query(None, description="Accounting year; defaults to current year"),
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Get the caller's balance for one leave type."""
    return await service.get_balance(principal.employee_id, leave_type, year or _current_year())


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Fetch one request with its approval trail."""
    return await service.get_request(request_id, principal)


# ── PUT /{id}/manager-decision ──────────────────────────────────────

@router.put("/{request_id}/manager-decision", response_model=LeaveRequestOut)
async def manager_decision(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    principal: Principal = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Approve or reject a pending request as its manager of record."""
    return await service.manager_decide(
        request_id, body.approve, principal, remarks=body.remarks,
    )


# ── PUT /{id}/hr-decision ───────────────────────────────────────────

@router.put("/{request_id}/hr-decision", response_model=LeaveRequestOut)
async def hr_decision(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    principal: Principal = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Final approval or rejection of a manager-approved request."""
    return await service.hr_decide(
        request_id, body.approve, principal, remarks=body.remarks,
    )


# ── PUT /{id}/cancel ────────────────────────────────────────────────

@router.put("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveCancelRequest] = None,
    principal: Principal = Depends(get_principal),
    service: LeaveWorkflowService = Depends(get_leave_service),
):
    """Withdraw an own request that no one has decided yet. The body is optional."""
    return await service.cancel(
        request_id, principal, reason=body.reason if body else None,
    )
