"""Shared FastAPI dependencies."""

from fastapi import Request

from hr_leave.leave.service import LeaveWorkflowService


def get_leave_service(request: Request) -> LeaveWorkflowService:
    """Return the process-wide leave engine built during app startup."""
    return request.app.state.leave_service
