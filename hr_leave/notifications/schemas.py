"""Notification Pydantic schemas — leave events and in-app notification payloads."""


import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.common.constants import LeaveEventType, LeaveStatus, NotificationType


# ── Events (engine → notification collaborator) ─────────────────────

class LeaveEvent(BaseModel):
    """Status change of a leave request, emitted once per transition."""

    model_config = ConfigDict(frozen=True)

    event_type: LeaveEventType
    request_id: uuid.UUID
    employee_id: uuid.UUID
    new_status: LeaveStatus
    actor_id: uuid.UUID
    # Approver to address for submissions; the employee is addressed otherwise
    manager_id: Optional[uuid.UUID] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Internal (used by service, not exposed via API) ─────────────────

class NotificationCreate(BaseModel):
    """In-app notification derived from a leave event."""

    recipient_id: uuid.UUID
    type: NotificationType = NotificationType.info
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
