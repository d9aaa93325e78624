"""Notification service — leave event dispatch and in-app notification rows.

Dispatch is fire-and-forget: the workflow hands an event over and moves on.
Delivery runs as a background task in its own session, and a delivery
failure is logged but never reaches the leave workflow.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_leave.common.constants import LeaveEventType, NotificationType
from hr_leave.notifications.models import Notification
from hr_leave.notifications.schemas import LeaveEvent, NotificationCreate

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification


# ── Event → notification mapping ────────────────────────────────────


def build_leave_notification(event: LeaveEvent) -> Optional[NotificationCreate]:
    """Address and word the in-app notification for a leave event.

    Returns ``None`` when the event has nobody to notify (e.g. a submission
    from an employee without a manager of record).
    """
    common = dict(
        action_url=f"/leave/requests/{event.request_id}",
        entity_type="leave_request",
        entity_id=event.request_id,
    )

    if event.event_type is LeaveEventType.submitted:
        if event.manager_id is None:
            return None
        return NotificationCreate(
            recipient_id=event.manager_id,
            type=NotificationType.action_required,
            title="New Leave Request",
            message="A leave request from your team requires your approval.",
            **common,
        )
    if event.event_type is LeaveEventType.manager_approved:
        return NotificationCreate(
            recipient_id=event.employee_id,
            type=NotificationType.info,
            title="Leave Request Approved by Manager",
            message="Your leave request was approved by your manager and awaits HR review.",
            **common,
        )
    if event.event_type is LeaveEventType.hr_approved:
        return NotificationCreate(
            recipient_id=event.employee_id,
            type=NotificationType.approval,
            title="Leave Request Approved",
            message="Your leave request has been approved.",
            **common,
        )
    if event.event_type is LeaveEventType.rejected:
        return NotificationCreate(
            recipient_id=event.employee_id,
            type=NotificationType.alert,
            title="Leave Request Rejected",
            message="Your leave request was rejected.",
            **common,
        )
    if event.event_type is LeaveEventType.cancelled:
        if event.manager_id is None:
            return None
        return NotificationCreate(
            recipient_id=event.manager_id,
            type=NotificationType.info,
            title="Leave Request Cancelled",
            message="A pending leave request from your team was withdrawn.",
            **common,
        )
    return None


# ── Dispatchers ─────────────────────────────────────────────────────


class NotificationDispatcher(Protocol):
    """Accepts leave events without blocking or failing the caller."""

    def dispatch(self, event: LeaveEvent) -> None:
        ...


class DatabaseNotifier:
    """Deliver leave events as in-app notification rows, in the background."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        enabled: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._enabled = enabled
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, event: LeaveEvent) -> None:
        if not self._enabled:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        # Keep a reference until done so the task is not garbage-collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: LeaveEvent) -> None:
        payload = build_leave_notification(event)
        if payload is None:
            logger.debug("No recipient for %s on request %s", event.event_type.value, event.request_id)
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await NotificationService.create_notification(
                        session, **payload.model_dump(),
                    )
        except Exception:
            logger.warning(
                "Notification delivery failed for %s on request %s",
                event.event_type.value, event.request_id, exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
