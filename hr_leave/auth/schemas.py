"""Auth Pydantic schemas — the principal handed over by the gateway."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from hr_leave.common.constants import HR_ROLES, UserRole


class Principal(BaseModel):
    """Authenticated actor of a call, as asserted by the identity service.

    ``manager_id`` is the actor's own manager of record.
    """

    model_config = ConfigDict(frozen=True)

    employee_id: uuid.UUID
    role: UserRole = UserRole.employee
    manager_id: Optional[uuid.UUID] = None

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES
