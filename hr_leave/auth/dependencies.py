"""Auth dependencies — gateway principal extraction, RBAC enforcement.

Tokens are validated by the gateway, which forwards the caller's identity
in trusted headers. This module only parses them.
"""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException

from hr_leave.auth.schemas import Principal
from hr_leave.common.constants import UserRole
from hr_leave.common.exceptions import ForbiddenException

EMPLOYEE_HEADER = "X-Employee-Id"
ROLE_HEADER = "X-Employee-Role"
MANAGER_HEADER = "X-Manager-Id"

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {UserRole.system_admin, UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.hr_admin: {UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def _parse_uuid(value: Optional[str], header: str) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Malformed {header} header.")


# ── Core dependency ─────────────────────────────────────────────────

async def get_principal(request: Request) -> Principal:
    """Build the acting principal from the gateway identity headers."""
    employee_id = _parse_uuid(request.headers.get(EMPLOYEE_HEADER), EMPLOYEE_HEADER)
    if employee_id is None:
        raise HTTPException(status_code=401, detail="Missing caller identity.")

    role_str = request.headers.get(ROLE_HEADER, UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    return Principal(
        employee_id=employee_id,
        role=role,
        manager_id=_parse_uuid(request.headers.get(MANAGER_HEADER), MANAGER_HEADER),
    )


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. system_admin can access manager endpoints.
    """

    async def _check(principal: Principal = Depends(get_principal)) -> Principal:
        effective_roles = _ROLE_HIERARCHY.get(principal.role, {principal.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{principal.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return principal

    return _check
