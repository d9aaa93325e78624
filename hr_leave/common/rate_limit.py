"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers use for per-endpoint
limits, wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from hr_leave.auth.dependencies import EMPLOYEE_HEADER


def caller_key(request) -> str:
    """Limit per calling employee; fall back to the client IP."""
    return request.headers.get(EMPLOYEE_HEADER) or get_remote_address(request)


limiter = Limiter(
    key_func=caller_key,
    default_limits=["120/minute"],
)
