"""Common module — shared utilities for the HR leave engine."""

from hr_leave.common.constants import (
    DEFAULT_PAGE_SIZE,
    HR_ROLES,
    MAX_PAGE_SIZE,
    STATUTORY_PERIOD,
    ApproverRole,
    Decision,
    LeaveEventType,
    LeaveStatus,
    LeaveType,
    NotificationType,
    UserRole,
)
from hr_leave.common.exceptions import (
    AppException,
    Forbidden,
    ForbiddenException,
    InsufficientBalance,
    InvalidTransition,
    InvariantViolation,
    NotFoundException,
    OverlapConflict,
    StorageFailure,
    ValidationError,
    ValidationException,
    register_exception_handlers,
)
from hr_leave.common.locks import KeyedLock
from hr_leave.common.pagination import (
    PaginationMeta,
    PaginationParams,
    paginate_items,
)

__all__ = [
    # Constants / Enums
    "ApproverRole",
    "Decision",
    "LeaveEventType",
    "LeaveStatus",
    "LeaveType",
    "NotificationType",
    "UserRole",
    "HR_ROLES",
    "STATUTORY_PERIOD",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "Forbidden",
    "ForbiddenException",
    "InsufficientBalance",
    "InvalidTransition",
    "InvariantViolation",
    "NotFoundException",
    "OverlapConflict",
    "StorageFailure",
    "ValidationError",
    "ValidationException",
    "register_exception_handlers",
    # Concurrency
    "KeyedLock",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "paginate_items",
]
