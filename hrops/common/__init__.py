"""Common module — shared enums, exceptions and rate limiting for HR Ops."""

from hrops.common.constants import (
    ALLOWED_TRANSITIONS,
    QUOTA_EXEMPT_LEAVE_TYPES,
    REVIEWABLE_STATUSES,
    TRANSITION_TARGETS,
    HalfDayType,
    LeaveDuration,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hrops.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InvalidStatusException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from hrops.common.rate_limit import limiter

__all__ = [
    # Constants / Enums
    "ALLOWED_TRANSITIONS",
    "QUOTA_EXEMPT_LEAVE_TYPES",
    "REVIEWABLE_STATUSES",
    "TRANSITION_TARGETS",
    "HalfDayType",
    "LeaveDuration",
    "LeaveStatus",
    "LeaveType",
    "UserRole",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InvalidStatusException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Rate limiting
    "limiter",
]
