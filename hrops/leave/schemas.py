"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrops.common.constants import (
    HalfDayType,
    LeaveDuration,
    LeaveStatus,
    LeaveType,
    UserRole,
)


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    name: str
    role: UserRole
    department: Optional[str] = None
    designation: Optional[str] = None


class LeaveBalanceOut(BaseModel):
    """Balance buckets of a single employee."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID = Field(validation_alias="id")
    total_leave_quota: Decimal
    leave_balance: Decimal
    leave_taken: Decimal
    carry_over_leaves: Decimal
    current_year_leaves: Decimal
    last_carry_forward_year: Optional[int] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=1, max_length=1000)
    leave_duration: LeaveDuration = LeaveDuration.full_day
    half_day_type: Optional[HalfDayType] = Field(
        default=None,
        description="morning | afternoon — required for half-day requests only",
    )

    @model_validator(mode="after")
    def validate_dates_and_duration(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date.")
        if (self.end_date - self.start_date).days > 365:
            raise ValueError("Leave request cannot span more than 365 days.")
        if self.leave_duration == LeaveDuration.half_day and self.half_day_type is None:
            raise ValueError(
                "half_day_type (morning or afternoon) is required for half-day leave."
            )
        if self.leave_duration == LeaveDuration.full_day and self.half_day_type is not None:
            raise ValueError("half_day_type is only allowed for half-day leave.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str
    leave_duration: LeaveDuration
    half_day_type: Optional[HalfDayType] = None
    status: LeaveStatus
    number_of_days: Decimal
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_on: Optional[datetime] = None
    admin_note: str = ""
    auto_approved_by_system: bool = False
    created_at: datetime
    updated_at: datetime

    # Enriched by service
    employee: Optional[EmployeeBrief] = None
    reviewer: Optional[EmployeeBrief] = None


class LeaveHistoryOut(BaseModel):
    """Employee balance snapshot plus every leave request they filed."""

    employee: EmployeeBrief
    balance: LeaveBalanceOut
    requests: list[LeaveRequestOut]


# ═════════════════════════════════════════════════════════════════════
# Leave Status Transition
# ═════════════════════════════════════════════════════════════════════


class LeaveStatusUpdate(BaseModel):
    """Payload for moving a request to a new status.

    ``status`` stays a plain string so that values outside the allowed
    set surface as an invalid-status error rather than a schema error.
    """

    status: str = Field(..., min_length=1, max_length=50)
    admin_note: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Scoping / jobs
# ═════════════════════════════════════════════════════════════════════


class RequestScope(BaseModel):
    """Pre-scoped visibility for listing queries.

    ``employee_ids=None`` means unrestricted; an empty tuple matches nothing.
    """

    model_config = ConfigDict(frozen=True)

    employee_ids: Optional[tuple[uuid.UUID, ...]] = None

    @classmethod
    def everyone(cls) -> "RequestScope":
        return cls(employee_ids=None)

    @classmethod
    def only(cls, *employee_ids: uuid.UUID) -> "RequestScope":
        return cls(employee_ids=tuple(employee_ids))

    def allows(self, employee_id: uuid.UUID) -> bool:
        return self.employee_ids is None or employee_id in self.employee_ids


class JobSummary(BaseModel):
    """Outcome counters for one run of a scheduled leave job."""

    job: str
    run_at: datetime
    scanned: int = 0
    eligible: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: list[str] = Field(default_factory=list)
