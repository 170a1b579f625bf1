"""Enums and constants for HR Ops — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr = "hr"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    withdrawal_requested = "withdrawal-requested"


class LeaveType(str, enum.Enum):
    casual = "casual"
    sick = "sick"
    wfh = "wfh"
    on_duty = "on_duty"
    pl = "pl"
    lop = "lop"


class LeaveDuration(str, enum.Enum):
    full_day = "full-day"
    half_day = "half-day"


class HalfDayType(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"


# Statuses a reviewer (or the system) may move a request into
TRANSITION_TARGETS: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.approved,
    LeaveStatus.rejected,
    LeaveStatus.cancelled,
    LeaveStatus.withdrawal_requested,
})

# current status -> statuses reachable from it
ALLOWED_TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.pending: TRANSITION_TARGETS,
    LeaveStatus.approved: frozenset({
        LeaveStatus.cancelled,
        LeaveStatus.withdrawal_requested,
    }),
    LeaveStatus.withdrawal_requested: frozenset({
        LeaveStatus.cancelled,
        LeaveStatus.approved,
    }),
    LeaveStatus.rejected: frozenset(),
    LeaveStatus.cancelled: frozenset(),
}

# Awaiting a reviewer decision
REVIEWABLE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.withdrawal_requested,
)

# Attendance-tracking types: recorded, never charged against the quota
QUOTA_EXEMPT_LEAVE_TYPES: frozenset[LeaveType] = frozenset({
    LeaveType.wfh,
    LeaveType.on_duty,
})

HALF_DAY_VALUE = "0.5"
AUTO_APPROVAL_NOTE = "Auto-approved by system after {days} days"

