"""Leave ORM models: LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrops.common.constants import HalfDayType, LeaveDuration, LeaveStatus, LeaveType
from hrops.database import Base

if TYPE_CHECKING:
    from hrops.core_hr.models import Employee


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _pg_enum(enum_cls: type, name: str) -> sa.Enum:
    """Enum column storing member *values* (``"half-day"``, not ``half_day``)."""
    return sa.Enum(
        enum_cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_status_created", "status", "created_at"),
        sa.Index("ix_leave_requests_employee", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        _pg_enum(LeaveType, "leave_type"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    leave_duration: Mapped[LeaveDuration] = mapped_column(
        _pg_enum(LeaveDuration, "leave_duration"), nullable=False
    )
    half_day_type: Mapped[Optional[HalfDayType]] = mapped_column(
        _pg_enum(HalfDayType, "half_day_type")
    )
    status: Mapped[LeaveStatus] = mapped_column(
        _pg_enum(LeaveStatus, "leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
        server_default=LeaveStatus.pending.value,
    )
    # Provisional while pending; authoritative once resolved
    number_of_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    # True while number_of_days is charged against the employee's balance
    balance_debited: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("FALSE"),
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reviewed_on: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    admin_note: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    auto_approved: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("FALSE"),
    )
    auto_approved_by_system: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("FALSE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    reviewer: Mapped[Optional[Employee]] = relationship(
        foreign_keys=[reviewed_by]
    )
