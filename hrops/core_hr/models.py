"""Core HR ORM models: Employee.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Only the identity columns the leave engine reads and the balance columns
it writes live here; profile data is owned by the employee directory.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrops.common.constants import UserRole
from hrops.database import Base

if TYPE_CHECKING:
    from hrops.leave.models import LeaveRequest


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """Employee record with its leave-balance buckets."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(50), unique=True, nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(
            UserRole,
            name="user_role",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=UserRole.employee,
    )
    department: Mapped[Optional[str]] = mapped_column(sa.String(150))
    designation: Mapped[Optional[str]] = mapped_column(sa.String(150))
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    joining_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )

    # ── Leave balance buckets ───────────────────────────────────────
    total_leave_quota: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    leave_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    leave_taken: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    carry_over_leaves: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    current_year_leaves: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )
    # Year of the last carry-forward run applied (re-run guard)
    last_carry_forward_year: Mapped[Optional[int]] = mapped_column(sa.Integer)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    reporting_manager: Mapped[Optional[Employee]] = relationship(
        remote_side="Employee.id", foreign_keys=[reporting_manager_id],
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee", foreign_keys="LeaveRequest.employee_id",
    )

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code!r}>"
