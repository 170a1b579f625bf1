"""Scheduled leave jobs — auto-approval of stale requests and the yearly
carry-forward of unused balance.

Both jobs are plain async functions over ``now`` and a session factory so
they can be driven by the scheduler, the CLI runner, an admin endpoint or
a test without waiting for wall-clock time. Every unit of work (one
request, one employee) runs in its own transaction: a failure is logged
and skipped, and whatever is left over is picked up by the next run.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrops.common.constants import AUTO_APPROVAL_NOTE, LeaveStatus, UserRole
from hrops.common.exceptions import ConflictError
from hrops.config import settings
from hrops.core_hr.models import Employee
from hrops.database import async_session_factory
from hrops.leave.calendar import HolidayCalendar
from hrops.leave.models import LeaveRequest
from hrops.leave.schemas import JobSummary
from hrops.leave.service import LeaveService

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]

AUTO_APPROVAL_JOB = "auto_approval"
CARRY_FORWARD_JOB = "carry_forward"


# ═════════════════════════════════════════════════════════════════════
# Auto-approval
# ═════════════════════════════════════════════════════════════════════


async def auto_approve_pending(
    session_factory: SessionFactory,
    now: Optional[datetime] = None,
    *,
    after_days: Optional[int] = None,
    holidays: Optional[HolidayCalendar] = None,
) -> JobSummary:
    """Approve requests pending for ``after_days`` or more whose owner is
    not a rank-and-file employee (managers, HR and admins only)."""

    now = now or datetime.now(timezone.utc)
    after_days = settings.AUTO_APPROVAL_AFTER_DAYS if after_days is None else after_days
    cutoff = now - timedelta(days=after_days)
    note = AUTO_APPROVAL_NOTE.format(days=after_days)
    summary = JobSummary(job=AUTO_APPROVAL_JOB, run_at=now)

    logger.info("Auto-approval job started (cutoff %s)", cutoff.isoformat())

    async with session_factory() as session:
        result = await session.execute(
            select(LeaveRequest.id, Employee.role)
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .where(
                LeaveRequest.status == LeaveStatus.pending,
                LeaveRequest.created_at <= cutoff,
            )
            .order_by(LeaveRequest.created_at)
        )
        rows = result.all()

    summary.scanned = len(rows)
    eligible = [req_id for req_id, role in rows if role != UserRole.employee]
    summary.eligible = len(eligible)

    logger.info(
        "Found %d stale pending leave(s); %d eligible for auto-approval",
        summary.scanned, summary.eligible,
    )

    for request_id in eligible:
        try:
            async with session_factory() as session:
                async with session.begin():
                    out = await LeaveService.transition(
                        session,
                        request_id,
                        LeaveStatus.approved,
                        reviewer_id=None,
                        admin_note=note,
                        auto_approved=True,
                        now=now,
                        holidays=holidays,
                    )
            summary.processed += 1
            logger.info(
                "Auto-approved leave %s (%s day(s))", request_id, out.number_of_days,
            )
        except ConflictError:
            # Resolved by a reviewer between the scan and this write
            summary.skipped += 1
            logger.info("Leave %s no longer pending, skipped", request_id)
        except Exception:
            summary.failed += 1
            summary.failed_ids.append(str(request_id))
            logger.exception("Auto-approval failed for leave %s", request_id)

    logger.info(
        "Auto-approval job finished: %d approved, %d skipped, %d failed",
        summary.processed, summary.skipped, summary.failed,
    )
    return summary


# ═════════════════════════════════════════════════════════════════════
# Carry-forward
# ═════════════════════════════════════════════════════════════════════


Number = Union[Decimal, int, float, None]


def _dec(value: Number) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


class CarryForwardResult(BaseModel):
    """Intermediate and final figures of one employee's year-end rollover."""

    model_config = ConfigDict(frozen=True)

    total_start_of_year: Decimal
    used: Decimal
    remaining_current_year: Decimal
    consumed_current_year: Decimal
    remaining_prev_year: Decimal
    carry_prev: Decimal
    carry_current: Decimal
    total_carry: Decimal
    new_balance: Decimal
    new_year_quota: Decimal


def compute_carry_forward(
    carry_over_leaves: Number,
    current_year_leaves: Number,
    leave_balance: Number,
    *,
    new_year_quota: Optional[int] = None,
    max_per_bucket: Optional[int] = None,
) -> CarryForwardResult:
    """Split what was used between last year's carry-over and this year's
    allocation (this year's is consumed first), then carry at most
    ``max_per_bucket`` from each bucket into a fresh ``new_year_quota``."""

    quota = _dec(settings.NEW_YEAR_QUOTA if new_year_quota is None else new_year_quota)
    cap = _dec(settings.MAX_CARRY_FORWARD_PER_BUCKET if max_per_bucket is None else max_per_bucket)
    carry_over = _dec(carry_over_leaves)
    current = _dec(current_year_leaves)
    balance = _dec(leave_balance)

    total_start = carry_over + current
    used = max(total_start - balance, Decimal("0"))

    remaining_current = max(Decimal("0"), current - used)
    consumed_current = min(used, current)
    remaining_prev = max(Decimal("0"), carry_over - (used - consumed_current))

    carry_prev = min(remaining_prev, cap)
    carry_current = min(remaining_current, cap)
    total_carry = carry_prev + carry_current

    return CarryForwardResult(
        total_start_of_year=total_start,
        used=used,
        remaining_current_year=remaining_current,
        consumed_current_year=consumed_current,
        remaining_prev_year=remaining_prev,
        carry_prev=carry_prev,
        carry_current=carry_current,
        total_carry=total_carry,
        new_balance=total_carry + quota,
        new_year_quota=quota,
    )


# Attempts per employee when the balance moves between read and write
CARRY_FORWARD_MAX_ATTEMPTS = 3


async def _load_for_rollover(
    session: AsyncSession,
    employee_id: uuid.UUID,
) -> Optional[Employee]:
    """Fresh read of the employee's buckets, row-locked where the backend supports it."""
    result = await session.execute(
        select(Employee)
        .where(Employee.id == employee_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _roll_over_employee(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    now: datetime,
) -> Optional[tuple[Employee, CarryForwardResult]]:
    """Apply one employee's rollover; ``None`` if already done for *year*.

    The write is conditional on the year marker and on the three buckets
    still holding the values the figures were computed from. A ledger
    change committed in between makes the write miss, and the figures are
    recomputed from the new balance.
    """
    for attempt in range(1, CARRY_FORWARD_MAX_ATTEMPTS + 1):
        employee = await _load_for_rollover(session, employee_id)
        if employee is None:
            return None
        if (
            employee.last_carry_forward_year is not None
            and employee.last_carry_forward_year >= year
        ):
            logger.info(
                "%s: already processed for %d, skipping", employee.employee_code, year,
            )
            return None

        figures = compute_carry_forward(
            employee.carry_over_leaves,
            employee.current_year_leaves,
            employee.leave_balance,
        )

        written = await session.execute(
            update(Employee)
            .where(
                Employee.id == employee_id,
                or_(
                    Employee.last_carry_forward_year.is_(None),
                    Employee.last_carry_forward_year < year,
                ),
                Employee.leave_balance == employee.leave_balance,
                Employee.carry_over_leaves == employee.carry_over_leaves,
                Employee.current_year_leaves == employee.current_year_leaves,
            )
            .values(
                carry_over_leaves=figures.total_carry,
                current_year_leaves=figures.new_year_quota,
                leave_balance=figures.new_balance,
                total_leave_quota=figures.new_balance,
                last_carry_forward_year=year,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if written.rowcount == 1:
            return employee, figures

        logger.info(
            "%s: balance changed during carry-forward, recomputing (attempt %d/%d)",
            employee.employee_code, attempt, CARRY_FORWARD_MAX_ATTEMPTS,
        )

    raise ConflictError(
        f"Balance of employee {employee_id} kept changing during carry-forward."
    )


async def carry_forward_balances(
    session_factory: SessionFactory,
    now: Optional[datetime] = None,
) -> JobSummary:
    """Roll every employee's balance into the year of *now*, once per year."""

    now = now or datetime.now(timezone.utc)
    year = now.year
    summary = JobSummary(job=CARRY_FORWARD_JOB, run_at=now)

    logger.info("Carry-forward job started for %d", year)

    async with session_factory() as session:
        result = await session.execute(select(Employee.id).order_by(Employee.employee_code))
        employee_ids = list(result.scalars().all())

    summary.scanned = len(employee_ids)

    for employee_id in employee_ids:
        try:
            async with session_factory() as session:
                async with session.begin():
                    outcome = await _roll_over_employee(session, employee_id, year, now)
        except Exception:
            summary.failed += 1
            summary.failed_ids.append(str(employee_id))
            logger.exception("Carry-forward failed for employee %s", employee_id)
            continue

        if outcome is None:
            summary.skipped += 1
            continue

        employee, figures = outcome
        summary.eligible += 1
        summary.processed += 1
        logger.info(
            "%s: carried forward %s (prev %s + current %s), new balance %s",
            employee.employee_code, figures.total_carry,
            figures.carry_prev, figures.carry_current, figures.new_balance,
        )

    logger.info(
        "Carry-forward job finished for %d: %d processed, %d skipped, %d failed",
        year, summary.processed, summary.skipped, summary.failed,
    )
    return summary



# ═════════════════════════════════════════════════════════════════════
# Scheduler entry points (no arguments)
# ═════════════════════════════════════════════════════════════════════


async def run_auto_approval() -> JobSummary:
    return await auto_approve_pending(async_session_factory)


async def run_carry_forward() -> JobSummary:
    return await carry_forward_balances(async_session_factory)
