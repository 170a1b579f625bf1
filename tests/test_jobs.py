"""Scheduled leave jobs — auto-approval, carry-forward, scheduler wiring.

Jobs open their own sessions, so seed data is committed first and the
outcome is read back through a fresh session.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from hrops.common.constants import (
    AUTO_APPROVAL_NOTE,
    LeaveDuration,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hrops.core_hr.models import Employee
from hrops.leave import jobs as leave_jobs
from hrops.leave.jobs import (
    AUTO_APPROVAL_JOB,
    CARRY_FORWARD_JOB,
    auto_approve_pending,
    carry_forward_balances,
    compute_carry_forward,
)
from hrops.leave.ledger import BalanceLedger
from hrops.leave.models import LeaveRequest
from hrops.scheduler import build_scheduler, start_scheduler
from tests.conftest import TestSessionFactory, _make_employee

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


async def _seed_employee(**overrides) -> uuid.UUID:
    data = _make_employee(**overrides)
    async with TestSessionFactory() as session:
        session.add(Employee(**data))
        await session.commit()
    return data["id"]


async def _seed_request(
    employee_id: uuid.UUID,
    *,
    created_at: datetime,
    leave_type: LeaveType = LeaveType.casual,
    status: LeaveStatus = LeaveStatus.pending,
) -> uuid.UUID:
    request_id = uuid.uuid4()
    async with TestSessionFactory() as session:
        session.add(
            LeaveRequest(
                id=request_id,
                employee_id=employee_id,
                leave_type=leave_type,
                start_date=date(2026, 3, 16),   # Monday
                end_date=date(2026, 3, 18),     # Wednesday → 3 days
                reason="Planned time off",
                leave_duration=LeaveDuration.full_day,
                status=status,
                number_of_days=Decimal("3"),
                created_at=created_at,
                updated_at=created_at,
            )
        )
        await session.commit()
    return request_id


async def _get_request(request_id: uuid.UUID) -> LeaveRequest:
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(LeaveRequest).where(LeaveRequest.id == request_id)
        )
        return result.scalars().one()


async def _get_employee(employee_id: uuid.UUID) -> Employee:
    async with TestSessionFactory() as session:
        return await session.get(Employee, employee_id)


# ═════════════════════════════════════════════════════════════════════
# 1. Auto-approval
# ═════════════════════════════════════════════════════════════════════


class TestAutoApproval:

    async def test_stale_manager_request_is_approved(self):
        manager_id = await _seed_employee(role=UserRole.manager)
        request_id = await _seed_request(manager_id, created_at=NOW - timedelta(days=5))

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.job == AUTO_APPROVAL_JOB
        assert summary.scanned == 1
        assert summary.eligible == 1
        assert summary.processed == 1
        assert summary.failed == 0

        leave = await _get_request(request_id)
        assert leave.status == LeaveStatus.approved
        assert leave.auto_approved is True
        assert leave.auto_approved_by_system is True
        assert leave.reviewed_by is None
        assert leave.admin_note == AUTO_APPROVAL_NOTE.format(days=3)

        manager = await _get_employee(manager_id)
        assert manager.leave_balance == Decimal("27")
        assert manager.leave_taken == Decimal("3")

    async def test_employee_requests_are_never_auto_approved(self):
        employee_id = await _seed_employee(role=UserRole.employee)
        request_id = await _seed_request(employee_id, created_at=NOW - timedelta(days=10))

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.scanned == 1
        assert summary.eligible == 0
        assert summary.processed == 0
        assert (await _get_request(request_id)).status == LeaveStatus.pending

    async def test_recent_requests_are_left_pending(self):
        hr_id = await _seed_employee(role=UserRole.hr)
        request_id = await _seed_request(hr_id, created_at=NOW - timedelta(days=1))

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.scanned == 0
        assert (await _get_request(request_id)).status == LeaveStatus.pending

    async def test_resolved_requests_are_not_scanned(self):
        admin_id = await _seed_employee(role=UserRole.admin)
        await _seed_request(
            admin_id, created_at=NOW - timedelta(days=5), status=LeaveStatus.rejected,
        )

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.scanned == 0
        admin = await _get_employee(admin_id)
        assert admin.leave_balance == Decimal("30")

    async def test_second_run_does_not_debit_again(self):
        manager_id = await _seed_employee(role=UserRole.manager)
        await _seed_request(manager_id, created_at=NOW - timedelta(days=5))

        await auto_approve_pending(TestSessionFactory, NOW, after_days=3)
        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.scanned == 0
        manager = await _get_employee(manager_id)
        assert manager.leave_balance == Decimal("27")

    async def test_wfh_request_auto_approved_without_debit(self):
        manager_id = await _seed_employee(role=UserRole.manager)
        await _seed_request(
            manager_id, created_at=NOW - timedelta(days=4), leave_type=LeaveType.wfh,
        )

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.processed == 1
        manager = await _get_employee(manager_id)
        assert manager.leave_balance == Decimal("30")

    async def test_failure_on_one_request_does_not_block_others(self, monkeypatch):
        broken_id = await _seed_employee(role=UserRole.manager, name="Broken Ledger")
        healthy_id = await _seed_employee(role=UserRole.manager, name="Healthy Ledger")
        broken_req = await _seed_request(broken_id, created_at=NOW - timedelta(days=6))
        healthy_req = await _seed_request(healthy_id, created_at=NOW - timedelta(days=5))

        original_debit = BalanceLedger.debit

        async def flaky_debit(db, employee_id, days):
            if employee_id == broken_id:
                raise RuntimeError("ledger unavailable")
            await original_debit(db, employee_id, days)

        monkeypatch.setattr(BalanceLedger, "debit", staticmethod(flaky_debit))

        summary = await auto_approve_pending(TestSessionFactory, NOW, after_days=3)

        assert summary.eligible == 2
        assert summary.processed == 1
        assert summary.failed == 1
        assert summary.failed_ids == [str(broken_req)]

        # The failed unit rolled back as a whole: still pending, nothing debited
        assert (await _get_request(broken_req)).status == LeaveStatus.pending
        assert (await _get_employee(broken_id)).leave_balance == Decimal("30")
        assert (await _get_request(healthy_req)).status == LeaveStatus.approved
        assert (await _get_employee(healthy_id)).leave_balance == Decimal("27")


# ═════════════════════════════════════════════════════════════════════
# 2. Carry-forward arithmetic (pure)
# ═════════════════════════════════════════════════════════════════════


class TestComputeCarryForward:

    def test_partial_use_of_current_year(self):
        """10 carried + 30 allocated, 15 used → 10 + 15 carried, 55 total."""
        figures = compute_carry_forward(
            Decimal("10"), Decimal("30"), Decimal("25"),
            new_year_quota=30, max_per_bucket=15,
        )
        assert figures.total_start_of_year == Decimal("40")
        assert figures.used == Decimal("15")
        assert figures.remaining_current_year == Decimal("15")
        assert figures.remaining_prev_year == Decimal("10")
        assert figures.total_carry == Decimal("25")
        assert figures.new_balance == Decimal("55")

    def test_usage_beyond_current_year_eats_carry_over(self):
        figures = compute_carry_forward(
            Decimal("10"), Decimal("30"), Decimal("5"),
            new_year_quota=30, max_per_bucket=15,
        )
        assert figures.used == Decimal("35")
        assert figures.consumed_current_year == Decimal("30")
        assert figures.remaining_current_year == Decimal("0")
        assert figures.remaining_prev_year == Decimal("5")
        assert figures.new_balance == Decimal("35")

    def test_each_bucket_capped(self):
        figures = compute_carry_forward(
            Decimal("20"), Decimal("30"), Decimal("50"),
            new_year_quota=30, max_per_bucket=15,
        )
        assert figures.carry_prev == Decimal("15")
        assert figures.carry_current == Decimal("15")
        assert figures.new_balance == Decimal("60")

    def test_missing_values_treated_as_zero(self):
        figures = compute_carry_forward(None, None, None, new_year_quota=30, max_per_bucket=15)
        assert figures.total_carry == Decimal("0")
        assert figures.new_balance == Decimal("30")

    def test_balance_above_allocation_counts_as_unused(self):
        figures = compute_carry_forward(
            Decimal("0"), Decimal("10"), Decimal("12"),
            new_year_quota=30, max_per_bucket=15,
        )
        assert figures.used == Decimal("0")
        assert figures.new_balance == Decimal("40")

    def test_defaults_come_from_settings(self):
        figures = compute_carry_forward(0, 0, 0)
        assert figures.new_year_quota == Decimal("30")

    def test_result_is_immutable(self):
        figures = compute_carry_forward(0, 10, 10, new_year_quota=30, max_per_bucket=15)
        with pytest.raises(ValidationError):
            figures.new_balance = Decimal("99")


# ═════════════════════════════════════════════════════════════════════
# 3. Carry-forward job
# ═════════════════════════════════════════════════════════════════════


class TestCarryForwardJob:

    async def _seed_rollover_employee(self, last_year: Optional[int] = 2025) -> uuid.UUID:
        return await _seed_employee(
            carry_over_leaves=Decimal("10"),
            current_year_leaves=Decimal("30"),
            leave_balance=Decimal("25"),
            leave_taken=Decimal("15"),
            last_carry_forward_year=last_year,
        )

    async def test_rollover_applies_new_balance(self):
        employee_id = await self._seed_rollover_employee()

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.job == CARRY_FORWARD_JOB
        assert summary.processed == 1
        emp = await _get_employee(employee_id)
        assert emp.carry_over_leaves == Decimal("25")
        assert emp.current_year_leaves == Decimal("30")
        assert emp.leave_balance == Decimal("55")
        assert emp.total_leave_quota == Decimal("55")
        assert emp.last_carry_forward_year == 2026

    async def test_second_run_same_year_is_a_no_op(self):
        employee_id = await self._seed_rollover_employee()

        await carry_forward_balances(TestSessionFactory, NOW)
        summary = await carry_forward_balances(TestSessionFactory, NOW + timedelta(hours=1))

        assert summary.processed == 0
        assert summary.skipped == 1
        emp = await _get_employee(employee_id)
        assert emp.leave_balance == Decimal("55")
        assert emp.carry_over_leaves == Decimal("25")

    async def test_never_processed_employee_is_rolled_over(self):
        employee_id = await self._seed_rollover_employee(last_year=None)

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.processed == 1
        assert (await _get_employee(employee_id)).last_carry_forward_year == 2026

    async def test_mixed_population(self):
        done_id = await self._seed_rollover_employee(last_year=2026)
        todo_id = await self._seed_rollover_employee(last_year=2025)

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.scanned == 2
        assert summary.processed == 1
        assert summary.skipped == 1
        assert (await _get_employee(done_id)).leave_balance == Decimal("25")
        assert (await _get_employee(todo_id)).leave_balance == Decimal("55")

    async def test_failure_on_one_employee_does_not_block_others(self, monkeypatch):
        first_id = await self._seed_rollover_employee()
        second_id = await self._seed_rollover_employee()

        original = leave_jobs.compute_carry_forward
        calls = []

        def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise ArithmeticError("bad bucket")
            return original(*args, **kwargs)

        monkeypatch.setattr(leave_jobs, "compute_carry_forward", flaky)

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.processed == 1
        assert summary.failed == 1
        balances = sorted(
            [(await _get_employee(i)).leave_balance for i in (first_id, second_id)]
        )
        assert balances == [Decimal("25"), Decimal("55")]

    async def test_debit_committed_mid_rollover_is_not_lost(self, monkeypatch):
        """A ledger debit landing between the job's read and write is kept."""
        employee_id = await _seed_employee(
            carry_over_leaves=Decimal("0"),
            current_year_leaves=Decimal("30"),
            leave_balance=Decimal("20"),
            leave_taken=Decimal("10"),
            last_carry_forward_year=2025,
        )

        original_load = leave_jobs._load_for_rollover
        loads = []

        async def load_then_debit(session, emp_id):
            employee = await original_load(session, emp_id)
            loads.append(employee.leave_balance)
            if len(loads) == 1:
                async with TestSessionFactory() as other:
                    await BalanceLedger.debit(other, emp_id, Decimal("10"))
                    await other.commit()
            return employee

        monkeypatch.setattr(leave_jobs, "_load_for_rollover", load_then_debit)

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.processed == 1
        assert loads == [Decimal("20"), Decimal("10")]
        emp = await _get_employee(employee_id)
        # Same result as debiting first, then rolling over a 10-day balance
        assert emp.leave_balance == Decimal("40")
        assert emp.carry_over_leaves == Decimal("10")
        assert emp.leave_taken == Decimal("20")
        assert emp.last_carry_forward_year == 2026

    async def test_balance_that_keeps_moving_fails_the_employee(self, monkeypatch):
        employee_id = await _seed_employee(last_carry_forward_year=2025)

        original_load = leave_jobs._load_for_rollover

        async def load_then_debit(session, emp_id):
            employee = await original_load(session, emp_id)
            async with TestSessionFactory() as other:
                await BalanceLedger.debit(other, emp_id, Decimal("1"))
                await other.commit()
            return employee

        monkeypatch.setattr(leave_jobs, "_load_for_rollover", load_then_debit)

        summary = await carry_forward_balances(TestSessionFactory, NOW)

        assert summary.failed == 1
        assert summary.failed_ids == [str(employee_id)]
        emp = await _get_employee(employee_id)
        assert emp.last_carry_forward_year == 2025


# ═════════════════════════════════════════════════════════════════════
# 4. Scheduler wiring
# ═════════════════════════════════════════════════════════════════════


class TestScheduler:

    def test_both_jobs_registered(self):
        scheduler = build_scheduler()
        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"leave_auto_approval", "leave_carry_forward"}
        assert scheduler.running is False

    def test_disabled_scheduler_is_not_started(self):
        assert start_scheduler() is None
