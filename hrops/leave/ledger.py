"""Balance ledger — atomic debit / credit of an employee's leave balance.

Both operations are a single ``UPDATE ... SET col = col ± :days`` so that
concurrent writers (a reviewer, the auto-approval job, the carry-forward
job) never overwrite each other's changes with a stale read.

Debits clamp ``leave_balance`` at zero instead of failing: an approval
that exceeds the remaining balance is absorbed, not rejected.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Union

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.exceptions import NotFoundException
from hrops.core_hr.models import Employee

logger = logging.getLogger(__name__)

Days = Union[Decimal, int, float, str]


def _to_days(days: Days) -> Decimal:
    value = days if isinstance(days, Decimal) else Decimal(str(days))
    if value <= 0:
        raise ValueError(f"Ledger amount must be positive, got {value}.")
    return value


class BalanceLedger:
    """Debit / credit operations on the ``employees`` balance columns."""

    @staticmethod
    async def debit(db: AsyncSession, employee_id: uuid.UUID, days: Days) -> None:
        """Consume *days*: balance down (floored at 0), leave_taken up."""
        amount = _to_days(days)
        remaining = Employee.leave_balance - amount

        result = await db.execute(
            update(Employee)
            .where(Employee.id == employee_id)
            .values(
                leave_balance=case((remaining < 0, 0), else_=remaining),
                leave_taken=Employee.leave_taken + amount,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundException("Employee", str(employee_id))
        logger.debug("Ledger debit %s day(s) for employee %s", amount, employee_id)

    @staticmethod
    async def credit(db: AsyncSession, employee_id: uuid.UUID, days: Days) -> None:
        """Return *days*: balance up, leave_taken down (floored at 0)."""
        amount = _to_days(days)
        taken = Employee.leave_taken - amount

        result = await db.execute(
            update(Employee)
            .where(Employee.id == employee_id)
            .values(
                leave_balance=Employee.leave_balance + amount,
                leave_taken=case((taken < 0, 0), else_=taken),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundException("Employee", str(employee_id))
        logger.debug("Ledger credit %s day(s) for employee %s", amount, employee_id)
