"""Employee directory — read access used by the leave engine.

Employee CRUD lives with the directory owners; this module only exposes
the lookups the leave engine and its authorization scoping need.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.exceptions import NotFoundException
from hrops.core_hr.models import Employee


class EmployeeDirectory:
    """Async lookups over the ``employees`` table."""

    @staticmethod
    async def find_by_id(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        active_only: bool = False,
    ) -> Optional[Employee]:
        """Return the employee (balance buckets freshly read) or ``None``."""
        query = (
            select(Employee)
            .where(Employee.id == employee_id)
            .execution_options(populate_existing=True)
        )
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def get_by_id(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        """Like :meth:`find_by_id` but raises ``NotFoundException``."""
        employee = await EmployeeDirectory.find_by_id(db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def find_by_department(
        db: AsyncSession,
        department: str,
    ) -> list[Employee]:
        """All employees in *department*, ordered by employee code."""
        result = await db.execute(
            select(Employee)
            .where(Employee.department == department)
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())
