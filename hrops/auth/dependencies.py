"""Auth dependencies — JWT validation, RBAC enforcement, request scoping.

Tokens are issued by the external identity service; here they are only
verified. The caller's role always comes from the employee record, never
from the token, so a role change takes effect immediately.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.constants import UserRole
from hrops.common.exceptions import ForbiddenException
from hrops.config import settings
from hrops.core_hr.models import Employee
from hrops.core_hr.service import EmployeeDirectory
from hrops.database import get_db
from hrops.leave.schemas import RequestScope

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.hr: {UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Validate JWT and return the authenticated, active Employee."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    employee = await EmployeeDirectory.find_by_id(db, employee_id, active_only=True)
    if employee is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    request.state.user_role = employee.role
    return employee


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. admin can access manager endpoints.
    """

    async def _check(
        request: Request,
        employee: Employee = Depends(get_current_user),
    ) -> Employee:
        user_role: UserRole = request.state.user_role
        effective_roles = _ROLE_HIERARCHY.get(user_role, {user_role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{user_role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return employee

    return _check


# ── Visibility scoping ──────────────────────────────────────────────

async def build_request_scope(db: AsyncSession, viewer: Employee) -> RequestScope:
    """Admin / HR see everyone, managers their department, others themselves."""
    if viewer.role in (UserRole.admin, UserRole.hr):
        return RequestScope.everyone()
    if viewer.role == UserRole.manager and viewer.department:
        colleagues = await EmployeeDirectory.find_by_department(db, viewer.department)
        return RequestScope.only(viewer.id, *(e.id for e in colleagues if e.id != viewer.id))
    return RequestScope.only(viewer.id)


async def get_request_scope(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RequestScope:
    """FastAPI dependency wrapper around :func:`build_request_scope`."""
    return await build_request_scope(db, employee)
