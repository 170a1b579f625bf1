"""Leave router — submit, review, withdraw, history, and manual job runs.

All endpoints require authentication. Review and job endpoints enforce role checks.
"""


import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.auth.dependencies import get_current_user, get_request_scope, require_role
from hrops.common.constants import LeaveStatus, UserRole
from hrops.common.exceptions import ConflictError, ForbiddenException
from hrops.common.rate_limit import limiter
from hrops.core_hr.models import Employee
from hrops.database import async_session_factory, get_db
from hrops.leave.jobs import SessionFactory, auto_approve_pending, carry_forward_balances
from hrops.leave.schemas import (
    JobSummary,
    LeaveHistoryOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveStatusUpdate,
    RequestScope,
)
from hrops.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


def get_session_factory() -> SessionFactory:
    """Session factory handed to job runs (overridable in tests)."""
    return async_session_factory


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit("20/minute")
async def create_leave_request(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. The balance is only touched once it is resolved."""
    return await LeaveService.create_leave_request(db, employee.id, body)


# ── GET /requests/pending ───────────────────────────────────────────

@router.get("/requests/pending", response_model=list[LeaveRequestOut])
async def list_pending_requests(
    scope: RequestScope = Depends(get_request_scope),
    db: AsyncSession = Depends(get_db),
):
    """Requests awaiting a decision, scoped to what the caller may see."""
    return await LeaveService.list_pending_requests(db, scope)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    scope: RequestScope = Depends(get_request_scope),
    db: AsyncSession = Depends(get_db),
):
    """Fetch a single request visible to the caller."""
    leave = await LeaveService.get_request(db, request_id)
    if not scope.allows(leave.employee_id):
        raise ForbiddenException("You cannot view this leave request.")
    return leave


# ── PUT /requests/{id}/status ───────────────────────────────────────

@router.put("/requests/{request_id}/status", response_model=LeaveRequestOut)
async def resolve_leave_request(
    request_id: uuid.UUID,
    body: LeaveStatusUpdate,
    reviewer: Employee = Depends(
        require_role(UserRole.manager, UserRole.hr, UserRole.admin)
    ),
    scope: RequestScope = Depends(get_request_scope),
    db: AsyncSession = Depends(get_db),
):
    """Approve / reject / cancel a request or act on a withdrawal."""
    leave = await LeaveService.get_request(db, request_id)
    if not scope.allows(leave.employee_id):
        raise ForbiddenException("You cannot review this leave request.")
    if leave.employee_id == reviewer.id:
        raise ForbiddenException("You cannot review your own leave request.")
    return await LeaveService.resolve_request(
        db, request_id, body.status, reviewer.id, body.admin_note,
    )


# ── POST /requests/{id}/withdraw ────────────────────────────────────

@router.post("/requests/{request_id}/withdraw", response_model=LeaveRequestOut)
async def withdraw_leave_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Owner withdraws a request: a pending one is cancelled outright, an
    approved one is flagged withdrawal-requested for a reviewer to settle."""
    leave = await LeaveService.get_request(db, request_id)
    if leave.employee_id != employee.id:
        raise ForbiddenException("You can only withdraw your own leave requests.")

    if leave.status == LeaveStatus.pending:
        target = LeaveStatus.cancelled
    elif leave.status == LeaveStatus.approved:
        target = LeaveStatus.withdrawal_requested
    else:
        raise ConflictError(
            f"Cannot withdraw a leave request with status '{leave.status.value}'."
        )
    return await LeaveService.transition(
        db, request_id, target, employee.id, "Withdrawn by employee",
    )


# ── GET /history ────────────────────────────────────────────────────

@router.get("/history", response_model=LeaveHistoryOut)
async def my_leave_history(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's balance buckets and all of their leave requests."""
    return await LeaveService.get_leave_history(db, employee.id)


# ── GET /employees/history ──────────────────────────────────────────

@router.get("/employees/history", response_model=list[LeaveHistoryOut])
async def all_leave_histories(
    viewer: Employee = Depends(require_role(UserRole.hr, UserRole.admin)),
    scope: RequestScope = Depends(get_request_scope),
    db: AsyncSession = Depends(get_db),
):
    """Every employee's balance and leave history, ordered by employee code."""
    return await LeaveService.list_leave_histories(db, scope)


# ── GET /employees/{id}/history ─────────────────────────────────────

@router.get("/employees/{employee_id}/history", response_model=LeaveHistoryOut)
async def employee_leave_history(
    employee_id: uuid.UUID,
    viewer: Employee = Depends(require_role(UserRole.hr, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Balance and leave history of any employee (HR / admin)."""
    return await LeaveService.get_leave_history(db, employee_id)


# ── POST /jobs/* ────────────────────────────────────────────────────

@router.post("/jobs/auto-approval", response_model=JobSummary)
async def trigger_auto_approval(
    admin: Employee = Depends(require_role(UserRole.admin)),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """Run the auto-approval job now instead of waiting for the schedule."""
    return await auto_approve_pending(session_factory)


@router.post("/jobs/carry-forward", response_model=JobSummary)
async def trigger_carry_forward(
    admin: Employee = Depends(require_role(UserRole.admin)),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """Run the carry-forward job now (no-op for employees already rolled over)."""
    return await carry_forward_balances(session_factory)
