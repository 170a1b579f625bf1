"""Leave service layer — request lifecycle, guarded transitions, ledger calls.

Business logic:
  - Leave submission with field validation (no balance change while pending)
  - Status transitions as compare-and-set updates, so each request leaves a
    given status at most once even with concurrent reviewers / jobs
  - Ledger debit on approval, credit on cancellation of an approved leave
  - Attendance-only types (WFH / on duty) are recorded but never charged
  - Role-scoped pending lists and per-employee leave history
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrops.common.constants import (
    ALLOWED_TRANSITIONS,
    HALF_DAY_VALUE,
    QUOTA_EXEMPT_LEAVE_TYPES,
    REVIEWABLE_STATUSES,
    TRANSITION_TARGETS,
    LeaveDuration,
    LeaveStatus,
    LeaveType,
)
from hrops.common.exceptions import (
    ConflictError,
    InvalidStatusException,
    NotFoundException,
    ValidationException,
    field_errors_from,
)
from hrops.config import settings
from hrops.core_hr.models import Employee
from hrops.core_hr.service import EmployeeDirectory
from hrops.leave.calendar import HolidayCalendar, count_working_days
from hrops.leave.ledger import BalanceLedger
from hrops.leave.models import LeaveRequest
from hrops.leave.schemas import (
    EmployeeBrief,
    LeaveBalanceOut,
    LeaveHistoryOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    RequestScope,
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# Day computation
# ─────────────────────────────────────────────────────────────────────


def compute_leave_days(
    leave_duration: LeaveDuration,
    start_date,
    end_date,
    holidays: Optional[HolidayCalendar] = None,
) -> Decimal:
    """0.5 for a half-day request, otherwise business days in the range."""
    if leave_duration == LeaveDuration.half_day:
        return Decimal(HALF_DAY_VALUE)
    if holidays is None:
        holidays = settings.holiday_calendar
    return Decimal(count_working_days(start_date, end_date, holidays))


def is_quota_exempt(leave_type: LeaveType) -> bool:
    return leave_type in QUOTA_EXEMPT_LEAVE_TYPES


def parse_status(value: Union[str, LeaveStatus]) -> LeaveStatus:
    """Coerce *value* to a transition target or raise ``InvalidStatusException``."""
    allowed = [s.value for s in TRANSITION_TARGETS]
    try:
        status = value if isinstance(value, LeaveStatus) else LeaveStatus(str(value))
    except ValueError:
        raise InvalidStatusException(value, allowed) from None
    if status not in TRANSITION_TARGETS:
        raise InvalidStatusException(status.value, allowed)
    return status


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submission, transitions, listings, history."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_request(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> Optional[LeaveRequest]:
        """Fetch a request with employee + reviewer eager-loaded, bypassing
        stale identity-map state left behind by bulk updates."""
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.reviewer),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    def _build_request_response(req: LeaveRequest) -> LeaveRequestOut:
        """Build LeaveRequestOut from an eager-loaded ORM object."""
        return LeaveRequestOut.model_validate(req)

    @staticmethod
    async def _compare_and_set(
        db: AsyncSession,
        request_id: uuid.UUID,
        expected: LeaveStatus,
        values: dict[str, Any],
    ) -> bool:
        """Apply *values* only if the request is still in *expected* status."""
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_payload(payload: Union[LeaveRequestCreate, dict[str, Any]]) -> LeaveRequestCreate:
        """Validate a raw payload, re-raising schema errors as ValidationException."""
        if isinstance(payload, LeaveRequestCreate):
            return payload
        try:
            return LeaveRequestCreate.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationException(field_errors_from(exc.errors())) from None

    @staticmethod
    async def create_leave_request(
        db: AsyncSession,
        employee_id: uuid.UUID,
        payload: Union[LeaveRequestCreate, dict[str, Any]],
    ) -> LeaveRequestOut:
        """Submit a new ``pending`` request. The balance is not touched here."""

        data = LeaveService.parse_payload(payload)

        employee = await EmployeeDirectory.find_by_id(db, employee_id, active_only=True)
        if employee is None:
            raise ValidationException(
                {"employee_id": [f"Employee '{employee_id}' does not exist or is inactive."]}
            )

        now = datetime.now(timezone.utc)
        leave_req = LeaveRequest(
            id=uuid.uuid4(),
            employee_id=employee.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            reason=data.reason.strip(),
            leave_duration=data.leave_duration,
            half_day_type=data.half_day_type,
            status=LeaveStatus.pending,
            number_of_days=compute_leave_days(
                data.leave_duration, data.start_date, data.end_date,
            ),
            created_at=now,
            updated_at=now,
        )
        db.add(leave_req)
        await db.flush()

        logger.info(
            "Leave request %s submitted by %s: %s %s..%s (%s day(s))",
            leave_req.id, employee.employee_code, data.leave_type.value,
            data.start_date, data.end_date, leave_req.number_of_days,
        )

        created = await LeaveService._load_request(db, leave_req.id)
        return LeaveService._build_request_response(created)

    # ─────────────────────────────────────────────────────────────────
    # Transition
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def transition(
        db: AsyncSession,
        request_id: uuid.UUID,
        new_status: Union[str, LeaveStatus],
        reviewer_id: Optional[uuid.UUID],
        admin_note: Optional[str] = None,
        *,
        auto_approved: bool = False,
        now: Optional[datetime] = None,
        holidays: Optional[HolidayCalendar] = None,
    ) -> LeaveRequestOut:
        """Move a request to *new_status* and apply the matching ledger change.

        Allowed moves:
          pending              → approved | rejected | cancelled | withdrawal-requested
          approved             → cancelled | withdrawal-requested
          withdrawal-requested → cancelled | approved

        The status write is conditional on the status observed at read time;
        if another writer got there first, ``ConflictError`` is raised and
        the ledger is left alone.
        """

        target = parse_status(new_status)
        now = now or datetime.now(timezone.utc)

        leave_req = await LeaveService._load_request(db, request_id)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))

        current = leave_req.status
        if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
            raise ConflictError(
                f"Leave request is '{current.value}' and cannot move to '{target.value}'.",
                errors={"status": [f"Leave request is already {current.value}."]},
            )

        values: dict[str, Any] = {
            "status": target,
            "reviewed_by": reviewer_id,
            "reviewed_on": now,
            "admin_note": admin_note or "",
            "updated_at": now,
        }
        ledger_op: Optional[str] = None
        days = leave_req.number_of_days

        if target == LeaveStatus.approved:
            if not leave_req.balance_debited:
                days = compute_leave_days(
                    leave_req.leave_duration,
                    leave_req.start_date,
                    leave_req.end_date,
                    holidays,
                )
                values["number_of_days"] = days
                if days > 0 and not is_quota_exempt(leave_req.leave_type):
                    values["balance_debited"] = True
                    ledger_op = "debit"
            if auto_approved:
                values["auto_approved"] = True
                values["auto_approved_by_system"] = True

        elif target == LeaveStatus.cancelled:
            if leave_req.balance_debited:
                ledger_op = "credit"
                values["balance_debited"] = False
            if current != LeaveStatus.pending:
                values["number_of_days"] = Decimal("0")

        if not await LeaveService._compare_and_set(db, leave_req.id, current, values):
            raise ConflictError(
                f"Leave request {request_id} was updated concurrently; "
                f"it is no longer '{current.value}'."
            )

        if ledger_op == "debit":
            await BalanceLedger.debit(db, leave_req.employee_id, days)
        elif ledger_op == "credit":
            await BalanceLedger.credit(db, leave_req.employee_id, days)

        logger.info(
            "Leave request %s: %s → %s by %s%s",
            request_id, current.value, target.value,
            reviewer_id or "system",
            f" ({ledger_op} {days} day(s))" if ledger_op else "",
        )

        updated = await LeaveService._load_request(db, request_id)
        return LeaveService._build_request_response(updated)

    @staticmethod
    async def resolve_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        target_status: Union[str, LeaveStatus],
        reviewer_id: uuid.UUID,
        note: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Reviewer-facing transition (the HTTP layer's entry point)."""
        return await LeaveService.transition(
            db, request_id, target_status, reviewer_id, note,
        )

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def list_pending_requests(
        db: AsyncSession,
        scope: RequestScope,
    ) -> list[LeaveRequestOut]:
        """Requests awaiting a decision (pending or withdrawal-requested),
        newest first, restricted to *scope*."""

        if scope.employee_ids is not None and not scope.employee_ids:
            return []

        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status.in_(REVIEWABLE_STATUSES))
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.reviewer),
            )
            .order_by(LeaveRequest.created_at.desc())
        )
        if scope.employee_ids is not None:
            query = query.where(LeaveRequest.employee_id.in_(scope.employee_ids))

        result = await db.execute(query)
        return [
            LeaveService._build_request_response(r)
            for r in result.scalars().all()
        ]

    @staticmethod
    async def get_leave_history(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> LeaveHistoryOut:
        """Balance snapshot and every request filed by the employee."""

        employee = await EmployeeDirectory.get_by_id(db, employee_id)

        req_result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.reviewer),
            )
            .order_by(LeaveRequest.created_at.desc())
        )

        return LeaveHistoryOut(
            employee=EmployeeBrief.model_validate(employee),
            balance=LeaveBalanceOut.model_validate(employee),
            requests=[
                LeaveService._build_request_response(r)
                for r in req_result.scalars().all()
            ],
        )

    @staticmethod
    async def list_leave_histories(
        db: AsyncSession,
        scope: RequestScope,
    ) -> list[LeaveHistoryOut]:
        """Balance snapshot and requests of every employee in *scope*,
        ordered by employee code (inactive employees included)."""

        if scope.employee_ids is not None and not scope.employee_ids:
            return []

        query = (
            select(Employee)
            .order_by(Employee.employee_code)
            .execution_options(populate_existing=True)
        )
        if scope.employee_ids is not None:
            query = query.where(Employee.id.in_(scope.employee_ids))
        employees = list((await db.execute(query)).scalars().all())
        if not employees:
            return []

        req_result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id.in_([e.id for e in employees]))
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.reviewer),
            )
            .order_by(LeaveRequest.created_at.desc())
        )
        requests_by_employee: dict[uuid.UUID, list[LeaveRequestOut]] = {}
        for req in req_result.scalars().all():
            requests_by_employee.setdefault(req.employee_id, []).append(
                LeaveService._build_request_response(req)
            )

        return [
            LeaveHistoryOut(
                employee=EmployeeBrief.model_validate(employee),
                balance=LeaveBalanceOut.model_validate(employee),
                requests=requests_by_employee.get(employee.id, []),
            )
            for employee in employees
        ]
