"""Leave service layer — submission, approval workflow, company cancellation.

Business logic:
  - Day counting with weekly-off/holiday exclusion and the sandwich rule
  - Policy checks: same-year range, backdated limit, PL eligibility, RH dates
  - Balance check against the ledger minus other pending requests; with
    ``allow_hr_override`` a shortage becomes leave-without-pay days
  - Status transitions are compare-and-swap UPDATEs on (id, status, version)
    so concurrent approvals have exactly one winner
  - Approval posts one DEBIT_APPROVED; company cancellation may post one
    CREDIT_REVERSED. Both carry natural dedup keys.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.attendance.service import CalendarService
from hrms.auth.authority import (
    can_approve_leave,
    can_company_cancel,
    can_override_policy,
)
from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    COMPANY_CANCELLABLE_TYPES,
    LEAVE_APPROVER_OVERRIDE_ROLES,
    SANDWICH_LEAVE_TYPES,
    ZERO_DAYS,
    LeaveStatus,
    LeaveType,
    LedgerAction,
    quantize_days,
)
from hrms.common.exceptions import (
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    PolicyViolationException,
    ValidationException,
)
from hrms.common.pagination import PaginationParams, fetch_page
from hrms.core_hr.models import Employee
from hrms.leave.models import LeaveRequest
from hrms.leave.schemas import LeaveListResponse, LeaveRequestCreate, LeaveRequestOut
from hrms.ledger.service import LedgerService
from hrms.policy.service import PolicyService

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submit, approve, reject, cancel, company-cancel."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _calculate_leave_days(
        from_date: date,
        to_date: date,
        weekly_offs: set[int],
        holidays: set[date],
        is_sandwich: bool,
    ) -> tuple[Decimal, dict[str, str]]:
        """Count leave days in the inclusive range.

        Returns:
            (total_days, per-day classification)

        Sandwich rule:
            With is_sandwich=True, weekly offs and holidays lying strictly
            between the first and last working day of the range count as
            leave. Off days at either end of the range never count.
        """

        all_dates: list[date] = []
        current = from_date
        while current <= to_date:
            all_dates.append(current)
            current += timedelta(days=1)

        if not all_dates:
            return Decimal("0"), {}

        working_indices = [
            i for i, d in enumerate(all_dates)
            if d.weekday() not in weekly_offs and d not in holidays
        ]
        sandwich_start = working_indices[0] if working_indices else 0
        sandwich_end = working_indices[-1] if working_indices else len(all_dates) - 1

        details: dict[str, str] = {}
        total = Decimal("0")
        for i, d in enumerate(all_dates):
            is_weekly_off = d.weekday() in weekly_offs
            is_holiday = d in holidays
            if is_weekly_off or is_holiday:
                if is_sandwich and sandwich_start < i < sandwich_end:
                    details[d.isoformat()] = "sandwich"
                    total += Decimal("1")
                else:
                    details[d.isoformat()] = "weekly_off" if is_weekly_off else "holiday"
            else:
                details[d.isoformat()] = "leave"
                total += Decimal("1")

        return total, details

    @staticmethod
    async def get_pending_paid_days(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: Optional[int],
    ) -> Decimal:
        """Paid days already reserved by the employee's pending requests."""

        query = select(func.coalesce(func.sum(LeaveRequest.paid_days), 0)).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.leave_type == leave_type,
            LeaveRequest.status == LeaveStatus.pending,
        )
        if year is not None:
            query = query.where(
                LeaveRequest.from_date >= date(year, 1, 1),
                LeaveRequest.from_date <= date(year, 12, 31),
            )
        result = await db.execute(query)
        return quantize_days(Decimal(str(result.scalar_one())))

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        leave_request = await db.get(LeaveRequest, request_id)
        if leave_request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_request

    @staticmethod
    async def _transition(
        db: AsyncSession,
        leave_request: LeaveRequest,
        expected: LeaveStatus,
        new_status: LeaveStatus,
        action: str,
        **values: Any,
    ) -> None:
        """Compare-and-swap the status; the loser of a race gets InvalidState."""

        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_request.id,
                LeaveRequest.status == expected,
                LeaveRequest.version == leave_request.version,
            )
            .values(status=new_status, version=LeaveRequest.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.refresh(leave_request)
            raise InvalidStateException("leave request", leave_request.status, action)
        await db.refresh(leave_request)
        logger.info(
            "Leave request %s: %s -> %s",
            leave_request.id, expected.value, new_status.value,
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        actor: Optional[Employee] = None,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """Create a PENDING leave request after policy and balance checks.

        *actor* is the user submitting (the employee themself or HR acting
        on their behalf); only HR may set ``override_policy``.
        """

        today = today or date.today()

        # ── Load employee ───────────────────────────────────────────
        employee = await db.get(Employee, employee_id)
        if employee is None or not employee.active:
            raise NotFoundException("Employee", str(employee_id))

        # ── Range ───────────────────────────────────────────────────
        if data.from_date > data.to_date:
            raise ValidationException({"dates": ["from_date must be on or before to_date."]})
        if data.from_date.year != data.to_date.year:
            raise ValidationException(
                {"dates": ["A leave request cannot span two calendar years; split it."]}
            )
        year = data.from_date.year

        # ── Override ────────────────────────────────────────────────
        override = data.override_policy
        if override:
            if not can_override_policy(actor.role if actor else None):
                raise ForbiddenException(detail="Only HR can override leave policy.")
            if not (data.override_remark or "").strip():
                raise ValidationException(
                    {"override_remark": ["A remark is required when overriding policy."]}
                )

        policy = await PolicyService.get_policy(db, year)

        # ── Day count ───────────────────────────────────────────────
        if data.leave_type == LeaveType.rh:
            if data.from_date != data.to_date:
                raise ValidationException(
                    {"dates": ["Restricted holiday leave must be a single day."]}
                )
            if not await CalendarService.is_restricted_holiday(db, data.from_date):
                raise ValidationException(
                    {"from_date": [f"{data.from_date} is not a restricted holiday."]}
                )
            computed_days = Decimal("1")
        else:
            holidays = await CalendarService.get_holiday_dates(db, data.from_date, data.to_date)
            computed_days, _ = LeaveService._calculate_leave_days(
                data.from_date,
                data.to_date,
                CalendarService.weekly_offs(),
                holidays,
                policy.sandwich_enabled and data.leave_type in SANDWICH_LEAVE_TYPES,
            )
        if computed_days <= 0:
            raise ValidationException(
                {"dates": ["No leave days found in the selected range "
                           "(all days may be weekly offs or holidays)."]}
            )

        # ── Overlap ─────────────────────────────────────────────────
        overlap_result = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(_ACTIVE_STATUSES),
                LeaveRequest.from_date <= data.to_date,
                LeaveRequest.to_date >= data.from_date,
            )
        )
        if overlap_result.scalar_one() > 0:
            raise ValidationException(
                {"dates": ["A pending or approved leave request overlaps these dates."]}
            )

        # ── Backdated limit ─────────────────────────────────────────
        days_back = (today - data.from_date).days
        if days_back > policy.backdated_max_days and not override:
            raise PolicyViolationException(
                "backdated_max_days",
                f"Leave starting {days_back} days ago exceeds the "
                f"{policy.backdated_max_days}-day backdated limit.",
            )

        # ── PL eligibility ──────────────────────────────────────────
        if data.leave_type == LeaveType.pl and not override:
            if employee.join_date is None:
                raise PolicyViolationException(
                    "pl_eligibility_months", "PL eligibility cannot be determined without a join date.",
                )
            eligible_on = employee.join_date + relativedelta(months=policy.pl_eligibility_months)
            if data.from_date < eligible_on:
                raise PolicyViolationException(
                    "pl_eligibility_months",
                    f"PL can be used from {eligible_on.isoformat()} "
                    f"({policy.pl_eligibility_months} months after joining).",
                )

        # ── Balance ─────────────────────────────────────────────────
        paid_days = computed_days
        lwp_days = ZERO_DAYS
        auto_lwp_reason: Optional[str] = None

        if data.leave_type == LeaveType.lwp:
            paid_days, lwp_days = ZERO_DAYS, computed_days
        else:
            if data.leave_type == LeaveType.compoff:
                balance = await LedgerService.get_compoff_balance(db, employee_id, today=today)
                available = balance.available_days - await LeaveService.get_pending_paid_days(
                    db, employee_id, LeaveType.compoff, None,
                )
            else:
                balance = await LedgerService.get_balance(db, employee_id, year, data.leave_type)
                available = balance.remaining - await LeaveService.get_pending_paid_days(
                    db, employee_id, data.leave_type, year,
                )
            available = max(available, ZERO_DAYS)

            if computed_days > available:
                shortage = quantize_days(computed_days - available)
                if not policy.allow_hr_override:
                    raise PolicyViolationException(
                        "balance",
                        f"Insufficient {data.leave_type.value} balance. "
                        f"Available: {available}, Requested: {computed_days}.",
                    )
                paid_days = available
                lwp_days = shortage
                auto_lwp_reason = (
                    f"Insufficient {data.leave_type.value} balance: {available} available, "
                    f"{shortage} day(s) converted to LWP."
                )

        # ── Create ──────────────────────────────────────────────────
        leave_request = LeaveRequest(
            employee_id=employee_id,
            leave_type=data.leave_type,
            from_date=data.from_date,
            to_date=data.to_date,
            reason=data.reason,
            status=LeaveStatus.pending,
            computed_days=quantize_days(computed_days),
            paid_days=quantize_days(paid_days),
            lwp_days=quantize_days(lwp_days),
            override_policy=override,
            override_remark=data.override_remark if override else None,
            auto_converted_to_lwp=auto_lwp_reason is not None,
            auto_lwp_reason=auto_lwp_reason,
            approver_id=employee.reporting_manager_id,
            applied_at=datetime.now(timezone.utc),
            version=1,
        )
        db.add(leave_request)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id if actor else employee_id,
            new_values={
                "leave_type": data.leave_type,
                "from_date": data.from_date,
                "to_date": data.to_date,
                "computed_days": leave_request.computed_days,
                "paid_days": leave_request.paid_days,
                "lwp_days": leave_request.lwp_days,
                "override_policy": override,
            },
        )
        logger.info(
            "Leave request %s submitted: %s %s..%s paid=%s lwp=%s",
            leave_request.id, data.leave_type.value, data.from_date, data.to_date,
            leave_request.paid_days, leave_request.lwp_days,
        )
        return leave_request

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """PENDING → APPROVED, posting a DEBIT_APPROVED of the paid days.

        A comp-off request needs its paid days covered by credits still
        valid on *today*.
        """

        leave_request = await LeaveService._get_request(db, request_id)
        if leave_request.status != LeaveStatus.pending:
            raise InvalidStateException("leave request", leave_request.status, "approve")
        if not can_approve_leave(
            actor.role,
            actor.id,
            leave_request.approver_id,
            leave_request.status,
            override_policy=bool(leave_request.override_policy),
        ):
            raise ForbiddenException(detail="You are not authorised to approve this leave request.")

        if leave_request.leave_type == LeaveType.compoff and leave_request.paid_days > 0:
            balance = await LedgerService.get_compoff_balance(
                db, leave_request.employee_id, today=today or date.today(),
            )
            if balance.available_days < leave_request.paid_days:
                raise PolicyViolationException(
                    "compoff_balance",
                    f"Only {balance.available_days} comp-off day(s) are still valid; "
                    f"{leave_request.paid_days} requested.",
                )

        now = datetime.now(timezone.utc)
        await LeaveService._transition(
            db,
            leave_request,
            LeaveStatus.pending,
            LeaveStatus.approved,
            "approve",
            approved_by_id=actor.id,
            approved_remark=remarks,
            approved_at=now,
        )

        if leave_request.paid_days > 0:
            await LedgerService.post_transaction(
                db,
                employee_id=leave_request.employee_id,
                year=leave_request.from_date.year,
                leave_type=leave_request.leave_type,
                delta_days=-Decimal(leave_request.paid_days),
                action=LedgerAction.debit_approved,
                actor_id=actor.id,
                remarks=remarks or "Leave approved",
                leave_request_id=leave_request.id,
                dedup_key=f"DEBIT_APPROVED:{leave_request.id}",
            )

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending},
            new_values={"status": LeaveStatus.approved, "remarks": remarks},
        )
        return leave_request

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        remarks: Optional[str],
    ) -> LeaveRequest:
        """PENDING → REJECTED. Remarks are mandatory; nothing touches the ledger."""

        if not (remarks or "").strip():
            raise ValidationException({"remarks": ["Remarks are required to reject a leave request."]})

        leave_request = await LeaveService._get_request(db, request_id)
        if leave_request.status != LeaveStatus.pending:
            raise InvalidStateException("leave request", leave_request.status, "reject")
        if not can_approve_leave(
            actor.role,
            actor.id,
            leave_request.approver_id,
            leave_request.status,
            override_policy=bool(leave_request.override_policy),
        ):
            raise ForbiddenException(detail="You are not authorised to reject this leave request.")

        await LeaveService._transition(
            db,
            leave_request,
            LeaveStatus.pending,
            LeaveStatus.rejected,
            "reject",
            rejected_by_id=actor.id,
            rejected_remark=remarks.strip(),
            rejected_at=datetime.now(timezone.utc),
        )

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending},
            new_values={"status": LeaveStatus.rejected, "remarks": remarks.strip()},
        )
        return leave_request

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
    ) -> LeaveRequest:
        """Employee withdraws their own PENDING request."""

        leave_request = await LeaveService._get_request(db, request_id)
        if leave_request.employee_id != actor.id:
            raise ForbiddenException(detail="You can only cancel your own leave requests.")
        if leave_request.status != LeaveStatus.pending:
            raise InvalidStateException("leave request", leave_request.status, "cancel")

        await LeaveService._transition(
            db,
            leave_request,
            LeaveStatus.pending,
            LeaveStatus.cancelled,
            "cancel",
            cancelled_by_id=actor.id,
            cancelled_remark=remarks,
            cancelled_at=datetime.now(timezone.utc),
        )
        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending},
            new_values={"status": LeaveStatus.cancelled},
        )
        return leave_request

    @staticmethod
    async def company_cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        recredit: bool,
        remarks: Optional[str] = None,
    ) -> LeaveRequest:
        """HR cancels an APPROVED CL/PL leave, optionally re-crediting the days."""

        leave_request = await LeaveService._get_request(db, request_id)
        if not can_company_cancel(actor.role):
            raise ForbiddenException(detail="Only HR can cancel an approved leave.")
        if leave_request.status != LeaveStatus.approved:
            raise InvalidStateException("leave request", leave_request.status, "company-cancel")
        if leave_request.leave_type not in COMPANY_CANCELLABLE_TYPES:
            raise ValidationException(
                {"leave_type": [
                    f"{leave_request.leave_type.value} leave cannot be cancelled by the company; "
                    "only CL and PL can."
                ]}
            )

        will_recredit = recredit and leave_request.paid_days > 0
        await LeaveService._transition(
            db,
            leave_request,
            LeaveStatus.approved,
            LeaveStatus.cancelled_by_company,
            "company-cancel",
            cancelled_by_id=actor.id,
            cancelled_remark=remarks,
            cancelled_at=datetime.now(timezone.utc),
            recredited=will_recredit,
        )

        if will_recredit:
            await LedgerService.post_transaction(
                db,
                employee_id=leave_request.employee_id,
                year=leave_request.from_date.year,
                leave_type=leave_request.leave_type,
                delta_days=Decimal(leave_request.paid_days),
                action=LedgerAction.credit_reversed,
                actor_id=actor.id,
                remarks=remarks or "Cancelled by company",
                leave_request_id=leave_request.id,
                dedup_key=f"CREDIT_REVERSED:{leave_request.id}",
            )

        await create_audit_entry(
            db,
            action="company_cancel",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.approved},
            new_values={
                "status": LeaveStatus.cancelled_by_company,
                "recredit": will_recredit,
                "remarks": remarks,
            },
        )
        return leave_request

    # ─────────────────────────────────────────────────────────────────
    # Listing
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_pending(db: AsyncSession, actor: Employee) -> LeaveListResponse:
        """Pending requests the actor may act on."""

        query = select(LeaveRequest).where(LeaveRequest.status == LeaveStatus.pending)
        if actor.role not in LEAVE_APPROVER_OVERRIDE_ROLES:
            query = query.where(LeaveRequest.approver_id == actor.id)
        rows = (
            await db.execute(query.order_by(LeaveRequest.applied_at))
        ).scalars().all()
        return LeaveListResponse(
            items=[LeaveRequestOut.model_validate(r) for r in rows],
            total=len(rows),
        )

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        pagination: Optional[PaginationParams] = None,
        visible_to: Optional[uuid.UUID] = None,
    ) -> LeaveListResponse:
        """Requests overlapping the optional date window, newest first.

        *visible_to* limits the result to that employee's own requests and
        the ones awaiting or decided by them as approver.
        """

        query = select(LeaveRequest)
        if visible_to is not None:
            query = query.where(
                or_(LeaveRequest.employee_id == visible_to, LeaveRequest.approver_id == visible_to)
            )
        if from_date is not None:
            query = query.where(LeaveRequest.to_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.from_date <= to_date)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)

        rows, total = await fetch_page(
            db,
            query.order_by(LeaveRequest.from_date.desc(), LeaveRequest.applied_at.desc()),
            pagination,
        )
        return LeaveListResponse(
            items=[LeaveRequestOut.model_validate(r) for r in rows],
            total=total,
        )
