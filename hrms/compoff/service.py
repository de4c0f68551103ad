"""Comp-off service — claims for days worked on a weekly off or holiday.

Business logic:
  - A claim needs a past (or today's) non-working day with recorded attendance
  - One claim per employee per date
  - Approval posts a COMPOFF_CREDIT of one day that expires
    ``COMPOFF_EXPIRY_DAYS`` after the worked date
  - HR acts on any claim; other approvers only on their direct reportees
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.attendance.service import CalendarService
from hrms.auth.authority import can_approve_compoff
from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    COMPOFF_CREDIT_DAYS,
    CompoffStatus,
    LeaveType,
    LedgerAction,
    UserRole,
)
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from hrms.compoff.models import CompoffRequest
from hrms.compoff.schemas import CompoffListResponse, CompoffRequestCreate, CompoffRequestOut
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.ledger.service import LedgerService

logger = logging.getLogger(__name__)


class CompoffService:
    """Async comp-off claim workflow."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> CompoffRequest:
        compoff = await db.get(CompoffRequest, request_id)
        if compoff is None:
            raise NotFoundException("CompoffRequest", str(request_id))
        return compoff

    @staticmethod
    async def _authorise(
        db: AsyncSession,
        compoff: CompoffRequest,
        actor: Employee,
        action: str,
    ) -> None:
        if compoff.status != CompoffStatus.pending:
            raise InvalidStateException("comp-off request", compoff.status, action)
        owner = await db.get(Employee, compoff.employee_id)
        manager_id = owner.reporting_manager_id if owner is not None else None
        if not can_approve_compoff(actor.role, actor.id, manager_id):
            raise ForbiddenException(
                detail=f"You are not authorised to {action} this comp-off request."
            )

    @staticmethod
    async def _transition(
        db: AsyncSession,
        compoff: CompoffRequest,
        new_status: CompoffStatus,
        action: str,
        actor: Employee,
        remarks: Optional[str],
    ) -> None:
        result = await db.execute(
            update(CompoffRequest)
            .where(
                CompoffRequest.id == compoff.id,
                CompoffRequest.status == CompoffStatus.pending,
                CompoffRequest.version == compoff.version,
            )
            .values(
                status=new_status,
                version=CompoffRequest.version + 1,
                action_by_id=actor.id,
                action_at=datetime.now(timezone.utc),
                action_remark=remarks,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.refresh(compoff)
            raise InvalidStateException("comp-off request", compoff.status, action)
        await db.refresh(compoff)
        logger.info(
            "Comp-off request %s: %s -> %s",
            compoff.id, CompoffStatus.pending.value, new_status.value,
        )

    # ─────────────────────────────────────────────────────────────────
    # Request
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def request_compoff(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: CompoffRequestCreate,
        *,
        today: Optional[date] = None,
    ) -> CompoffRequest:
        """Create a PENDING claim for a worked weekly off or holiday."""

        today = today or date.today()
        employee = await db.get(Employee, employee_id)
        if employee is None or not employee.active:
            raise NotFoundException("Employee", str(employee_id))

        worked = data.worked_date
        if worked > today:
            raise ValidationException(
                {"worked_date": ["Comp-off cannot be claimed for a future date."]}
            )
        if not await CalendarService.is_non_working_day(db, worked):
            raise ValidationException(
                {"worked_date": [f"{worked.isoformat()} is neither a weekly off nor a holiday."]}
            )
        if not await CalendarService.has_attendance(db, employee_id, worked):
            raise ValidationException(
                {"worked_date": [f"No attendance recorded on {worked.isoformat()}."]}
            )

        existing = await db.execute(
            select(CompoffRequest.id).where(
                CompoffRequest.employee_id == employee_id,
                CompoffRequest.worked_date == worked,
            )
        )
        if existing.scalar() is not None:
            raise ConflictError("worked_date", worked.isoformat())

        compoff = CompoffRequest(
            employee_id=employee_id,
            worked_date=worked,
            reason=data.reason,
            status=CompoffStatus.pending,
        )
        db.add(compoff)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="compoff_request",
            entity_id=compoff.id,
            actor_id=employee_id,
            new_values={"worked_date": worked, "reason": data.reason},
        )
        logger.info("Comp-off claimed by %s for %s", employee_id, worked)
        return compoff

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_compoff(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
    ) -> CompoffRequest:
        """PENDING → APPROVED, crediting one expiring comp-off day."""

        compoff = await CompoffService._get_request(db, request_id)
        await CompoffService._authorise(db, compoff, actor, "approve")
        await CompoffService._transition(
            db, compoff, CompoffStatus.approved, "approve", actor, remarks,
        )

        await LedgerService.post_transaction(
            db,
            employee_id=compoff.employee_id,
            year=compoff.worked_date.year,
            leave_type=LeaveType.compoff,
            delta_days=COMPOFF_CREDIT_DAYS,
            action=LedgerAction.compoff_credit,
            actor_id=actor.id,
            remarks=remarks or f"Comp-off for {compoff.worked_date.isoformat()}",
            compoff_request_id=compoff.id,
            expires_on=compoff.worked_date + timedelta(days=settings.COMPOFF_EXPIRY_DAYS),
            dedup_key=f"COMPOFF_CREDIT:{compoff.id}",
        )

        await create_audit_entry(
            db,
            action="approve",
            entity_type="compoff_request",
            entity_id=compoff.id,
            actor_id=actor.id,
            old_values={"status": CompoffStatus.pending},
            new_values={"status": CompoffStatus.approved, "remarks": remarks},
        )
        return compoff

    @staticmethod
    async def reject_compoff(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
    ) -> CompoffRequest:
        compoff = await CompoffService._get_request(db, request_id)
        await CompoffService._authorise(db, compoff, actor, "reject")
        await CompoffService._transition(
            db, compoff, CompoffStatus.rejected, "reject", actor, remarks,
        )
        await create_audit_entry(
            db,
            action="reject",
            entity_type="compoff_request",
            entity_id=compoff.id,
            actor_id=actor.id,
            old_values={"status": CompoffStatus.pending},
            new_values={"status": CompoffStatus.rejected, "remarks": remarks},
        )
        return compoff

    # ─────────────────────────────────────────────────────────────────
    # Listing
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_pending(db: AsyncSession, actor: Employee) -> CompoffListResponse:
        """Pending claims: all for HR, direct reportees' otherwise."""

        query = select(CompoffRequest).where(CompoffRequest.status == CompoffStatus.pending)
        if actor.role != UserRole.hr:
            query = query.join(Employee, Employee.id == CompoffRequest.employee_id).where(
                Employee.reporting_manager_id == actor.id
            )
        rows = (
            await db.execute(query.order_by(CompoffRequest.requested_at))
        ).scalars().all()
        return CompoffListResponse(
            items=[CompoffRequestOut.model_validate(r) for r in rows],
            total=len(rows),
        )

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> CompoffListResponse:
        rows = (
            await db.execute(
                select(CompoffRequest)
                .where(CompoffRequest.employee_id == employee_id)
                .order_by(CompoffRequest.worked_date.desc())
            )
        ).scalars().all()
        return CompoffListResponse(
            items=[CompoffRequestOut.model_validate(r) for r in rows],
            total=len(rows),
        )
