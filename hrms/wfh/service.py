"""WFH service — work-from-home requests against a yearly day-value quota.

Business logic:
  - Only roles flagged ``wfh_enabled`` in the role master may request
  - One active (PENDING/APPROVED) request per employee per date
  - Quota per year: ``wfh_max_days × wfh_day_value``; each approved day uses
    ``wfh_day_value``; pending requests reserve the same amount
  - Approval posts a DEBIT_APPROVED; cancelling an approved, not-yet-past
    day posts the matching CREDIT_REVERSED
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.auth.authority import can_approve_wfh
from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    DEFAULT_TRANSACTION_LIMIT,
    WFH_APPROVER_OVERRIDE_ROLES,
    ZERO_DAYS,
    WfhAction,
    WfhStatus,
    quantize_days,
)
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    PolicyViolationException,
)
from hrms.core_hr.models import Employee, RoleDefinition
from hrms.core_hr.service import RoleService
from hrms.policy.models import LeavePolicy
from hrms.policy.service import PolicyService
from hrms.wfh.models import WfhRequest, WfhTransaction
from hrms.wfh.schemas import (
    WfhBalanceItem,
    WfhBalancesResponse,
    WfhListResponse,
    WfhRequestCreate,
    WfhRequestOut,
    WfhTransactionOut,
    WfhTransactionsResponse,
)

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (WfhStatus.pending, WfhStatus.approved)


def wfh_entitlement(policy: Optional[LeavePolicy], wfh_enabled: bool) -> Decimal:
    """Yearly WFH quota in day-value units."""
    if policy is None or not wfh_enabled:
        return ZERO_DAYS
    return quantize_days(Decimal(policy.wfh_max_days) * Decimal(policy.wfh_day_value))


class WfhService:
    """Async WFH workflow and quota projection."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> WfhRequest:
        wfh = await db.get(WfhRequest, request_id)
        if wfh is None:
            raise NotFoundException("WfhRequest", str(request_id))
        return wfh

    @staticmethod
    async def _used(db: AsyncSession, employee_id: uuid.UUID, year: int) -> Decimal:
        """Net day value consumed in *year* (debits minus reversals)."""
        result = await db.execute(
            select(func.coalesce(func.sum(WfhTransaction.day_value), 0)).where(
                WfhTransaction.employee_id == employee_id,
                WfhTransaction.year == year,
            )
        )
        return quantize_days(-Decimal(str(result.scalar_one())))

    @staticmethod
    async def _pending_count(db: AsyncSession, employee_id: uuid.UUID, year: int) -> int:
        result = await db.execute(
            select(func.count()).select_from(WfhRequest).where(
                WfhRequest.employee_id == employee_id,
                WfhRequest.status == WfhStatus.pending,
                WfhRequest.request_date >= date(year, 1, 1),
                WfhRequest.request_date <= date(year, 12, 31),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def _post(
        db: AsyncSession,
        wfh: WfhRequest,
        day_value: Decimal,
        action: WfhAction,
        actor_id: uuid.UUID,
        remarks: Optional[str],
    ) -> Optional[WfhTransaction]:
        dedup_key = f"WFH_{action.value}:{wfh.id}"
        tx = WfhTransaction(
            employee_id=wfh.employee_id,
            year=wfh.request_date.year,
            request_date=wfh.request_date,
            day_value=quantize_days(day_value),
            action=action,
            remarks=remarks,
            action_by_employee_id=actor_id,
            action_at=datetime.now(timezone.utc),
            wfh_request_id=wfh.id,
            dedup_key=dedup_key,
        )
        try:
            async with db.begin_nested():
                db.add(tx)
                await db.flush()
        except IntegrityError:
            existing = await db.execute(
                select(WfhTransaction.id).where(WfhTransaction.dedup_key == dedup_key)
            )
            if existing.scalar() is None:
                raise
            logger.debug("WFH posting %s already exists; skipped", dedup_key)
            return None
        return tx

    @staticmethod
    async def _transition(
        db: AsyncSession,
        wfh: WfhRequest,
        expected: WfhStatus,
        new_status: WfhStatus,
        action: str,
        **values: Any,
    ) -> None:
        result = await db.execute(
            update(WfhRequest)
            .where(
                WfhRequest.id == wfh.id,
                WfhRequest.status == expected,
                WfhRequest.version == wfh.version,
            )
            .values(status=new_status, version=WfhRequest.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.refresh(wfh)
            raise InvalidStateException("WFH request", wfh.status, action)
        await db.refresh(wfh)
        logger.info("WFH request %s: %s -> %s", wfh.id, expected.value, new_status.value)

    @staticmethod
    async def _authorise(db: AsyncSession, wfh: WfhRequest, actor: Employee, action: str) -> None:
        if wfh.status != WfhStatus.pending:
            raise InvalidStateException("WFH request", wfh.status, action)
        owner = await db.get(Employee, wfh.employee_id)
        manager_id = owner.reporting_manager_id if owner is not None else None
        if not can_approve_wfh(actor.role, actor.id, manager_id):
            raise ForbiddenException(detail=f"You are not authorised to {action} this WFH request.")

    # ─────────────────────────────────────────────────────────────────
    # Request
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def request_wfh(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: WfhRequestCreate,
    ) -> WfhRequest:
        """Create a PENDING WFH request if the role and quota allow it."""

        employee = await db.get(Employee, employee_id)
        if employee is None or not employee.active:
            raise NotFoundException("Employee", str(employee_id))
        if not await RoleService.is_wfh_enabled(db, employee):
            raise ForbiddenException(detail="Work from home is not enabled for your role.")

        year = data.request_date.year
        policy = await PolicyService.get_policy(db, year)

        duplicate = await db.execute(
            select(WfhRequest.id).where(
                WfhRequest.employee_id == employee_id,
                WfhRequest.request_date == data.request_date,
                WfhRequest.status.in_(_ACTIVE_STATUSES),
            )
        )
        if duplicate.scalar() is not None:
            raise ConflictError("request_date", data.request_date.isoformat())

        day_value = Decimal(policy.wfh_day_value)
        entitled = wfh_entitlement(policy, True)
        used = await WfhService._used(db, employee_id, year)
        reserved = day_value * await WfhService._pending_count(db, employee_id, year)
        available = entitled - used - reserved
        if available < day_value:
            raise PolicyViolationException(
                "wfh_quota",
                f"WFH quota exhausted for {year}: {quantize_days(max(available, ZERO_DAYS))} "
                f"available, {quantize_days(day_value)} required.",
            )

        wfh = WfhRequest(
            employee_id=employee_id,
            request_date=data.request_date,
            reason=data.reason,
            status=WfhStatus.pending,
        )
        db.add(wfh)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="wfh_request",
            entity_id=wfh.id,
            actor_id=employee_id,
            new_values={"request_date": data.request_date, "reason": data.reason},
        )
        return wfh

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject / Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_wfh(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
    ) -> WfhRequest:
        wfh = await WfhService._get_request(db, request_id)
        await WfhService._authorise(db, wfh, actor, "approve")
        policy = await PolicyService.get_policy(db, wfh.request_date.year)

        await WfhService._transition(
            db,
            wfh,
            WfhStatus.pending,
            WfhStatus.approved,
            "approve",
            approved_by=actor.id,
            approved_at=datetime.now(timezone.utc),
        )
        await WfhService._post(
            db,
            wfh,
            -Decimal(policy.wfh_day_value),
            WfhAction.debit_approved,
            actor.id,
            remarks or "WFH approved",
        )
        await create_audit_entry(
            db,
            action="approve",
            entity_type="wfh_request",
            entity_id=wfh.id,
            actor_id=actor.id,
            old_values={"status": WfhStatus.pending},
            new_values={"status": WfhStatus.approved, "remarks": remarks},
        )
        return wfh

    @staticmethod
    async def reject_wfh(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        remarks: Optional[str] = None,
    ) -> WfhRequest:
        wfh = await WfhService._get_request(db, request_id)
        await WfhService._authorise(db, wfh, actor, "reject")
        await WfhService._transition(
            db,
            wfh,
            WfhStatus.pending,
            WfhStatus.rejected,
            "reject",
            rejected_by=actor.id,
            rejected_at=datetime.now(timezone.utc),
            rejected_remark=remarks,
        )
        await create_audit_entry(
            db,
            action="reject",
            entity_type="wfh_request",
            entity_id=wfh.id,
            actor_id=actor.id,
            old_values={"status": WfhStatus.pending},
            new_values={"status": WfhStatus.rejected, "remarks": remarks},
        )
        return wfh

    @staticmethod
    async def cancel_wfh(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        today: Optional[date] = None,
    ) -> WfhRequest:
        """Owner cancels a pending request, or an approved one whose date has not passed."""

        today = today or date.today()
        wfh = await WfhService._get_request(db, request_id)
        if wfh.employee_id != actor.id:
            raise ForbiddenException(detail="You can only cancel your own WFH requests.")

        previous = wfh.status
        if previous == WfhStatus.approved and wfh.request_date < today:
            raise InvalidStateException("past WFH request", previous, "cancel")
        if previous not in _ACTIVE_STATUSES:
            raise InvalidStateException("WFH request", previous, "cancel")

        await WfhService._transition(
            db,
            wfh,
            previous,
            WfhStatus.cancelled,
            "cancel",
            cancelled_at=datetime.now(timezone.utc),
        )

        if previous == WfhStatus.approved:
            debited = await db.execute(
                select(WfhTransaction.day_value).where(
                    WfhTransaction.wfh_request_id == wfh.id,
                    WfhTransaction.action == WfhAction.debit_approved,
                )
            )
            amount = debited.scalar()
            if amount is not None:
                await WfhService._post(
                    db,
                    wfh,
                    -Decimal(amount),
                    WfhAction.credit_reversed,
                    actor.id,
                    "WFH cancelled",
                )

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="wfh_request",
            entity_id=wfh.id,
            actor_id=actor.id,
            old_values={"status": previous},
            new_values={"status": WfhStatus.cancelled},
        )
        return wfh

    # ─────────────────────────────────────────────────────────────────
    # Listing & balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_pending(db: AsyncSession, actor: Employee) -> WfhListResponse:
        query = select(WfhRequest).where(WfhRequest.status == WfhStatus.pending)
        if actor.role not in WFH_APPROVER_OVERRIDE_ROLES:
            query = query.join(Employee, Employee.id == WfhRequest.employee_id).where(
                Employee.reporting_manager_id == actor.id
            )
        rows = (await db.execute(query.order_by(WfhRequest.applied_at))).scalars().all()
        return WfhListResponse(
            items=[WfhRequestOut.model_validate(r) for r in rows],
            total=len(rows),
        )

    @staticmethod
    async def get_wfh_balances(
        db: AsyncSession,
        year: int,
        *,
        department_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> WfhBalancesResponse:
        """Entitlement and net usage per employee for *year*."""

        emp_query = (
            select(Employee)
            .options(selectinload(Employee.department))
            .order_by(Employee.emp_code)
        )
        if department_id is not None:
            emp_query = emp_query.where(Employee.department_id == department_id)
        if employee_id is not None:
            emp_query = emp_query.where(Employee.id == employee_id)
        employees = (await db.execute(emp_query)).scalars().all()
        if not employees:
            return WfhBalancesResponse(year=year, items=[], total=0)

        policy = await PolicyService.find_policy(db, year)
        role_flags = dict(
            (
                await db.execute(
                    select(RoleDefinition.name, RoleDefinition.wfh_enabled).where(
                        RoleDefinition.is_active.is_(True)
                    )
                )
            ).all()
        )

        used: dict[uuid.UUID, Decimal] = defaultdict(lambda: ZERO_DAYS)
        tx_rows = (
            await db.execute(
                select(WfhTransaction.employee_id, WfhTransaction.day_value).where(
                    WfhTransaction.year == year,
                    WfhTransaction.employee_id.in_([e.id for e in employees]),
                )
            )
        ).all()
        for emp_id, day_value in tx_rows:
            used[emp_id] -= Decimal(day_value)

        items: list[WfhBalanceItem] = []
        for emp in employees:
            enabled = bool(role_flags.get(emp.role.value, False))
            entitled = wfh_entitlement(policy, enabled)
            emp_used = quantize_days(used[emp.id])
            items.append(
                WfhBalanceItem(
                    employee_id=emp.id,
                    employee_name=emp.name,
                    emp_code=emp.emp_code,
                    department_name=emp.department.name if emp.department else None,
                    year=year,
                    wfh_enabled=enabled,
                    entitled=entitled,
                    accrued=entitled,
                    used=emp_used,
                    remaining=quantize_days(entitled - emp_used),
                )
            )
        return WfhBalancesResponse(year=year, items=items, total=len(items))

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        limit: int = DEFAULT_TRANSACTION_LIMIT,
    ) -> WfhTransactionsResponse:
        query = select(WfhTransaction).where(
            WfhTransaction.employee_id == employee_id,
            WfhTransaction.year == year,
        )
        total = (
            await db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        rows = (
            await db.execute(
                query.order_by(WfhTransaction.action_at.desc(), WfhTransaction.id.desc()).limit(limit)
            )
        ).scalars().all()
        return WfhTransactionsResponse(
            items=[WfhTransactionOut.model_validate(r) for r in rows],
            total=total,
        )
