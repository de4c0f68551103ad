"""Year-close processor — settles the remaining balances of a leave year.

For every employee with ledger activity in the year:
  - CL, SL and RH remaining balances lapse
  - PL carries forward up to ``carry_forward_pl_max`` into the next year;
    the excess is encashed
  - paid days reserved by PENDING requests in the year are held back, so a
    later approval still finds them in the closed year
  - an employee whose year already carries a closing posting is reported
    as ``already_closed`` and left untouched

Each employee is settled in its own SAVEPOINT with natural dedup keys, so a
re-run never double-posts.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    LEDGER_LEAVE_TYPES,
    ZERO_DAYS,
    LeaveType,
    LedgerAction,
    quantize_days,
)
from hrms.common.exceptions import AppException
from hrms.core_hr.models import Employee
from hrms.leave.service import LeaveService
from hrms.ledger.models import LeaveTransaction
from hrms.ledger.service import LedgerService, fold_transactions
from hrms.policy.models import LeavePolicy
from hrms.policy.service import PolicyService
from hrms.year_close.schemas import YearCloseDetail, YearCloseResult

logger = logging.getLogger(__name__)

_LAPSING_TYPES = (LeaveType.cl, LeaveType.sl, LeaveType.rh)


class YearCloseService:

    @staticmethod
    async def _is_closed(db: AsyncSession, employee_id: uuid.UUID, year: int) -> bool:
        """True if *year* already carries a closing posting for the employee.

        The CARRY_FORWARD credit received from the previous year's close also
        lives in *year*; only outgoing (negative) carry-forwards count here.
        """
        result = await db.execute(
            select(LeaveTransaction.id).where(
                LeaveTransaction.employee_id == employee_id,
                LeaveTransaction.year == year,
                or_(
                    LeaveTransaction.action.in_((LedgerAction.lapse, LedgerAction.encashment)),
                    and_(
                        LeaveTransaction.action == LedgerAction.carry_forward,
                        LeaveTransaction.delta_days < 0,
                    ),
                ),
            ).limit(1)
        )
        return result.scalar() is not None

    @staticmethod
    async def _close_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        policy: LeavePolicy,
        actor_id: Optional[uuid.UUID],
        detail: YearCloseDetail,
    ) -> None:
        if await YearCloseService._is_closed(db, employee_id, year):
            detail.status = "already_closed"
            return

        rows = (
            await db.execute(
                select(LeaveTransaction).where(
                    LeaveTransaction.employee_id == employee_id,
                    LeaveTransaction.year == year,
                    LeaveTransaction.leave_type.in_(LEDGER_LEAVE_TYPES),
                )
            )
        ).scalars().all()
        grouped: dict[LeaveType, list[LeaveTransaction]] = defaultdict(list)
        for row in rows:
            grouped[row.leave_type].append(row)

        async def _settleable(leave_type: LeaveType) -> Decimal:
            remaining = fold_transactions(grouped[leave_type]).remaining
            if remaining <= ZERO_DAYS:
                return remaining
            held = min(
                remaining,
                await LeaveService.get_pending_paid_days(db, employee_id, leave_type, year),
            )
            if held > ZERO_DAYS:
                detail.held_for_pending[leave_type.value] = held
            return remaining - held

        posted = False
        for leave_type in _LAPSING_TYPES:
            remaining = await _settleable(leave_type)
            if remaining <= ZERO_DAYS:
                continue
            await LedgerService.post_transaction(
                db,
                employee_id=employee_id,
                year=year,
                leave_type=leave_type,
                delta_days=-remaining,
                action=LedgerAction.lapse,
                actor_id=actor_id,
                remarks=f"Year-end lapse {year}",
                dedup_key=f"LAPSE:{employee_id}:{year}:{leave_type.value}",
            )
            detail.lapsed[leave_type.value] = remaining
            posted = True

        pl_remaining = await _settleable(LeaveType.pl)
        if pl_remaining > ZERO_DAYS:
            carry = min(pl_remaining, quantize_days(Decimal(policy.carry_forward_pl_max)))
            excess = pl_remaining - carry
            if carry > ZERO_DAYS:
                await LedgerService.post_transaction(
                    db,
                    employee_id=employee_id,
                    year=year,
                    leave_type=LeaveType.pl,
                    delta_days=-carry,
                    action=LedgerAction.carry_forward,
                    actor_id=actor_id,
                    remarks=f"Carried forward to {year + 1}",
                    dedup_key=f"CARRY_FORWARD_OUT:{employee_id}:{year}:PL",
                )
                await LedgerService.post_transaction(
                    db,
                    employee_id=employee_id,
                    year=year + 1,
                    leave_type=LeaveType.pl,
                    delta_days=carry,
                    action=LedgerAction.carry_forward,
                    actor_id=actor_id,
                    remarks=f"Carried forward from {year}",
                    dedup_key=f"CARRY_FORWARD_IN:{employee_id}:{year + 1}:PL",
                )
            if excess > ZERO_DAYS:
                await LedgerService.post_transaction(
                    db,
                    employee_id=employee_id,
                    year=year,
                    leave_type=LeaveType.pl,
                    delta_days=-excess,
                    action=LedgerAction.encashment,
                    actor_id=actor_id,
                    remarks=f"Encashed at year-end {year}",
                    dedup_key=f"ENCASHMENT:{employee_id}:{year}:PL",
                )
            detail.carried_forward = carry
            detail.encashed = excess
            posted = True

        detail.status = "closed" if posted else "nothing_to_close"

    @staticmethod
    async def run_year_close(
        db: AsyncSession,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> YearCloseResult:
        """Close *year*; the policies for *year* and *year + 1* must both exist."""

        policy = await PolicyService.get_policy(db, year)
        await PolicyService.get_policy(db, year + 1)

        employee_ids = select(LeaveTransaction.employee_id).where(
            LeaveTransaction.year == year,
            LeaveTransaction.leave_type.in_(LEDGER_LEAVE_TYPES),
        ).distinct()
        employees = (
            await db.execute(
                select(Employee.id, Employee.emp_code, Employee.name)
                .where(Employee.id.in_(employee_ids))
                .order_by(Employee.emp_code)
            )
        ).all()

        result = YearCloseResult(year=year)
        for emp_id, emp_code, name in employees:
            detail = YearCloseDetail(
                employee_id=emp_id, emp_code=emp_code, name=name, status="failed",
            )
            result.details.append(detail)
            try:
                async with db.begin_nested():
                    await YearCloseService._close_employee(
                        db, emp_id, year, policy, actor_id, detail,
                    )
            except Exception as exc:
                logger.exception("Year-close %s failed for employee %s (%s)", year, emp_code, emp_id)
                detail.status = "failed"
                detail.reason = exc.detail if isinstance(exc, AppException) else str(exc)
                detail.lapsed = {}
                detail.carried_forward = ZERO_DAYS
                detail.encashed = ZERO_DAYS
                detail.held_for_pending = {}
                result.failed_count += 1
                continue

            if detail.status == "already_closed":
                result.already_closed += 1
            elif detail.status == "closed":
                result.closed_count += 1
            result.total_lapsed += sum(detail.lapsed.values(), ZERO_DAYS)
            result.total_carried_forward += detail.carried_forward
            result.total_encashed += detail.encashed

        result.employees_processed = len(employees)
        result.total_lapsed = quantize_days(result.total_lapsed)
        result.total_carried_forward = quantize_days(result.total_carried_forward)
        result.total_encashed = quantize_days(result.total_encashed)

        await create_audit_entry(
            db,
            action="year_close",
            entity_type="leave_year",
            entity_id=year,
            actor_id=actor_id,
            new_values={
                "closed": result.closed_count,
                "already_closed": result.already_closed,
                "failed": result.failed_count,
                "lapsed": result.total_lapsed,
                "carried_forward": result.total_carried_forward,
                "encashed": result.total_encashed,
            },
        )
        logger.info(
            "Year-close %s: %d employees, %d closed, %d already closed, %d failed",
            year, result.employees_processed, result.closed_count,
            result.already_closed, result.failed_count,
        )
        return result
