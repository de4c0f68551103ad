"""Accrual engine — monthly and yearly leave credit runs.

Business logic:
  - Every employee is visited; inactive employees are skipped
  - Per leave type: a positive monthly rate posts one ACCRUE_MONTHLY for the
    month; a zero rate with an annual entitlement posts one ACCRUE_ANNUAL
    for the year, pro-rated from the first eligible month
  - Natural dedup keys make a re-run a no-op for what was already posted
  - Each employee runs in its own SAVEPOINT: a failure is logged and
    recorded, the rest of the batch continues
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.accrual.schemas import (
    AccrualDetail,
    AccrualRunResult,
    AccrualStatus,
    AccrualStatusEmployee,
)
from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    LEDGER_LEAVE_TYPES,
    ZERO_DAYS,
    LeaveType,
    LedgerAction,
)
from hrms.common.exceptions import AppException, ValidationException
from hrms.core_hr.models import Employee
from hrms.ledger.models import LeaveTransaction
from hrms.ledger.service import BalanceFigures, LedgerService, fold_transactions
from hrms.policy.models import LeavePolicy
from hrms.policy.service import PolicyService

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_REMAINING_TYPES = (LeaveType.cl, LeaveType.sl, LeaveType.pl)


def parse_month(value: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``."""
    match = _MONTH_RE.match(value or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationException({"month": [f"Invalid month '{value}'; expected YYYY-MM."]})
    return int(match.group(1)), int(match.group(2))


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, AppException) and exc.errors:
        return "; ".join(str(msg) for msgs in exc.errors.values() for msg in msgs)
    return str(exc)


async def _figures_by_employee(
    db: AsyncSession,
    year: int,
    employee_ids: list[uuid.UUID],
) -> dict[tuple[uuid.UUID, LeaveType], BalanceFigures]:
    if not employee_ids:
        return {}
    rows = (
        await db.execute(
            select(LeaveTransaction).where(
                LeaveTransaction.year == year,
                LeaveTransaction.employee_id.in_(employee_ids),
                LeaveTransaction.leave_type.in_(LEDGER_LEAVE_TYPES),
            )
        )
    ).scalars().all()
    grouped: dict[tuple[uuid.UUID, LeaveType], list[LeaveTransaction]] = defaultdict(list)
    for row in rows:
        grouped[(row.employee_id, row.leave_type)].append(row)
    return {key: fold_transactions(value) for key, value in grouped.items()}


class AccrualService:
    """Batch leave accrual."""

    # ─────────────────────────────────────────────────────────────────
    # Per-employee posting
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _accrue_employee(
        db: AsyncSession,
        employee: Employee,
        policy: LeavePolicy,
        year: int,
        month: int,
        actor_id: Optional[uuid.UUID],
        detail: AccrualDetail,
    ) -> None:
        if employee.join_date is None:
            raise ValidationException({"join_date": ["Employee has no joining date."]})

        for leave_type in LEDGER_LEAVE_TYPES:
            if not PolicyService.is_eligible(policy, leave_type, employee.join_date, year, month):
                detail.not_eligible.append(leave_type.value)
                continue

            if PolicyService.monthly_rate(policy, leave_type) > 0:
                amount = PolicyService.monthly_credit(policy, leave_type, month)
                action = LedgerAction.accrue_monthly
                dedup_key = f"ACCRUE_MONTHLY:{employee.id}:{year:04d}-{month:02d}:{leave_type.value}"
                remarks = f"Monthly accrual {year:04d}-{month:02d}"
            elif PolicyService.is_annual_grant(policy, leave_type):
                first_month = PolicyService.first_eligible_month(
                    policy, leave_type, employee.join_date, year,
                )
                amount = PolicyService.annual_grant(policy, leave_type, first_month or month)
                action = LedgerAction.accrue_annual
                dedup_key = f"ACCRUE_ANNUAL:{employee.id}:{year:04d}:{leave_type.value}"
                remarks = f"Annual grant {year:04d}"
            else:
                continue

            if amount <= ZERO_DAYS:
                continue

            tx = await LedgerService.post_transaction(
                db,
                employee_id=employee.id,
                year=year,
                leave_type=leave_type,
                delta_days=amount,
                action=action,
                actor_id=actor_id,
                remarks=remarks,
                accrual_month=month,
                dedup_key=dedup_key,
            )
            if tx is None:
                detail.already_credited.append(leave_type.value)
            else:
                detail.credited[leave_type.value] = amount

        if detail.credited:
            detail.status = "credited"
        elif detail.already_credited:
            detail.status = "already_credited"
        else:
            detail.status = "not_eligible"

    @staticmethod
    async def _run_month(
        db: AsyncSession,
        employees: list[Employee],
        policy: LeavePolicy,
        year: int,
        month: int,
        actor_id: Optional[uuid.UUID],
    ) -> list[AccrualDetail]:
        details: list[AccrualDetail] = []
        for employee in employees:
            detail = AccrualDetail(
                employee_id=employee.id,
                emp_code=employee.emp_code,
                name=employee.name,
                status="skipped_inactive",
            )
            details.append(detail)
            if not employee.active:
                continue

            try:
                async with db.begin_nested():
                    await AccrualService._accrue_employee(
                        db, employee, policy, year, month, actor_id, detail,
                    )
            except Exception as exc:
                logger.exception(
                    "Accrual failed for employee %s (%s) in %04d-%02d",
                    detail.emp_code, detail.employee_id, year, month,
                )
                detail.status = "failed"
                detail.reason = _failure_reason(exc)
                detail.credited = {}
                detail.not_eligible = []
                detail.already_credited = []
        return details

    @staticmethod
    async def _attach_remaining(
        db: AsyncSession,
        year: int,
        details: list[AccrualDetail],
    ) -> None:
        figures = await _figures_by_employee(db, year, [d.employee_id for d in details])
        for detail in details:
            for leave_type in _REMAINING_TYPES:
                fig = figures.get((detail.employee_id, leave_type), BalanceFigures())
                setattr(detail, f"{leave_type.value.lower()}_remaining", fig.remaining)

    @staticmethod
    def _tally(result: AccrualRunResult, details: list[AccrualDetail]) -> None:
        for detail in details:
            if detail.status == "skipped_inactive":
                result.skipped_inactive += 1
            elif detail.status == "failed":
                result.failed_count += 1
            elif detail.status == "credited":
                result.credited_count += 1
            result.skipped_not_eligible += len(detail.not_eligible)
            result.skipped_already_credited += len(detail.already_credited)

    @staticmethod
    async def _load_employees(db: AsyncSession) -> list[Employee]:
        result = await db.execute(select(Employee).order_by(Employee.emp_code))
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Runs
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def run_monthly_accrual(
        db: AsyncSession,
        month: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AccrualRunResult:
        """Credit every eligible active employee for ``YYYY-MM``."""

        year, month_no = parse_month(month)
        policy = await PolicyService.get_policy(db, year)
        employees = await AccrualService._load_employees(db)

        details = await AccrualService._run_month(
            db, employees, policy, year, month_no, actor_id,
        )
        await AccrualService._attach_remaining(db, year, details)

        result = AccrualRunResult(
            month=f"{year:04d}-{month_no:02d}",
            year=year,
            total_employees_processed=len(details),
            details=details,
        )
        AccrualService._tally(result, details)

        await create_audit_entry(
            db,
            action="run_monthly_accrual",
            entity_type="accrual",
            entity_id=result.month,
            actor_id=actor_id,
            new_values={
                "credited": result.credited_count,
                "already_credited": result.skipped_already_credited,
                "failed": result.failed_count,
            },
        )
        logger.info(
            "Monthly accrual %s: %d employees, %d credited, %d already credited, "
            "%d inactive, %d failed",
            result.month, result.total_employees_processed, result.credited_count,
            result.skipped_already_credited, result.skipped_inactive, result.failed_count,
        )
        return result

    @staticmethod
    async def run_yearly_accrual(
        db: AsyncSession,
        year: int,
        *,
        today: Optional[date] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AccrualRunResult:
        """Run every elapsed month of *year*; already-posted months are no-ops."""

        today = today or date.today()
        if year > today.year:
            raise ValidationException({"year": [f"Cannot accrue for future year {year}."]})
        months_run = 12 if year < today.year else today.month

        policy = await PolicyService.get_policy(db, year)
        employees = await AccrualService._load_employees(db)

        merged: dict[uuid.UUID, AccrualDetail] = {}
        result = AccrualRunResult(year=year, months_run=months_run)
        for month in range(1, months_run + 1):
            details = await AccrualService._run_month(
                db, employees, policy, year, month, actor_id,
            )
            for detail in details:
                result.skipped_not_eligible += len(detail.not_eligible)
                result.skipped_already_credited += len(detail.already_credited)
                summary = merged.setdefault(
                    detail.employee_id,
                    AccrualDetail(
                        employee_id=detail.employee_id,
                        emp_code=detail.emp_code,
                        name=detail.name,
                        status=detail.status,
                    ),
                )
                for leave_type, amount in detail.credited.items():
                    summary.credited[leave_type] = summary.credited.get(leave_type, ZERO_DAYS) + amount
                if detail.status == "failed":
                    summary.status = "failed"
                    summary.reason = detail.reason
                elif summary.status != "failed" and (
                    detail.status == "credited"
                    or (detail.status == "already_credited" and summary.status == "not_eligible")
                ):
                    summary.status = detail.status

        details = list(merged.values())
        for detail in details:
            if detail.status == "skipped_inactive":
                result.skipped_inactive += 1
            elif detail.status == "failed":
                result.failed_count += 1
            elif detail.credited:
                result.credited_count += 1
        await AccrualService._attach_remaining(db, year, details)
        result.details = details
        result.total_employees_processed = len(details)

        await create_audit_entry(
            db,
            action="run_yearly_accrual",
            entity_type="accrual",
            entity_id=year,
            actor_id=actor_id,
            new_values={
                "months_run": months_run,
                "credited": result.credited_count,
                "failed": result.failed_count,
            },
        )
        logger.info(
            "Yearly accrual %s (%d months): %d employees, %d credited, %d failed",
            year, months_run, result.total_employees_processed,
            result.credited_count, result.failed_count,
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_accrual_status(db: AsyncSession, year: int) -> AccrualStatus:
        """CL/SL/PL remaining and used per employee for *year*."""

        employees = await AccrualService._load_employees(db)
        figures = await _figures_by_employee(db, year, [e.id for e in employees])

        rows: list[AccrualStatusEmployee] = []
        for employee in employees:
            values: dict[str, Decimal] = {}
            for leave_type in _REMAINING_TYPES:
                fig = figures.get((employee.id, leave_type), BalanceFigures())
                prefix = leave_type.value.lower()
                values[f"{prefix}_remaining"] = fig.remaining
                values[f"{prefix}_used"] = fig.used
            rows.append(
                AccrualStatusEmployee(
                    employee_id=employee.id,
                    emp_code=employee.emp_code,
                    name=employee.name,
                    join_date=employee.join_date,
                    **values,
                )
            )
        return AccrualStatus(year=year, employees=rows, total=len(rows))
