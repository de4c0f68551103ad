"""Ledger service — append-only postings and the balance projection.

Business logic:
  - ``post_transaction`` is the only writer of ``leave_transactions``
  - balances are folded from ledger rows in Python ``Decimal``; nothing
    stores a running balance
  - a ``dedup_key`` makes a posting idempotent: the unique constraint is
    hit inside a SAVEPOINT, so check-and-insert is a single atomic step
  - comp-off debits draw from credits still valid when posted, soonest
    expiry first; unconsumed credits past their expiry count as expired
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.common.constants import (
    DEFAULT_TRANSACTION_LIMIT,
    LEDGER_LEAVE_TYPES,
    ZERO_DAYS,
    LeaveType,
    LedgerAction,
    quantize_days,
)
from hrms.common.exceptions import NotFoundException, ValidationException
from hrms.core_hr.models import Employee
from hrms.ledger.models import LeaveTransaction
from hrms.ledger.schemas import (
    AdminBalanceItem,
    AdminBalancesResponse,
    BalanceOut,
    CompoffBalanceOut,
    TransactionOut,
    TransactionsResponse,
)
from hrms.policy.models import LeavePolicy
from hrms.policy.service import PolicyService

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# Projection (pure)
# ═════════════════════════════════════════════════════════════════════


@dataclass
class BalanceFigures:
    opening: Decimal = ZERO_DAYS
    accrued: Decimal = ZERO_DAYS
    debited: Decimal = ZERO_DAYS
    reversed: Decimal = ZERO_DAYS
    lapsed: Decimal = ZERO_DAYS
    encashed: Decimal = ZERO_DAYS
    carried_out: Decimal = ZERO_DAYS
    remaining: Decimal = ZERO_DAYS

    @property
    def used(self) -> Decimal:
        """Net days consumed: debits minus the reversals that undid them."""
        return self.debited - self.reversed


def fold_transactions(rows: Iterable[LeaveTransaction]) -> BalanceFigures:
    """Fold ledger rows for one employee × year × type into balance figures."""
    figures = BalanceFigures()
    for row in rows:
        delta = Decimal(row.delta_days)
        figures.remaining += delta
        if row.action in (LedgerAction.accrue_monthly, LedgerAction.accrue_annual):
            figures.accrued += delta
        elif row.action == LedgerAction.debit_approved:
            figures.debited += -delta
        elif row.action == LedgerAction.credit_reversed:
            figures.reversed += delta
        elif row.action == LedgerAction.carry_forward:
            if delta > 0:
                figures.opening += delta
            else:
                figures.carried_out += -delta
        elif row.action == LedgerAction.lapse:
            figures.lapsed += -delta
        elif row.action == LedgerAction.encashment:
            figures.encashed += -delta
        elif row.action == LedgerAction.compoff_credit:
            figures.accrued += delta

    for field in (
        "opening", "accrued", "debited", "reversed",
        "lapsed", "encashed", "carried_out", "remaining",
    ):
        setattr(figures, field, quantize_days(getattr(figures, field)))
    return figures


def _posted_on(row: LeaveTransaction) -> Optional[date]:
    return row.action_at.date() if row.action_at is not None else None


def fold_compoff(
    rows: Iterable[LeaveTransaction],
    today: date,
) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(credits, debits, expired)`` for comp-off ledger rows.

    Debits are replayed in posting order and draw from the credits still
    valid on their posting date, soonest expiry first. A reversal hands
    days back to the credits most recently drawn from.
    """
    credits = sorted(
        (r for r in rows if r.action == LedgerAction.compoff_credit),
        key=lambda c: c.expires_on or date.max,
    )
    movements = sorted(
        (r for r in rows if r.action in (LedgerAction.debit_approved, LedgerAction.credit_reversed)),
        key=lambda r: _posted_on(r) or date.min,
    )

    unused = [Decimal(c.delta_days) for c in credits]
    drawn: list[tuple[int, Decimal]] = []
    net_debits = ZERO_DAYS
    for row in movements:
        delta = Decimal(row.delta_days)
        if row.action == LedgerAction.debit_approved:
            net_debits += -delta
            wanted = -delta
            posted_on = _posted_on(row)
            for i, credit in enumerate(credits):
                if wanted <= ZERO_DAYS:
                    break
                if posted_on is not None and credit.expires_on is not None \
                        and credit.expires_on < posted_on:
                    continue
                take = min(unused[i], wanted)
                if take > ZERO_DAYS:
                    unused[i] -= take
                    wanted -= take
                    drawn.append((i, take))
        else:
            net_debits -= delta
            give_back = delta
            while give_back > ZERO_DAYS and drawn:
                i, take = drawn.pop()
                back = min(take, give_back)
                unused[i] += back
                give_back -= back
                if back < take:
                    drawn.append((i, take - back))

    total_credits = sum((Decimal(c.delta_days) for c in credits), ZERO_DAYS)
    expired = sum(
        (
            unused[i]
            for i, credit in enumerate(credits)
            if credit.expires_on is not None and credit.expires_on < today
        ),
        ZERO_DAYS,
    )

    return (
        quantize_days(total_credits),
        quantize_days(net_debits),
        quantize_days(expired),
    )


# ═════════════════════════════════════════════════════════════════════
# LedgerService
# ═════════════════════════════════════════════════════════════════════


class LedgerService:
    """Async ledger writes and balance reads."""

    # ─────────────────────────────────────────────────────────────────
    # Write
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def post_transaction(
        db: AsyncSession,
        *,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        delta_days: Decimal,
        action: LedgerAction,
        actor_id: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
        leave_request_id: Optional[uuid.UUID] = None,
        compoff_request_id: Optional[uuid.UUID] = None,
        accrual_month: Optional[int] = None,
        expires_on: Optional[date] = None,
        dedup_key: Optional[str] = None,
    ) -> Optional[LeaveTransaction]:
        """Append one ledger row.

        Returns the new row, or ``None`` when *dedup_key* was already posted.
        Raises NotFoundException for an unknown employee or an unconfigured
        year (comp-off postings are not tied to a policy year).
        """

        if leave_type == LeaveType.lwp:
            raise ValidationException(
                {"leave_type": ["Leave without pay is never posted to the ledger."]}
            )

        emp_check = await db.execute(select(Employee.id).where(Employee.id == employee_id))
        if emp_check.scalar() is None:
            raise NotFoundException("Employee", str(employee_id))

        if leave_type in LEDGER_LEAVE_TYPES:
            await PolicyService.get_policy(db, year)

        tx = LeaveTransaction(
            employee_id=employee_id,
            year=year,
            leave_type=leave_type,
            delta_days=quantize_days(delta_days),
            action=action,
            remarks=remarks,
            action_by_employee_id=actor_id,
            action_at=datetime.now(timezone.utc),
            leave_request_id=leave_request_id,
            compoff_request_id=compoff_request_id,
            accrual_month=accrual_month,
            expires_on=expires_on,
            dedup_key=dedup_key,
        )

        if dedup_key is None:
            db.add(tx)
            await db.flush()
            return tx

        try:
            async with db.begin_nested():
                db.add(tx)
                await db.flush()
        except IntegrityError:
            existing = await db.execute(
                select(LeaveTransaction.id).where(LeaveTransaction.dedup_key == dedup_key)
            )
            if existing.scalar() is None:
                raise
            logger.debug("Ledger posting %s already exists; skipped", dedup_key)
            return None
        return tx

    @staticmethod
    async def has_posting(db: AsyncSession, dedup_key: str) -> bool:
        result = await db.execute(
            select(LeaveTransaction.id).where(LeaveTransaction.dedup_key == dedup_key)
        )
        return result.scalar() is not None

    # ─────────────────────────────────────────────────────────────────
    # Read: transactions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _rows(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: Optional[LeaveType] = None,
    ) -> Sequence[LeaveTransaction]:
        query = select(LeaveTransaction).where(
            LeaveTransaction.employee_id == employee_id,
            LeaveTransaction.year == year,
        )
        if leave_type is not None:
            query = query.where(LeaveTransaction.leave_type == leave_type)
        return (await db.execute(query.order_by(LeaveTransaction.action_at))).scalars().all()

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        limit: int = DEFAULT_TRANSACTION_LIMIT,
        *,
        leave_type: Optional[LeaveType] = None,
    ) -> TransactionsResponse:
        """Ledger rows newest first."""
        query = select(LeaveTransaction).where(
            LeaveTransaction.employee_id == employee_id,
            LeaveTransaction.year == year,
        )
        if leave_type is not None:
            query = query.where(LeaveTransaction.leave_type == leave_type)

        count_q = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.order_by(LeaveTransaction.action_at.desc(), LeaveTransaction.id.desc())
                .limit(limit)
            )
        ).scalars().all()
        return TransactionsResponse(
            items=[TransactionOut.from_row(r) for r in rows],
            total=total,
        )

    # ─────────────────────────────────────────────────────────────────
    # Read: balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _balance_out(
        employee: Optional[Employee],
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        figures: BalanceFigures,
        policy: Optional[LeavePolicy],
    ) -> BalanceOut:
        allocated = ZERO_DAYS
        eligible = False
        if policy is not None and employee is not None:
            allocated = PolicyService.allocated_for_year(
                policy, leave_type, employee.join_date, year,
            )
            eligible = (
                PolicyService.first_eligible_month(
                    policy, leave_type, employee.join_date, year,
                )
                is not None
            )
        return BalanceOut(
            employee_id=employee_id,
            year=year,
            leave_type=leave_type,
            allocated=allocated,
            opening=figures.opening,
            accrued=figures.accrued,
            used=quantize_days(figures.used),
            lapsed=figures.lapsed,
            encashed=figures.encashed,
            carried_out=figures.carried_out,
            remaining=figures.remaining,
            eligible=eligible,
        )

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
    ) -> BalanceOut:
        """Fold the ledger for one key; an empty ledger yields zeros."""
        rows = await LedgerService._rows(db, employee_id, year, leave_type)
        employee = await db.get(Employee, employee_id)
        policy = await PolicyService.find_policy(db, year)
        return LedgerService._balance_out(
            employee, employee_id, year, leave_type, fold_transactions(rows), policy,
        )

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[BalanceOut]:
        """All ledger leave types for an employee in a year."""
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        policy = await PolicyService.find_policy(db, year)

        grouped: dict[LeaveType, list[LeaveTransaction]] = defaultdict(list)
        for row in await LedgerService._rows(db, employee_id, year):
            grouped[row.leave_type].append(row)

        return [
            LedgerService._balance_out(
                employee, employee_id, year, lt, fold_transactions(grouped[lt]), policy,
            )
            for lt in LEDGER_LEAVE_TYPES
        ]

    @staticmethod
    async def get_admin_balances(
        db: AsyncSession,
        year: int,
        *,
        department_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> AdminBalancesResponse:
        """Per-employee-per-type balance rows for the admin console."""

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
            return AdminBalancesResponse(year=year, items=[], total=0)

        policy = await PolicyService.find_policy(db, year)
        tx_rows = (
            await db.execute(
                select(LeaveTransaction).where(
                    LeaveTransaction.year == year,
                    LeaveTransaction.employee_id.in_([e.id for e in employees]),
                    LeaveTransaction.leave_type.in_(LEDGER_LEAVE_TYPES),
                )
            )
        ).scalars().all()

        grouped: dict[tuple[uuid.UUID, LeaveType], list[LeaveTransaction]] = defaultdict(list)
        for row in tx_rows:
            grouped[(row.employee_id, row.leave_type)].append(row)

        items: list[AdminBalanceItem] = []
        for emp in employees:
            for lt in LEDGER_LEAVE_TYPES:
                bal = LedgerService._balance_out(
                    emp, emp.id, year, lt, fold_transactions(grouped[(emp.id, lt)]), policy,
                )
                items.append(
                    AdminBalanceItem(
                        employee_id=emp.id,
                        employee_name=emp.name,
                        emp_code=emp.emp_code,
                        department_name=emp.department.name if emp.department else None,
                        leave_type=lt,
                        allocated=bal.allocated,
                        opening=bal.opening,
                        accrued=bal.accrued,
                        used=bal.used,
                        remaining=bal.remaining,
                    )
                )
        return AdminBalancesResponse(year=year, items=items, total=len(items))

    # ─────────────────────────────────────────────────────────────────
    # Read: comp-off
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_compoff_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> CompoffBalanceOut:
        today = today or date.today()
        rows = (
            await db.execute(
                select(LeaveTransaction).where(
                    LeaveTransaction.employee_id == employee_id,
                    LeaveTransaction.leave_type == LeaveType.compoff,
                )
            )
        ).scalars().all()
        credits, debits, expired = fold_compoff(rows, today)
        return CompoffBalanceOut(
            employee_id=employee_id,
            credits=credits,
            debits=debits,
            expired_credits=expired,
            available_days=quantize_days(credits - debits - expired),
        )
