"""Policy store — per-year leave configuration and the entitlement arithmetic
derived from it (monthly credit, annual grants, eligibility windows).

Edits to a year that already has posted ledger transactions are accepted:
the ledger keeps what was posted, new runs use the new values. Every edit
is audited with its before/after values.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date
from decimal import Decimal
from fractions import Fraction
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.audit import create_audit_entry
from hrms.common.constants import ZERO_DAYS, LeaveType, quantize_days
from hrms.common.exceptions import NotFoundException, ValidationException
from hrms.ledger.models import LeaveTransaction
from hrms.policy.models import LeavePolicy
from hrms.policy.schemas import PolicyUpsert

logger = logging.getLogger(__name__)

_ANNUAL_FIELDS = {
    LeaveType.pl: "annual_pl",
    LeaveType.cl: "annual_cl",
    LeaveType.sl: "annual_sl",
    LeaveType.rh: "annual_rh",
}
_MONTHLY_FIELDS = {
    LeaveType.pl: "monthly_credit_pl",
    LeaveType.cl: "monthly_credit_cl",
    LeaveType.sl: "monthly_credit_sl",
}


def _to_decimal(value: Fraction) -> Decimal:
    return quantize_days(Decimal(value.numerator) / Decimal(value.denominator))


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


class PolicyService:
    """Async policy CRUD plus pure entitlement helpers."""

    # ─────────────────────────────────────────────────────────────────
    # Store
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def find_policy(db: AsyncSession, year: int) -> Optional[LeavePolicy]:
        result = await db.execute(select(LeavePolicy).where(LeavePolicy.year == year))
        return result.scalars().first()

    @staticmethod
    async def get_policy(db: AsyncSession, year: int) -> LeavePolicy:
        """Return the policy for *year*; a missing year is a 404."""
        policy = await PolicyService.find_policy(db, year)
        if policy is None:
            raise NotFoundException("LeavePolicy", year)
        return policy

    @staticmethod
    async def has_posted_transactions(db: AsyncSession, year: int) -> bool:
        result = await db.execute(
            select(func.count()).select_from(LeaveTransaction).where(
                LeaveTransaction.year == year,
            )
        )
        return result.scalar_one() > 0

    @staticmethod
    async def upsert_policy(
        db: AsyncSession,
        year: int,
        data: PolicyUpsert,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeavePolicy:
        """Create or replace the policy for *year*."""

        if year < 2000 or year > 2100:
            raise ValidationException({"year": [f"Year {year} is out of range."]})

        values = data.model_dump()
        policy = await PolicyService.find_policy(db, year)

        if policy is None:
            policy = LeavePolicy(year=year, updated_by=actor_id, revision=1, **values)
            db.add(policy)
            await db.flush()
            await create_audit_entry(
                db,
                action="create",
                entity_type="leave_policy",
                entity_id=year,
                actor_id=actor_id,
                new_values=values,
            )
            logger.info("Created leave policy for %s", year)
            return policy

        old_values = {field: getattr(policy, field) for field in values}
        posted = await PolicyService.has_posted_transactions(db, year)
        if posted:
            logger.warning(
                "Leave policy %s edited after ledger postings; change applies to future runs only",
                year,
            )

        for field, value in values.items():
            setattr(policy, field, value)
        policy.revision = (policy.revision or 0) + 1
        policy.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update_after_posting" if posted else "update",
            entity_type="leave_policy",
            entity_id=year,
            actor_id=actor_id,
            old_values=old_values,
            new_values=values,
        )
        return policy

    # ─────────────────────────────────────────────────────────────────
    # Entitlement arithmetic (pure)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def annual_entitlement(policy: LeavePolicy, leave_type: LeaveType) -> int:
        field = _ANNUAL_FIELDS.get(leave_type)
        return int(getattr(policy, field) or 0) if field else 0

    @staticmethod
    def monthly_rate(policy: LeavePolicy, leave_type: LeaveType) -> Fraction:
        """Exact days credited per month; zero for annually granted types."""
        field = _MONTHLY_FIELDS.get(leave_type)
        if field is None:
            return Fraction(0)
        configured = getattr(policy, field)
        if configured is None:
            return Fraction(PolicyService.annual_entitlement(policy, leave_type), 12)
        return Fraction(str(configured))

    @staticmethod
    def is_annual_grant(policy: LeavePolicy, leave_type: LeaveType) -> bool:
        return (
            PolicyService.monthly_rate(policy, leave_type) == 0
            and PolicyService.annual_entitlement(policy, leave_type) > 0
        )

    @staticmethod
    def monthly_credit(policy: LeavePolicy, leave_type: LeaveType, month: int) -> Decimal:
        """Credit for calendar *month*, rounded cumulatively.

        Each month gets ``round(rate × m) − round(rate × (m − 1))`` so twelve
        months of a derived rate add up to the annual entitlement exactly.
        """
        rate = PolicyService.monthly_rate(policy, leave_type)
        return _to_decimal(rate * month) - _to_decimal(rate * (month - 1))

    @staticmethod
    def annual_grant(policy: LeavePolicy, leave_type: LeaveType, from_month: int) -> Decimal:
        """Annual grant pro-rated to the months remaining from *from_month*."""
        annual = PolicyService.annual_entitlement(policy, leave_type)
        months = 13 - from_month
        return _to_decimal(Fraction(annual * months, 12))

    @staticmethod
    def is_eligible(
        policy: LeavePolicy,
        leave_type: LeaveType,
        join_date: date,
        year: int,
        month: int,
    ) -> bool:
        """Whether *leave_type* accrues for an employee in the given month.

        Everyone accrues from their joining month; PL additionally waits
        ``pl_eligibility_months`` after joining.
        """
        first_day, last_day = month_bounds(year, month)
        if join_date > last_day:
            return False
        if leave_type == LeaveType.pl:
            eligible_on = join_date + relativedelta(months=policy.pl_eligibility_months)
            return eligible_on <= first_day
        return True

    @staticmethod
    def first_eligible_month(
        policy: LeavePolicy,
        leave_type: LeaveType,
        join_date: Optional[date],
        year: int,
    ) -> Optional[int]:
        if join_date is None:
            return None
        for month in range(1, 13):
            if PolicyService.is_eligible(policy, leave_type, join_date, year, month):
                return month
        return None

    @staticmethod
    def allocated_for_year(
        policy: LeavePolicy,
        leave_type: LeaveType,
        join_date: Optional[date],
        year: int,
    ) -> Decimal:
        """Full-year entitlement pro-rated by the employee's eligible months."""
        start = PolicyService.first_eligible_month(policy, leave_type, join_date, year)
        if start is None:
            return ZERO_DAYS
        if PolicyService.is_annual_grant(policy, leave_type):
            return PolicyService.annual_grant(policy, leave_type, start)
        rate = PolicyService.monthly_rate(policy, leave_type)
        return _to_decimal(rate * 12) - _to_decimal(rate * (start - 1))
