"""Policy store tests — entitlement arithmetic, eligibility, upsert and audit."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.audit import AuditTrail
from hrms.common.constants import LeaveType
from hrms.common.exceptions import NotFoundException, ValidationException
from hrms.policy.models import LeavePolicy
from hrms.policy.schemas import PolicyUpsert
from hrms.policy.service import PolicyService
from tests.conftest import credit_leave, seed_employee


def _policy(**overrides) -> LeavePolicy:
    values = dict(
        year=2026,
        annual_pl=7,
        annual_cl=5,
        annual_sl=6,
        annual_rh=1,
        monthly_credit_pl=None,
        monthly_credit_cl=None,
        monthly_credit_sl=Decimal("0"),
        pl_eligibility_months=6,
        carry_forward_pl_max=4,
    )
    values.update(overrides)
    return LeavePolicy(**values)


# ═════════════════════════════════════════════════════════════════════
# Entitlement arithmetic
# ═════════════════════════════════════════════════════════════════════


class TestMonthlyCredit:

    def test_derived_rate_first_month(self):
        assert PolicyService.monthly_credit(_policy(), LeaveType.pl, 1) == Decimal("0.5833")

    def test_cumulative_rounding_sums_to_annual(self):
        policy = _policy()
        total = sum(
            (PolicyService.monthly_credit(policy, LeaveType.pl, m) for m in range(1, 13)),
            Decimal("0"),
        )
        assert total == Decimal("7.0000")

    def test_cl_derived_from_annual(self):
        total = sum(
            (PolicyService.monthly_credit(_policy(), LeaveType.cl, m) for m in range(1, 13)),
            Decimal("0"),
        )
        assert total == Decimal("5.0000")

    def test_configured_rate_is_used_verbatim(self):
        policy = _policy(monthly_credit_cl=Decimal("0.5"))
        assert PolicyService.monthly_credit(policy, LeaveType.cl, 3) == Decimal("0.5000")

    def test_zero_rate_makes_an_annual_grant(self):
        policy = _policy()
        assert PolicyService.monthly_credit(policy, LeaveType.sl, 5) == Decimal("0.0000")
        assert PolicyService.is_annual_grant(policy, LeaveType.sl) is True
        assert PolicyService.is_annual_grant(policy, LeaveType.rh) is True
        assert PolicyService.is_annual_grant(policy, LeaveType.pl) is False

    def test_annual_grant_pro_rated(self):
        policy = _policy()
        assert PolicyService.annual_grant(policy, LeaveType.sl, 1) == Decimal("6.0000")
        assert PolicyService.annual_grant(policy, LeaveType.sl, 7) == Decimal("3.0000")


class TestEligibility:

    def test_not_eligible_before_joining_month(self):
        assert PolicyService.is_eligible(
            _policy(), LeaveType.cl, date(2026, 3, 20), 2026, 2,
        ) is False

    def test_eligible_in_joining_month(self):
        assert PolicyService.is_eligible(
            _policy(), LeaveType.cl, date(2026, 3, 20), 2026, 3,
        ) is True

    def test_pl_waits_eligibility_window(self):
        policy = _policy()
        join = date(2026, 1, 1)
        assert PolicyService.is_eligible(policy, LeaveType.pl, join, 2026, 6) is False
        assert PolicyService.is_eligible(policy, LeaveType.pl, join, 2026, 7) is True

    def test_pl_mid_month_join_starts_following_month(self):
        policy = _policy()
        join = date(2026, 1, 15)
        assert PolicyService.first_eligible_month(policy, LeaveType.pl, join, 2026) == 8

    def test_allocated_for_year_after_late_join(self):
        policy = _policy()
        # Joined April: CL accrues April..December
        allocated = PolicyService.allocated_for_year(policy, LeaveType.cl, date(2026, 4, 1), 2026)
        assert allocated == Decimal("3.7500")

    def test_no_join_date_allocates_nothing(self):
        assert PolicyService.allocated_for_year(_policy(), LeaveType.cl, None, 2026) == Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# Store
# ═════════════════════════════════════════════════════════════════════


class TestPolicyStore:

    async def test_missing_year_is_not_found(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await PolicyService.get_policy(db, 2031)

    async def test_create_uses_defaults(self, db: AsyncSession):
        policy = await PolicyService.upsert_policy(db, 2027, PolicyUpsert())
        assert policy.revision == 1
        assert policy.annual_pl == 7
        assert policy.carry_forward_pl_max == 4
        assert policy.wfh_day_value == Decimal("0.5")

    async def test_update_bumps_revision_and_audits(self, db: AsyncSession):
        await PolicyService.upsert_policy(db, 2027, PolicyUpsert())
        policy = await PolicyService.upsert_policy(db, 2027, PolicyUpsert(annual_cl=8))
        assert policy.revision == 2
        assert policy.annual_cl == 8

        rows = (
            await db.execute(
                select(AuditTrail.action).where(AuditTrail.entity_type == "leave_policy")
            )
        ).scalars().all()
        assert sorted(rows) == ["create", "update"]

    async def test_edit_after_postings_is_allowed_and_flagged(self, db: AsyncSession):
        await PolicyService.upsert_policy(db, 2026, PolicyUpsert())
        emp = await seed_employee(db)
        await credit_leave(db, emp.id, LeaveType.cl, "5")

        policy = await PolicyService.upsert_policy(db, 2026, PolicyUpsert(annual_cl=6))
        assert policy.annual_cl == 6

        actions = (
            await db.execute(
                select(AuditTrail.action).where(AuditTrail.entity_type == "leave_policy")
            )
        ).scalars().all()
        assert "update_after_posting" in actions

    async def test_out_of_range_year_rejected(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await PolicyService.upsert_policy(db, 1999, PolicyUpsert())
