"""Accrual engine tests — monthly and yearly runs, idempotency, batch isolation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.accrual.service import AccrualService, parse_month
from hrms.common.audit import AuditTrail
from hrms.common.constants import LeaveType, LedgerAction
from hrms.common.exceptions import NotFoundException, ValidationException
from hrms.ledger.models import LeaveTransaction
from hrms.ledger.service import LedgerService
from tests.conftest import seed_employee, seed_policy


def _detail(result, employee_id):
    return next(d for d in result.details if d.employee_id == employee_id)


class TestParseMonth:

    def test_valid(self):
        assert parse_month("2026-03") == (2026, 3)

    @pytest.mark.parametrize("value", ["2026-13", "2026-3", "March", ""])
    def test_invalid(self, value):
        with pytest.raises(ValidationException):
            parse_month(value)


class TestMonthlyAccrual:

    async def test_first_month_credits(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db, join_date=date(2024, 1, 15))

        result = await AccrualService.run_monthly_accrual(db, "2026-01")

        detail = _detail(result, emp.id)
        assert detail.status == "credited"
        assert detail.credited == {
            "CL": Decimal("0.4167"),
            "SL": Decimal("6.0000"),
            "PL": Decimal("0.5833"),
            "RH": Decimal("1.0000"),
        }
        assert detail.cl_remaining == Decimal("0.4167")
        assert result.credited_count == 1
        assert result.month == "2026-01"

    async def test_rerun_is_a_no_op(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db)

        await AccrualService.run_monthly_accrual(db, "2026-01")
        result = await AccrualService.run_monthly_accrual(db, "2026-01")

        detail = _detail(result, emp.id)
        assert detail.status == "already_credited"
        assert detail.credited == {}
        assert result.skipped_already_credited == 4
        rows = (
            await db.execute(select(LeaveTransaction).where(LeaveTransaction.employee_id == emp.id))
        ).scalars().all()
        assert len(rows) == 4

    async def test_annual_grant_posted_once_per_year(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db)

        await AccrualService.run_monthly_accrual(db, "2026-01")
        result = await AccrualService.run_monthly_accrual(db, "2026-02")

        detail = _detail(result, emp.id)
        assert detail.status == "credited"
        assert detail.credited == {"CL": Decimal("0.4166"), "PL": Decimal("0.5834")}
        assert sorted(detail.already_credited) == ["RH", "SL"]

        sl = await LedgerService.get_balance(db, emp.id, 2026, LeaveType.sl)
        assert sl.remaining == Decimal("6.0000")

    async def test_inactive_employee_skipped(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db, active=False)

        result = await AccrualService.run_monthly_accrual(db, "2026-01")

        assert _detail(result, emp.id).status == "skipped_inactive"
        assert result.skipped_inactive == 1
        assert result.credited_count == 0

    async def test_joiner_not_yet_eligible(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db, join_date=date(2026, 3, 10))

        result = await AccrualService.run_monthly_accrual(db, "2026-01")

        detail = _detail(result, emp.id)
        assert detail.status == "not_eligible"
        assert sorted(detail.not_eligible) == ["CL", "PL", "RH", "SL"]

    async def test_pl_withheld_during_eligibility_window(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db, join_date=date(2026, 1, 5))

        result = await AccrualService.run_monthly_accrual(db, "2026-02")

        detail = _detail(result, emp.id)
        assert detail.not_eligible == ["PL"]
        assert "CL" in detail.credited

    async def test_failure_is_isolated(self, db: AsyncSession):
        await seed_policy(db)
        broken = await seed_employee(db, name="No Join Date", join_date=None)
        healthy = await seed_employee(db, name="Healthy")

        result = await AccrualService.run_monthly_accrual(db, "2026-01")

        failed = _detail(result, broken.id)
        assert failed.status == "failed"
        assert "joining date" in failed.reason
        assert _detail(result, healthy.id).status == "credited"
        assert result.failed_count == 1
        assert result.credited_count == 1

    async def test_missing_policy(self, db: AsyncSession):
        await seed_employee(db)
        with pytest.raises(NotFoundException):
            await AccrualService.run_monthly_accrual(db, "2026-01")

    async def test_run_is_audited(self, db: AsyncSession):
        await seed_policy(db)
        await seed_employee(db)
        await AccrualService.run_monthly_accrual(db, "2026-01")

        entry = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "run_monthly_accrual"))
        ).scalars().first()
        assert entry is not None
        assert entry.entity_id == "2026-01"


class TestYearlyAccrual:

    async def test_runs_elapsed_months(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db)

        result = await AccrualService.run_yearly_accrual(db, 2026, today=date(2026, 3, 15))

        assert result.months_run == 3
        detail = _detail(result, emp.id)
        assert detail.status == "credited"
        assert detail.credited["CL"] == Decimal("1.2500")
        assert detail.credited["PL"] == Decimal("1.7500")
        assert detail.credited["SL"] == Decimal("6.0000")
        assert detail.cl_remaining == Decimal("1.2500")

    async def test_past_year_runs_twelve_months(self, db: AsyncSession):
        await seed_policy(db, 2025)
        emp = await seed_employee(db)

        result = await AccrualService.run_yearly_accrual(db, 2025, today=date(2026, 2, 1))

        assert result.months_run == 12
        pl = await LedgerService.get_balance(db, emp.id, 2025, LeaveType.pl)
        assert pl.remaining == Decimal("7.0000")

    async def test_late_joiner_annual_grant_pro_rated(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db, join_date=date(2026, 3, 10))

        await AccrualService.run_yearly_accrual(db, 2026, today=date(2026, 12, 31))

        grant = (
            await db.execute(
                select(LeaveTransaction).where(
                    LeaveTransaction.employee_id == emp.id,
                    LeaveTransaction.leave_type == LeaveType.sl,
                    LeaveTransaction.action == LedgerAction.accrue_annual,
                )
            )
        ).scalars().one()
        assert grant.delta_days == Decimal("5.0000")
        assert grant.accrual_month == 3

    async def test_rerun_posts_nothing_new(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db)

        await AccrualService.run_yearly_accrual(db, 2026, today=date(2026, 3, 15))
        result = await AccrualService.run_yearly_accrual(db, 2026, today=date(2026, 3, 15))

        detail = _detail(result, emp.id)
        assert detail.status == "already_credited"
        assert result.credited_count == 0

    async def test_future_year_rejected(self, db: AsyncSession):
        await seed_policy(db, 2027)
        with pytest.raises(ValidationException):
            await AccrualService.run_yearly_accrual(db, 2027, today=date(2026, 10, 1))


class TestAccrualStatus:

    async def test_status_reports_remaining_and_used(self, db: AsyncSession):
        await seed_policy(db)
        emp = await seed_employee(db)
        await AccrualService.run_monthly_accrual(db, "2026-01")
        await LedgerService.post_transaction(
            db,
            employee_id=emp.id,
            year=2026,
            leave_type=LeaveType.sl,
            delta_days=Decimal("-2"),
            action=LedgerAction.debit_approved,
        )

        status = await AccrualService.get_accrual_status(db, 2026)

        assert status.total == 1
        row = status.employees[0]
        assert row.sl_remaining == Decimal("4.0000")
        assert row.sl_used == Decimal("2.0000")
        assert row.join_date == date(2024, 1, 15)
