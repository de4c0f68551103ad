"""Comp-off tests — claims for worked off days, approval credit, expiry, usage."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import CompoffStatus, LeaveStatus, LeaveType, LedgerAction, UserRole
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    PolicyViolationException,
    ValidationException,
)
from hrms.compoff.schemas import CompoffRequestCreate
from hrms.compoff.service import CompoffService
from hrms.leave.schemas import LeaveRequestCreate
from hrms.leave.service import LeaveService
from hrms.ledger.models import LeaveTransaction
from hrms.ledger.service import LedgerService
from tests.conftest import seed_attendance, seed_employee, seed_holiday

SUNDAY = date(2026, 3, 8)
TODAY = date(2026, 3, 10)


async def _claim(db: AsyncSession, employee, worked: date = SUNDAY, today: date = TODAY):
    return await CompoffService.request_compoff(
        db, employee.id, CompoffRequestCreate(worked_date=worked, reason="Release weekend"), today=today,
    )


class TestCompoffRequest:

    async def test_claim_for_worked_sunday(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)

        claim = await _claim(db, emp)

        assert claim.status == CompoffStatus.pending
        assert claim.worked_date == SUNDAY

    async def test_claim_for_worked_holiday(self, db: AsyncSession, org):
        emp = org["employee"]
        holiday = date(2026, 3, 4)
        await seed_holiday(db, holiday, "Holi")
        await seed_attendance(db, emp.id, holiday)

        claim = await _claim(db, emp, holiday)
        assert claim.status == CompoffStatus.pending

    async def test_working_day_rejected(self, db: AsyncSession, org):
        emp = org["employee"]
        monday = date(2026, 3, 9)
        await seed_attendance(db, emp.id, monday)
        with pytest.raises(ValidationException):
            await _claim(db, emp, monday)

    async def test_attendance_required(self, db: AsyncSession, org):
        with pytest.raises(ValidationException):
            await _claim(db, org["employee"])

    async def test_future_date_rejected(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        with pytest.raises(ValidationException):
            await _claim(db, emp, SUNDAY, today=date(2026, 3, 7))

    async def test_duplicate_claim_conflicts(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        await _claim(db, emp)
        with pytest.raises(ConflictError):
            await _claim(db, emp)


class TestCompoffApproval:

    async def test_approve_credits_expiring_day(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)

        approved = await CompoffService.approve_compoff(db, claim.id, org["manager"])

        assert approved.status == CompoffStatus.approved
        assert approved.action_by_id == org["manager"].id
        credit = (
            await db.execute(
                select(LeaveTransaction).where(LeaveTransaction.compoff_request_id == claim.id)
            )
        ).scalars().one()
        assert credit.action == LedgerAction.compoff_credit
        assert credit.delta_days == Decimal("1.0000")
        assert credit.expires_on == date(2026, 5, 7)

        balance = await LedgerService.get_compoff_balance(db, emp.id, today=TODAY)
        assert balance.available_days == Decimal("1.0000")

    async def test_credit_expires(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.approve_compoff(db, claim.id, org["manager"])

        balance = await LedgerService.get_compoff_balance(db, emp.id, today=date(2026, 5, 8))
        assert balance.expired_credits == Decimal("1.0000")
        assert balance.available_days == Decimal("0.0000")

    async def test_hr_approves_any(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)

        approved = await CompoffService.approve_compoff(db, claim.id, org["hr"])
        assert approved.status == CompoffStatus.approved

    async def test_unrelated_manager_forbidden(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        outsider = await seed_employee(db, role=UserRole.manager, role_rank=4)

        with pytest.raises(ForbiddenException):
            await CompoffService.approve_compoff(db, claim.id, outsider)

    async def test_reject_posts_nothing(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)

        rejected = await CompoffService.reject_compoff(
            db, claim.id, org["manager"], remarks="Not pre-approved",
        )

        assert rejected.status == CompoffStatus.rejected
        assert rejected.action_remark == "Not pre-approved"
        balance = await LedgerService.get_compoff_balance(db, emp.id, today=TODAY)
        assert balance.credits == Decimal("0.0000")

    async def test_decided_claim_is_final(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.approve_compoff(db, claim.id, org["manager"])

        with pytest.raises(InvalidStateException):
            await CompoffService.approve_compoff(db, claim.id, org["manager"])
        with pytest.raises(InvalidStateException):
            await CompoffService.reject_compoff(db, claim.id, org["manager"])

    async def test_rejected_claim_still_holds_the_date(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.reject_compoff(db, claim.id, org["manager"], remarks="No")

        with pytest.raises(ConflictError):
            await _claim(db, emp)

    async def test_pending_list_scoped_to_reportees(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        await _claim(db, emp)
        outsider = await seed_employee(db, role=UserRole.manager, role_rank=4)

        assert (await CompoffService.list_pending(db, org["manager"])).total == 1
        assert (await CompoffService.list_pending(db, outsider)).total == 0
        assert (await CompoffService.list_pending(db, org["hr"])).total == 1
        assert (await CompoffService.list_for_employee(db, emp.id)).total == 1


class TestCompoffUsage:

    async def test_compoff_leave_consumes_credit(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.approve_compoff(db, claim.id, org["manager"])

        monday = date(2026, 3, 16)
        request = await LeaveService.submit(
            db,
            emp.id,
            LeaveRequestCreate(leave_type=LeaveType.compoff, from_date=monday, to_date=monday),
            actor=emp,
            today=TODAY,
        )
        assert request.paid_days == Decimal("1")
        assert request.status == LeaveStatus.pending

        await LeaveService.approve(db, request.id, org["manager"], today=TODAY)

        balance = await LedgerService.get_compoff_balance(db, emp.id, today=TODAY)
        assert balance.debits == Decimal("1.0000")
        assert balance.available_days == Decimal("0.0000")

    async def test_expired_credit_cannot_be_used(self, db: AsyncSession, org):
        org["policy"].allow_hr_override = False
        await db.flush()
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.approve_compoff(db, claim.id, org["manager"])

        later = date(2026, 5, 11)
        with pytest.raises(PolicyViolationException):
            await LeaveService.submit(
                db,
                emp.id,
                LeaveRequestCreate(leave_type=LeaveType.compoff, from_date=later, to_date=later),
                actor=emp,
                today=date(2026, 5, 10),
            )

    async def test_credit_expiring_while_pending_blocks_approval(self, db: AsyncSession, org):
        emp = org["employee"]
        await seed_attendance(db, emp.id, SUNDAY)
        claim = await _claim(db, emp)
        await CompoffService.approve_compoff(db, claim.id, org["manager"])

        wednesday = date(2026, 5, 6)
        request = await LeaveService.submit(
            db,
            emp.id,
            LeaveRequestCreate(leave_type=LeaveType.compoff, from_date=wednesday, to_date=wednesday),
            actor=emp,
            today=date(2026, 5, 4),
        )

        with pytest.raises(PolicyViolationException):
            await LeaveService.approve(db, request.id, org["manager"], today=date(2026, 5, 10))
        refreshed = await LeaveService._get_request(db, request.id)
        assert refreshed.status == LeaveStatus.pending
