"""Holiday calendars and attendance records.

The lookups at the top feed leave counting, RH validation and comp-off
eligibility; the maintenance methods below back the calendar and attendance
endpoints and write an audit entry for every change.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.attendance.models import AttendanceLog, Holiday, RestrictedHoliday
from hrms.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordCreate,
    AttendanceRecordResponse,
    HolidayCreate,
    HolidayUpdate,
)
from hrms.common.audit import create_audit_entry
from hrms.common.exceptions import ConflictError, NotFoundException
from hrms.common.pagination import PaginationParams, fetch_page
from hrms.config import settings
from hrms.core_hr.models import Employee

CalendarModel = Union[type[Holiday], type[RestrictedHoliday]]

_ENTITY_TYPES = {Holiday: "holiday", RestrictedHoliday: "restricted_holiday"}


class CalendarService:
    """Holiday calendars and attendance presence checks."""

    @staticmethod
    def weekly_offs() -> set[int]:
        """Weekday numbers (0=Mon … 6=Sun) that are weekly offs company-wide."""
        return settings.weekly_off_days

    @staticmethod
    async def get_holiday_dates(
        db: AsyncSession,
        from_date: date,
        to_date: date,
    ) -> set[date]:
        """Active public holidays in the inclusive range."""
        result = await db.execute(
            select(Holiday.date).where(
                Holiday.active.is_(True),
                Holiday.date >= from_date,
                Holiday.date <= to_date,
            )
        )
        return {row[0] for row in result.all()}

    @staticmethod
    async def is_restricted_holiday(db: AsyncSession, day: date) -> bool:
        result = await db.execute(
            select(RestrictedHoliday.id).where(
                RestrictedHoliday.date == day,
                RestrictedHoliday.active.is_(True),
            )
        )
        return result.scalar() is not None

    @staticmethod
    async def is_non_working_day(db: AsyncSession, day: date) -> bool:
        """Weekly off or active public holiday."""
        if day.weekday() in CalendarService.weekly_offs():
            return True
        return day in await CalendarService.get_holiday_dates(db, day, day)

    @staticmethod
    async def has_attendance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> bool:
        result = await db.execute(
            select(AttendanceLog.id).where(
                AttendanceLog.employee_id == employee_id,
                AttendanceLog.punch_date == day,
            )
        )
        return result.scalar() is not None

    # ── Calendar maintenance ────────────────────────────────────────

    @staticmethod
    async def list_calendar(
        db: AsyncSession,
        model: CalendarModel,
        *,
        year: Optional[int] = None,
        include_inactive: bool = False,
    ) -> list:
        query = select(model).order_by(model.date)
        if year is not None:
            query = query.where(model.year == year)
        if not include_inactive:
            query = query.where(model.active.is_(True))
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def _get_calendar_day(db: AsyncSession, model: CalendarModel, day_id: uuid.UUID):
        entry = await db.get(model, day_id)
        if entry is None:
            raise NotFoundException(model.__name__, str(day_id))
        return entry

    @staticmethod
    async def _ensure_date_free(
        db: AsyncSession,
        model: CalendarModel,
        day: date,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(model.id).where(model.date == day)
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise ConflictError("date", day.isoformat())

    @staticmethod
    async def add_calendar_day(
        db: AsyncSession,
        model: CalendarModel,
        data: HolidayCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ):
        """Add a day to *model*'s calendar; the year is taken from the date."""
        await CalendarService._ensure_date_free(db, model, data.date)

        entry = model(year=data.date.year, name=data.name, date=data.date, active=data.active)
        db.add(entry)
        await db.flush()
        await db.refresh(entry)

        await create_audit_entry(
            db,
            action="create",
            entity_type=_ENTITY_TYPES[model],
            entity_id=entry.id,
            actor_id=actor_id,
            new_values=data.model_dump(),
        )
        return entry

    @staticmethod
    async def update_calendar_day(
        db: AsyncSession,
        model: CalendarModel,
        day_id: uuid.UUID,
        data: HolidayUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ):
        """Rename, move or (de)activate a calendar day.

        Leave already approved across a day keeps the count it was approved
        with; only later requests see the change.
        """
        entry = await CalendarService._get_calendar_day(db, model, day_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return entry

        if "date" in changes and changes["date"] != entry.date:
            await CalendarService._ensure_date_free(db, model, changes["date"], exclude_id=entry.id)

        old_values = {field: getattr(entry, field) for field in changes}
        for field, value in changes.items():
            setattr(entry, field, value)
        entry.year = entry.date.year
        await db.flush()
        await db.refresh(entry)

        await create_audit_entry(
            db,
            action="update",
            entity_type=_ENTITY_TYPES[model],
            entity_id=entry.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=changes,
        )
        return entry


class AttendanceService:
    """Punch records consulted for comp-off eligibility."""

    @staticmethod
    async def list_records(
        db: AsyncSession,
        *,
        employee_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        pagination: Optional[PaginationParams] = None,
    ) -> AttendanceListResponse:
        query = select(AttendanceLog)
        if employee_id is not None:
            query = query.where(AttendanceLog.employee_id == employee_id)
        if from_date is not None:
            query = query.where(AttendanceLog.punch_date >= from_date)
        if to_date is not None:
            query = query.where(AttendanceLog.punch_date <= to_date)

        rows, total = await fetch_page(
            db,
            query.order_by(AttendanceLog.punch_date.desc(), AttendanceLog.employee_id),
            pagination,
        )
        return AttendanceListResponse(
            items=[AttendanceRecordResponse.model_validate(r) for r in rows],
            total=total,
        )

    @staticmethod
    async def record(
        db: AsyncSession,
        data: AttendanceRecordCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AttendanceLog:
        """Store one punch record; an employee has at most one per day."""
        if await db.get(Employee, data.employee_id) is None:
            raise NotFoundException("Employee", str(data.employee_id))
        if await CalendarService.has_attendance(db, data.employee_id, data.punch_date):
            raise ConflictError("punch_date", data.punch_date.isoformat())

        log = AttendanceLog(**data.model_dump())
        db.add(log)
        await db.flush()
        await db.refresh(log)

        await create_audit_entry(
            db,
            action="create",
            entity_type="attendance_log",
            entity_id=log.id,
            actor_id=actor_id,
            new_values=data.model_dump(),
        )
        return log
