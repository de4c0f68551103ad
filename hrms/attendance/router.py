"""Calendar and attendance router — holidays, restricted holidays, punch records.

Routes:
    /holidays                   — List (any user) / create (HR, ADMIN)
    /holidays/{id}              — Rename, move or deactivate (HR, ADMIN)
    /restricted-holidays        — Same, for the optional RH calendar
    /attendance                 — Punch records; non-HR callers see only their own
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.attendance.models import Holiday, RestrictedHoliday
from hrms.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordCreate,
    AttendanceRecordResponse,
    HolidayCreate,
    HolidayResponse,
    HolidayUpdate,
)
from hrms.attendance.service import AttendanceService, CalendarService
from hrms.auth.dependencies import get_current_user, require_role
from hrms.common.constants import LEAVE_APPROVER_OVERRIDE_ROLES, UserRole
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.database import get_db

holidays_router = APIRouter(prefix="", tags=["holidays"])
restricted_holidays_router = APIRouter(prefix="", tags=["restricted-holidays"])
attendance_router = APIRouter(prefix="", tags=["attendance"])

_calendar_admins = require_role(UserRole.hr, UserRole.admin)


# ── Public holidays ─────────────────────────────────────────────────

@holidays_router.get("", response_model=list[HolidayResponse])
async def list_holidays(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    include_inactive: bool = Query(False),
    _: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List public holidays, optionally for one year."""
    return await CalendarService.list_calendar(
        db, Holiday, year=year, include_inactive=include_inactive,
    )


@holidays_router.post("", response_model=HolidayResponse, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    actor: Employee = Depends(_calendar_admins),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarService.add_calendar_day(db, Holiday, body, actor_id=actor.id)


@holidays_router.patch("/{holiday_id}", response_model=HolidayResponse)
async def update_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    actor: Employee = Depends(_calendar_admins),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarService.update_calendar_day(
        db, Holiday, holiday_id, body, actor_id=actor.id,
    )


# ── Restricted holidays ─────────────────────────────────────────────

@restricted_holidays_router.get("", response_model=list[HolidayResponse])
async def list_restricted_holidays(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    include_inactive: bool = Query(False),
    _: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the days that may be taken as RH leave."""
    return await CalendarService.list_calendar(
        db, RestrictedHoliday, year=year, include_inactive=include_inactive,
    )


@restricted_holidays_router.post("", response_model=HolidayResponse, status_code=201)
async def create_restricted_holiday(
    body: HolidayCreate,
    actor: Employee = Depends(_calendar_admins),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarService.add_calendar_day(
        db, RestrictedHoliday, body, actor_id=actor.id,
    )


@restricted_holidays_router.patch("/{holiday_id}", response_model=HolidayResponse)
async def update_restricted_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    actor: Employee = Depends(_calendar_admins),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarService.update_calendar_day(
        db, RestrictedHoliday, holiday_id, body, actor_id=actor.id,
    )


# ── Attendance ──────────────────────────────────────────────────────

@attendance_router.get("", response_model=AttendanceListResponse)
async def list_attendance(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Punch records in a date window. HR, ADMIN and MD may pick any employee."""
    if employee.role not in LEAVE_APPROVER_OVERRIDE_ROLES:
        employee_id = employee.id
    return await AttendanceService.list_records(
        db,
        employee_id=employee_id,
        from_date=from_date,
        to_date=to_date,
        pagination=pagination,
    )


@attendance_router.post("", response_model=AttendanceRecordResponse, status_code=201)
async def record_attendance(
    body: AttendanceRecordCreate,
    actor: Employee = Depends(_calendar_admins),
    db: AsyncSession = Depends(get_db),
):
    """Enter a punch record by hand, e.g. for a missed biometric sync."""
    return await AttendanceService.record(db, body, actor_id=actor.id)
