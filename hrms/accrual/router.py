"""Accrual router — monthly / yearly credit runs and the per-employee status view."""


from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.accrual.schemas import AccrualRunResult, AccrualStatus
from hrms.accrual.service import AccrualService
from hrms.auth.dependencies import require_role
from hrms.common.constants import UserRole
from hrms.common.exceptions import ValidationException
from hrms.common.rate_limit import limiter
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.database import get_db

router = APIRouter(prefix="", tags=["accrual"])

_accrual_operators = require_role(UserRole.admin, UserRole.hr)


# ── POST /run ───────────────────────────────────────────────────────

@router.post("/run", response_model=AccrualRunResult)
@limiter.limit(settings.BATCH_RATE_LIMIT)
async def run_accrual(
    request: Request,
    month: Optional[str] = Query(None, description="YYYY-MM"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Employee = Depends(_accrual_operators),
    db: AsyncSession = Depends(get_db),
):
    """Run the monthly accrual for ``month`` or every elapsed month of ``year``."""
    if (month is None) == (year is None):
        raise ValidationException({"month": ["Provide exactly one of 'month' or 'year'."]})
    if month is not None:
        return await AccrualService.run_monthly_accrual(db, month, actor_id=actor.id)
    return await AccrualService.run_yearly_accrual(db, year, actor_id=actor.id)


# ── GET /status ─────────────────────────────────────────────────────

@router.get("/status", response_model=AccrualStatus)
async def accrual_status(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    _: Employee = Depends(_accrual_operators),
    db: AsyncSession = Depends(get_db),
):
    return await AccrualService.get_accrual_status(db, year or date.today().year)
