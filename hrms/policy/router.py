"""Policy router — per-year leave policy and the year-close trigger."""


from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_role
from hrms.common.constants import UserRole
from hrms.common.rate_limit import limiter
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.policy.schemas import PolicyResponse, PolicyUpsert
from hrms.policy.service import PolicyService
from hrms.year_close.schemas import YearCloseResult
from hrms.year_close.service import YearCloseService

router = APIRouter(prefix="", tags=["policy"])


# ── POST /year-close ────────────────────────────────────────────────
# Declared before /{year} so the literal path wins.

@router.post("/year-close", response_model=YearCloseResult)
@limiter.limit(settings.BATCH_RATE_LIMIT)
async def run_year_close(
    request: Request,
    year: int = Query(..., ge=2000, le=2100),
    actor: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Lapse CL/SL/RH, carry PL forward up to the cap and encash the excess."""
    return await YearCloseService.run_year_close(db, year, actor_id=actor.id)


# ── GET /{year} ─────────────────────────────────────────────────────

@router.get("/{year}", response_model=PolicyResponse)
async def get_policy(
    year: int,
    _: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Policy for a year; 404 when the year has not been configured."""
    return await PolicyService.get_policy(db, year)


# ── PUT /{year} ─────────────────────────────────────────────────────

@router.put("/{year}", response_model=PolicyResponse)
async def upsert_policy(
    year: int,
    body: PolicyUpsert,
    actor: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyService.upsert_policy(db, year, body, actor_id=actor.id)
