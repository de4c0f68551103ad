"""WFH router — request, approve/reject/cancel, and the admin quota views."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_role
from hrms.common.constants import DEFAULT_TRANSACTION_LIMIT, MAX_TRANSACTION_LIMIT, UserRole
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.wfh.schemas import (
    WfhActionRequest,
    WfhBalancesResponse,
    WfhListResponse,
    WfhRequestCreate,
    WfhRequestOut,
    WfhTransactionsResponse,
)
from hrms.wfh.service import WfhService

router = APIRouter(prefix="", tags=["wfh"])
admin_router = APIRouter(prefix="", tags=["admin-wfh"])


@router.post("/request", response_model=WfhRequestOut, status_code=201)
async def request_wfh(
    body: WfhRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.request_wfh(db, employee.id, body)


@router.get("/pending", response_model=WfhListResponse)
async def pending_wfh(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.list_pending(db, employee)


@router.post("/{request_id}/approve", response_model=WfhRequestOut)
async def approve_wfh(
    request_id: uuid.UUID,
    body: WfhActionRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.approve_wfh(db, request_id, employee, remarks=body.remarks)


@router.post("/{request_id}/reject", response_model=WfhRequestOut)
async def reject_wfh(
    request_id: uuid.UUID,
    body: WfhActionRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.reject_wfh(db, request_id, employee, remarks=body.remarks)


@router.post("/{request_id}/cancel", response_model=WfhRequestOut)
async def cancel_wfh(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own pending request, or an approved one that has not passed."""
    return await WfhService.cancel_wfh(db, request_id, employee)


# ═════════════════════════════════════════════════════════════════════
# Admin
# ═════════════════════════════════════════════════════════════════════

_balance_viewers = require_role(UserRole.hr, UserRole.admin, UserRole.md)


@admin_router.get("/balances", response_model=WfhBalancesResponse)
async def wfh_balances(
    year: int = Query(..., ge=2000, le=2100),
    department_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    _: Employee = Depends(_balance_viewers),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.get_wfh_balances(
        db, year, department_id=department_id, employee_id=employee_id,
    )


@admin_router.get("/balances/transactions", response_model=WfhTransactionsResponse)
async def wfh_transactions(
    employee_id: uuid.UUID = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    limit: int = Query(DEFAULT_TRANSACTION_LIMIT, ge=1, le=MAX_TRANSACTION_LIMIT),
    _: Employee = Depends(_balance_viewers),
    db: AsyncSession = Depends(get_db),
):
    return await WfhService.list_transactions(db, employee_id, year, limit)
