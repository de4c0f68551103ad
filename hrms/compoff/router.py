"""Comp-off router — claim, approve/reject, own history and balance."""


import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user
from hrms.compoff.schemas import (
    CompoffActionRequest,
    CompoffListResponse,
    CompoffRequestCreate,
    CompoffRequestOut,
)
from hrms.compoff.service import CompoffService
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.ledger.schemas import CompoffBalanceOut
from hrms.ledger.service import LedgerService

router = APIRouter(prefix="", tags=["compoff"])


@router.post("/request", response_model=CompoffRequestOut, status_code=201)
async def request_compoff(
    body: CompoffRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Claim a comp-off for a weekly off or holiday you worked on."""
    return await CompoffService.request_compoff(db, employee.id, body)


@router.get("/pending", response_model=CompoffListResponse)
async def pending_compoffs(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompoffService.list_pending(db, employee)


@router.get("/my-requests", response_model=CompoffListResponse)
async def my_compoffs(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompoffService.list_for_employee(db, employee.id)


@router.get("/balance", response_model=CompoffBalanceOut)
async def compoff_balance(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Available comp-off days after consumption and expiry."""
    return await LedgerService.get_compoff_balance(db, employee.id)


@router.post("/{request_id}/approve", response_model=CompoffRequestOut)
async def approve_compoff(
    request_id: uuid.UUID,
    body: CompoffActionRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompoffService.approve_compoff(db, request_id, employee, remarks=body.remarks)


@router.post("/{request_id}/reject", response_model=CompoffRequestOut)
async def reject_compoff(
    request_id: uuid.UUID,
    body: CompoffActionRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompoffService.reject_compoff(db, request_id, employee, remarks=body.remarks)
