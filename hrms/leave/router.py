"""Leave router — apply, approve/reject, cancel, balances, HR and admin views.

All endpoints require authentication. Approver/HR/admin endpoints enforce role checks;
per-request authority is decided in the service layer.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_role
from hrms.common.constants import (
    DEFAULT_TRANSACTION_LIMIT,
    LEAVE_APPROVER_OVERRIDE_ROLES,
    MAX_TRANSACTION_LIMIT,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hrms.common.exceptions import ForbiddenException
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.leave.schemas import (
    CompanyCancelRequest,
    LeaveApproveRequest,
    LeaveCancelRequest,
    LeaveListResponse,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
)
from hrms.leave.service import LeaveService
from hrms.ledger.schemas import AdminBalancesResponse, BalanceOut, TransactionsResponse
from hrms.ledger.service import LedgerService

router = APIRouter(prefix="", tags=["leave"])
hr_actions_router = APIRouter(prefix="", tags=["hr-actions"])
admin_router = APIRouter(prefix="", tags=["admin-leaves"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. HR may apply on behalf of another employee."""
    target_id = body.employee_id or employee.id
    if target_id != employee.id and employee.role != UserRole.hr:
        raise ForbiddenException(detail="Only HR can apply leave on behalf of another employee.")
    return await LeaveService.submit(db, target_id, body, actor=employee)


# ── POST /{id}/cancel ───────────────────────────────────────────────

@router.post("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw one of your own pending requests."""
    return await LeaveService.cancel(db, request_id, employee, remarks=body.remarks)


# ── GET /pending ────────────────────────────────────────────────────

@router.get("/pending", response_model=LeaveListResponse)
async def pending_leaves(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests the caller may act on."""
    return await LeaveService.list_pending(db, employee)


# ── GET /list ───────────────────────────────────────────────────────

@router.get("/list", response_model=LeaveListResponse)
async def list_leaves(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave requests in a date window.

    HR, ADMIN and MD see everyone; other callers see their own requests and
    those routed to them for approval.
    """
    visible_to = None if employee.role in LEAVE_APPROVER_OVERRIDE_ROLES else employee.id
    return await LeaveService.list_leaves(
        db,
        visible_to=visible_to,
        from_date=from_date,
        to_date=to_date,
        employee_id=employee_id,
        status=status,
        pagination=pagination,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[BalanceOut])
async def my_balances(
    year: Optional[int] = Query(None, description="Leave year; defaults to current year"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's CL/SL/PL/RH balances for a year."""
    return await LedgerService.get_balances(db, employee.id, year or date.today().year)


# ── POST /{id}/approve ──────────────────────────────────────────────

@router.post("/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request. Debits the paid days from the ledger."""
    return await LeaveService.approve(db, request_id, employee, remarks=body.remarks)


# ── POST /{id}/reject ───────────────────────────────────────────────

@router.post("/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending request. Remarks are mandatory."""
    return await LeaveService.reject(db, request_id, employee, body.remarks)


# ═════════════════════════════════════════════════════════════════════
# HR actions
# ═════════════════════════════════════════════════════════════════════

@hr_actions_router.post("/cancel-leave/{request_id}", response_model=LeaveRequestOut)
async def company_cancel_leave(
    request_id: uuid.UUID,
    body: CompanyCancelRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel an approved CL/PL leave on the company's behalf (HR only)."""
    return await LeaveService.company_cancel(
        db, request_id, employee, recredit=body.recredit, remarks=body.remarks,
    )


# ═════════════════════════════════════════════════════════════════════
# Admin balances
# ═════════════════════════════════════════════════════════════════════

_balance_viewers = require_role(UserRole.hr, UserRole.admin, UserRole.md)


@admin_router.get("/balances", response_model=AdminBalancesResponse)
async def admin_balances(
    year: int = Query(..., ge=2000, le=2100),
    department_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    _: Employee = Depends(_balance_viewers),
    db: AsyncSession = Depends(get_db),
):
    return await LedgerService.get_admin_balances(
        db, year, department_id=department_id, employee_id=employee_id,
    )


@admin_router.get("/balances/transactions", response_model=TransactionsResponse)
async def admin_balance_transactions(
    employee_id: uuid.UUID = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    leave_type: Optional[LeaveType] = Query(None),
    limit: int = Query(DEFAULT_TRANSACTION_LIMIT, ge=1, le=MAX_TRANSACTION_LIMIT),
    _: Employee = Depends(_balance_viewers),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows for one employee and year, newest first."""
    return await LedgerService.list_transactions(
        db, employee_id, year, limit, leave_type=leave_type,
    )
