"""Ledger and balance Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from hrms.common.constants import LeaveType, LedgerAction


# ═════════════════════════════════════════════════════════════════════
# Transactions
# ═════════════════════════════════════════════════════════════════════


class TransactionOut(BaseModel):
    """One ledger row as shown on the admin transactions screen."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_id: Optional[uuid.UUID] = None
    compoff_request_id: Optional[uuid.UUID] = None
    year: int
    leave_type: LeaveType
    delta_days: Decimal
    action: LedgerAction
    remarks: Optional[str] = None
    action_by_employee_id: Optional[uuid.UUID] = None
    action_at: datetime
    accrual_month: Optional[int] = None
    expires_on: Optional[date] = None

    @classmethod
    def from_row(cls, row) -> "TransactionOut":
        out = cls.model_validate(row)
        out.leave_id = row.leave_request_id
        return out


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BalanceOut(BaseModel):
    """Projection of the ledger for one employee × year × leave type."""

    employee_id: uuid.UUID
    year: int
    leave_type: LeaveType
    allocated: Decimal = Decimal("0")
    opening: Decimal = Decimal("0")
    accrued: Decimal = Decimal("0")
    used: Decimal = Decimal("0")
    lapsed: Decimal = Decimal("0")
    encashed: Decimal = Decimal("0")
    carried_out: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")
    eligible: bool = False


class AdminBalanceItem(BaseModel):
    employee_id: uuid.UUID
    employee_name: str
    emp_code: str
    department_name: Optional[str] = None
    leave_type: LeaveType
    allocated: Decimal
    opening: Decimal
    accrued: Decimal
    used: Decimal
    remaining: Decimal


class AdminBalancesResponse(BaseModel):
    year: int
    items: list[AdminBalanceItem]
    total: int


class TransactionsResponse(BaseModel):
    items: list[TransactionOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Comp-off
# ═════════════════════════════════════════════════════════════════════


class CompoffBalanceOut(BaseModel):
    employee_id: uuid.UUID
    credits: Decimal = Decimal("0")
    debits: Decimal = Decimal("0")
    expired_credits: Decimal = Decimal("0")
    available_days: Decimal = Decimal("0")
