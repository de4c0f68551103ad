"""Accrual run Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

AccrualOutcome = Literal[
    "credited",
    "already_credited",
    "not_eligible",
    "skipped_inactive",
    "failed",
]


class AccrualDetail(BaseModel):
    """Outcome of one employee in an accrual run."""

    employee_id: uuid.UUID
    emp_code: str
    name: str
    status: AccrualOutcome
    credited: dict[str, Decimal] = Field(default_factory=dict)
    not_eligible: list[str] = Field(default_factory=list)
    already_credited: list[str] = Field(default_factory=list)
    reason: Optional[str] = None
    cl_remaining: Optional[Decimal] = None
    sl_remaining: Optional[Decimal] = None
    pl_remaining: Optional[Decimal] = None


class AccrualRunResult(BaseModel):
    month: Optional[str] = None
    year: int
    months_run: Optional[int] = None
    total_employees_processed: int = 0
    credited_count: int = 0
    skipped_not_eligible: int = 0
    skipped_inactive: int = 0
    skipped_already_credited: int = 0
    failed_count: int = 0
    details: list[AccrualDetail] = Field(default_factory=list)


class AccrualStatusEmployee(BaseModel):
    employee_id: uuid.UUID
    emp_code: str
    name: str
    join_date: Optional[date] = None
    cl_remaining: Decimal = Decimal("0")
    sl_remaining: Decimal = Decimal("0")
    pl_remaining: Decimal = Decimal("0")
    cl_used: Decimal = Decimal("0")
    sl_used: Decimal = Decimal("0")
    pl_used: Decimal = Decimal("0")


class AccrualStatus(BaseModel):
    year: int
    employees: list[AccrualStatusEmployee]
    total: int
