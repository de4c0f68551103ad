"""WFH Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrms.common.constants import WfhAction, WfhStatus


class WfhRequestCreate(BaseModel):
    request_date: date
    reason: Optional[str] = Field(None, max_length=2000)


class WfhActionRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=2000)


class WfhRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    request_date: date
    reason: Optional[str] = None
    status: WfhStatus
    applied_at: datetime
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[uuid.UUID] = None
    rejected_at: Optional[datetime] = None
    rejected_remark: Optional[str] = None
    cancelled_at: Optional[datetime] = None


class WfhListResponse(BaseModel):
    items: list[WfhRequestOut]
    total: int


class WfhBalanceItem(BaseModel):
    employee_id: uuid.UUID
    employee_name: str
    emp_code: str
    department_name: Optional[str] = None
    year: int
    wfh_enabled: bool
    entitled: Decimal = Decimal("0")
    accrued: Decimal = Decimal("0")
    used: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")


class WfhBalancesResponse(BaseModel):
    year: int
    items: list[WfhBalanceItem]
    total: int


class WfhTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    year: int
    request_date: date
    day_value: Decimal
    action: WfhAction
    remarks: Optional[str] = None
    action_by_employee_id: Optional[uuid.UUID] = None
    action_at: datetime
    wfh_request_id: Optional[uuid.UUID] = None


class WfhTransactionsResponse(BaseModel):
    items: list[WfhTransactionOut]
    total: int
