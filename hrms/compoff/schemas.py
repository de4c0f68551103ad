"""Comp-off Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrms.common.constants import CompoffStatus


class CompoffRequestCreate(BaseModel):
    worked_date: date
    reason: Optional[str] = Field(None, max_length=2000)


class CompoffActionRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=2000)


class CompoffRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    worked_date: date
    reason: Optional[str] = None
    status: CompoffStatus
    requested_at: datetime
    action_by_id: Optional[uuid.UUID] = None
    action_at: Optional[datetime] = None
    action_remark: Optional[str] = None


class CompoffListResponse(BaseModel):
    items: list[CompoffRequestOut]
    total: int
