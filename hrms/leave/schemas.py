"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrms.common.constants import LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type: LeaveType
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)
    employee_id: Optional[uuid.UUID] = Field(
        None, description="HR only: apply on behalf of another employee",
    )
    override_policy: bool = False
    override_remark: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    from_date: date
    to_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    computed_days: Decimal
    paid_days: Decimal
    lwp_days: Decimal
    override_policy: bool = False
    override_remark: Optional[str] = None
    auto_converted_to_lwp: bool = False
    auto_lwp_reason: Optional[str] = None
    approver_id: Optional[uuid.UUID] = None
    applied_at: datetime
    approved_by_id: Optional[uuid.UUID] = None
    approved_remark: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by_id: Optional[uuid.UUID] = None
    rejected_remark: Optional[str] = None
    rejected_at: Optional[datetime] = None
    cancelled_by_id: Optional[uuid.UUID] = None
    cancelled_remark: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    recredited: bool = False


class LeaveListResponse(BaseModel):
    items: list[LeaveRequestOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Remarks are mandatory; blank text is rejected by the service."""

    remarks: str = Field("", max_length=500)


class LeaveCancelRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=500)


class CompanyCancelRequest(BaseModel):
    """HR cancellation of an approved leave, optionally re-crediting the days."""

    recredit: bool = False
    remarks: Optional[str] = Field(None, max_length=500)
