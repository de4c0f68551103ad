"""Calendar and attendance Pydantic v2 schemas.

Public and restricted holidays share one shape; the calendar they belong to
is decided by the route.
"""


import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ═════════════════════════════════════════════════════════════════════
# Holiday calendars
# ═════════════════════════════════════════════════════════════════════


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    date: dt.date
    active: bool = True


class HolidayUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    name: Optional[str] = Field(None, min_length=1, max_length=150)
    date: Optional[dt.date] = None
    active: Optional[bool] = None


class HolidayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    year: int
    name: str
    date: dt.date
    active: bool
    created_at: Optional[dt.datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Attendance
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordCreate(BaseModel):
    """HR entry of a punch record (imports from the biometric feed use the same shape)."""

    employee_id: uuid.UUID
    punch_date: dt.date
    in_time: Optional[dt.time] = None
    out_time: Optional[dt.time] = None
    source: str = Field("HR", max_length=30)

    @model_validator(mode="after")
    def _out_after_in(self) -> "AttendanceRecordCreate":
        if self.in_time and self.out_time and self.out_time < self.in_time:
            raise ValueError("out_time must not be earlier than in_time")
        return self


class AttendanceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    punch_date: dt.date
    in_time: Optional[dt.time] = None
    out_time: Optional[dt.time] = None
    source: str
    created_at: Optional[dt.datetime] = None


class AttendanceListResponse(BaseModel):
    items: list[AttendanceRecordResponse]
    total: int
