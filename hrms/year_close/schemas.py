"""Year-close Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

YearCloseOutcome = Literal["closed", "already_closed", "nothing_to_close", "failed"]


class YearCloseDetail(BaseModel):
    employee_id: uuid.UUID
    emp_code: str
    name: str
    status: YearCloseOutcome
    lapsed: dict[str, Decimal] = Field(default_factory=dict)
    carried_forward: Decimal = Decimal("0")
    encashed: Decimal = Decimal("0")
    held_for_pending: dict[str, Decimal] = Field(default_factory=dict)
    reason: Optional[str] = None


class YearCloseResult(BaseModel):
    year: int
    employees_processed: int = 0
    closed_count: int = 0
    already_closed: int = 0
    failed_count: int = 0
    total_lapsed: Decimal = Decimal("0")
    total_carried_forward: Decimal = Decimal("0")
    total_encashed: Decimal = Decimal("0")
    details: list[YearCloseDetail] = Field(default_factory=list)
