"""Leave policy Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PolicyUpsert(BaseModel):
    """Body for ``PUT /policy/{year}``. Omitted fields take the defaults."""

    annual_pl: int = Field(7, ge=0, le=365)
    annual_cl: int = Field(5, ge=0, le=365)
    annual_sl: int = Field(6, ge=0, le=365)
    annual_rh: int = Field(1, ge=0, le=365)
    monthly_credit_pl: Optional[Decimal] = Field(
        None, ge=0, le=31, decimal_places=4,
        description="NULL spreads annual_pl evenly over 12 months",
    )
    monthly_credit_cl: Optional[Decimal] = Field(None, ge=0, le=31, decimal_places=4)
    monthly_credit_sl: Optional[Decimal] = Field(
        Decimal("0"), ge=0, le=31, decimal_places=4,
        description="0 grants annual_sl once a year",
    )
    pl_eligibility_months: int = Field(6, ge=0, le=60)
    backdated_max_days: int = Field(7, ge=0, le=365)
    carry_forward_pl_max: int = Field(4, ge=0, le=365)
    sandwich_enabled: bool = True
    allow_hr_override: bool = True
    wfh_max_days: int = Field(12, ge=0, le=366)
    wfh_day_value: Decimal = Field(Decimal("0.5"), gt=0, le=1, decimal_places=4)


class PolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    year: int
    annual_pl: int
    annual_cl: int
    annual_sl: int
    annual_rh: int
    monthly_credit_pl: Optional[Decimal] = None
    monthly_credit_cl: Optional[Decimal] = None
    monthly_credit_sl: Optional[Decimal] = None
    pl_eligibility_months: int
    backdated_max_days: int
    carry_forward_pl_max: int
    sandwich_enabled: bool
    allow_hr_override: bool
    wfh_max_days: int
    wfh_day_value: Decimal
    revision: int
    updated_at: Optional[datetime] = None
