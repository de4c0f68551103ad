"""Leave policy ORM model — one row per calendar year."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrms.database import Base


class LeavePolicy(Base):
    """Entitlements and rules for one year.

    A NULL ``monthly_credit_*`` means "spread the annual entitlement evenly
    over twelve months"; a zero rate means the type is granted once a year.
    """

    __tablename__ = "leave_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    year: Mapped[int] = mapped_column(sa.Integer, unique=True, nullable=False)

    # ── Annual entitlements (days) ──────────────────────────────────
    annual_pl: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=7)
    annual_cl: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=5)
    annual_sl: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=6)
    annual_rh: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    # ── Monthly accrual rates (days / month) ────────────────────────
    monthly_credit_pl: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(8, 4))
    monthly_credit_cl: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(8, 4))
    monthly_credit_sl: Mapped[Optional[Decimal]] = mapped_column(
        sa.Numeric(8, 4), default=Decimal("0"),
    )

    # ── Rules ───────────────────────────────────────────────────────
    pl_eligibility_months: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=6)
    backdated_max_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=7)
    carry_forward_pl_max: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=4)
    sandwich_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    allow_hr_override: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    # ── WFH ─────────────────────────────────────────────────────────
    wfh_max_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=12)
    wfh_day_value: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 4), nullable=False, default=Decimal("0.5"),
    )

    revision: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<LeavePolicy {self.year} rev={self.revision}>"
