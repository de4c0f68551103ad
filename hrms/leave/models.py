"""Leave ORM models: LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import LeaveStatus, LeaveType
from hrms.database import Base, pg_enum

if TYPE_CHECKING:
    from hrms.core_hr.models import Employee


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("from_date <= to_date", name="ck_leave_requests_dates"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_requests_approver_status", "approver_id", "status"),
        sa.Index("ix_leave_requests_dates", "from_date", "to_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        pg_enum(LeaveType, "leave_type"), nullable=False
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        pg_enum(LeaveStatus, "leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )

    # ── Day accounting ──────────────────────────────────────────────
    computed_days: Mapped[Decimal] = mapped_column(sa.Numeric(10, 4), nullable=False)
    paid_days: Mapped[Decimal] = mapped_column(sa.Numeric(10, 4), nullable=False)
    lwp_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(10, 4), nullable=False, default=Decimal("0")
    )
    override_policy: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    override_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    auto_converted_to_lwp: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    auto_lwp_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    # ── Workflow ────────────────────────────────────────────────────
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    rejected_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    cancelled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    cancelled_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    recredited: Mapped[bool] = mapped_column(sa.Boolean, default=False)

    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    # Relationships
    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.leave_type.value} {self.from_date}..{self.to_date} "
            f"{self.status.value}>"
        )
