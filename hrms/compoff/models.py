"""Comp-off ORM models: CompoffRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import CompoffStatus
from hrms.database import Base, pg_enum

if TYPE_CHECKING:
    from hrms.core_hr.models import Employee


class CompoffRequest(Base):
    """A claim for one comp-off day earned by working on a day off."""

    __tablename__ = "compoff_requests"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "worked_date", name="uq_compoff_requests_employee_date",
        ),
        sa.Index("ix_compoff_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    worked_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[CompoffStatus] = mapped_column(
        pg_enum(CompoffStatus, "compoff_status"),
        nullable=False,
        default=CompoffStatus.pending,
    )
    requested_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    action_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    action_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    action_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])

    def __repr__(self) -> str:
        return f"<CompoffRequest {self.worked_date} {self.status.value}>"
