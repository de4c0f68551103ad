"""WFH ORM models: WfhRequest and the append-only WfhTransaction ledger."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import WfhAction, WfhStatus
from hrms.database import Base, pg_enum
from hrms.ledger.models import LedgerImmutabilityError

if TYPE_CHECKING:
    from hrms.core_hr.models import Employee


class WfhRequest(Base):
    __tablename__ = "wfh_requests"
    __table_args__ = (
        sa.Index("ix_wfh_requests_employee_date", "employee_id", "request_date"),
        sa.Index("ix_wfh_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    request_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[WfhStatus] = mapped_column(
        pg_enum(WfhStatus, "wfh_status"),
        nullable=False,
        default=WfhStatus.pending,
    )
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])

    def __repr__(self) -> str:
        return f"<WfhRequest {self.request_date} {self.status.value}>"


class WfhTransaction(Base):
    """Signed WFH day-value postings. Never updated or deleted."""

    __tablename__ = "wfh_transactions"
    __table_args__ = (
        sa.UniqueConstraint("dedup_key", name="uq_wfh_transactions_dedup_key"),
        sa.Index("ix_wfh_tx_emp_year", "employee_id", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    request_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    day_value: Mapped[Decimal] = mapped_column(sa.Numeric(10, 4), nullable=False)
    action: Mapped[WfhAction] = mapped_column(
        pg_enum(WfhAction, "wfh_action"), nullable=False
    )
    remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    action_by_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    action_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    wfh_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("wfh_requests.id")
    )
    dedup_key: Mapped[Optional[str]] = mapped_column(sa.String(200))


@event.listens_for(WfhTransaction, "before_update")
def _refuse_update(mapper, connection, target: WfhTransaction) -> None:
    raise LedgerImmutabilityError(
        f"WFH transaction {target.id} is append-only and cannot be modified."
    )


@event.listens_for(WfhTransaction, "before_delete")
def _refuse_delete(mapper, connection, target: WfhTransaction) -> None:
    raise LedgerImmutabilityError(
        f"WFH transaction {target.id} is append-only and cannot be deleted."
    )
