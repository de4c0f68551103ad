"""Leave ledger ORM model — the append-only source of truth for balances.

Rows are never updated or deleted: corrections are new reversing rows.
The ORM refuses UPDATE/DELETE flushes on ``LeaveTransaction`` via mapper
events; the migration adds the same guard as a database trigger.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrms.common.constants import LeaveType, LedgerAction
from hrms.database import Base, pg_enum


class LedgerImmutabilityError(Exception):
    """Raised when code tries to modify or delete a posted ledger row."""


class LeaveTransaction(Base):
    __tablename__ = "leave_transactions"
    __table_args__ = (
        sa.UniqueConstraint("dedup_key", name="uq_leave_transactions_dedup_key"),
        sa.Index("ix_leave_tx_emp_year_type", "employee_id", "year", "leave_type"),
        sa.Index("ix_leave_tx_year_action", "year", "action"),
        sa.Index("ix_leave_tx_leave_request_id", "leave_request_id"),
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
    leave_type: Mapped[LeaveType] = mapped_column(
        pg_enum(LeaveType, "leave_type"), nullable=False
    )
    delta_days: Mapped[Decimal] = mapped_column(sa.Numeric(10, 4), nullable=False)
    action: Mapped[LedgerAction] = mapped_column(
        pg_enum(LedgerAction, "ledger_action"), nullable=False
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
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id")
    )
    compoff_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("compoff_requests.id")
    )
    accrual_month: Mapped[Optional[int]] = mapped_column(sa.SmallInteger)
    expires_on: Mapped[Optional[date]] = mapped_column(sa.Date)
    dedup_key: Mapped[Optional[str]] = mapped_column(sa.String(200))

    def __repr__(self) -> str:
        return (
            f"<LeaveTransaction {self.action.value} {self.leave_type.value} "
            f"{self.delta_days:+} emp={self.employee_id} year={self.year}>"
        )


# ── Append-only guard ───────────────────────────────────────────────

@event.listens_for(LeaveTransaction, "before_update")
def _refuse_update(mapper, connection, target: LeaveTransaction) -> None:
    raise LedgerImmutabilityError(
        f"Ledger transaction {target.id} is append-only and cannot be modified."
    )


@event.listens_for(LeaveTransaction, "before_delete")
def _refuse_delete(mapper, connection, target: LeaveTransaction) -> None:
    raise LedgerImmutabilityError(
        f"Ledger transaction {target.id} is append-only and cannot be deleted."
    )
