"""Calendar and attendance ORM models: Holiday, RestrictedHoliday, AttendanceLog."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrms.database import Base


class Holiday(Base):
    """Company-wide public holiday (non-working day for leave counting)."""

    __tablename__ = "holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", name="uq_holiday_date"),
        sa.Index("ix_holidays_year", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class RestrictedHoliday(Base):
    """Optional holiday an employee may take against their RH entitlement."""

    __tablename__ = "restricted_holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", name="uq_restricted_holiday_date"),
        sa.Index("ix_restricted_holidays_year", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class AttendanceLog(Base):
    """One punch record per employee per day."""

    __tablename__ = "attendance_logs"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "punch_date", name="uq_attendance_emp_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    punch_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    in_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    out_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    source: Mapped[str] = mapped_column(sa.String(30), default="WEB")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
