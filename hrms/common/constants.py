"""Enums and constants for the HRMS leave engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Roles ───────────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    hr = "HR"
    manager = "MANAGER"
    employee = "EMPLOYEE"
    md = "MD"
    admin = "ADMIN"
    vp = "VP"


# Roles that may act on any pending leave request, not just their own queue
LEAVE_APPROVER_OVERRIDE_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.md, UserRole.admin, UserRole.hr}
)

# Roles that may act on any pending WFH request
WFH_APPROVER_OVERRIDE_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.hr, UserRole.admin}
)


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    cl = "CL"
    sl = "SL"
    pl = "PL"
    rh = "RH"
    compoff = "COMPOFF"
    lwp = "LWP"


# Leave types tracked by the yearly leave ledger
LEDGER_LEAVE_TYPES: tuple[LeaveType, ...] = (
    LeaveType.cl,
    LeaveType.sl,
    LeaveType.pl,
    LeaveType.rh,
)

# Leave types for which sandwiched weekly-offs/holidays count as leave
SANDWICH_LEAVE_TYPES: frozenset[LeaveType] = frozenset(
    {LeaveType.cl, LeaveType.pl, LeaveType.sl}
)

# Leave types HR may cancel after approval
COMPANY_CANCELLABLE_TYPES: frozenset[LeaveType] = frozenset(
    {LeaveType.cl, LeaveType.pl}
)


class LeaveStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"
    cancelled = "CANCELLED"
    cancelled_by_company = "CANCELLED_BY_COMPANY"


class LedgerAction(str, enum.Enum):
    accrue_monthly = "ACCRUE_MONTHLY"
    accrue_annual = "ACCRUE_ANNUAL"
    debit_approved = "DEBIT_APPROVED"
    credit_reversed = "CREDIT_REVERSED"
    carry_forward = "CARRY_FORWARD"
    lapse = "LAPSE"
    encashment = "ENCASHMENT"
    compoff_credit = "COMPOFF_CREDIT"


# ── Comp-off / WFH ──────────────────────────────────────────────────

class CompoffStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class WfhStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"
    cancelled = "CANCELLED"


class WfhAction(str, enum.Enum):
    debit_approved = "DEBIT_APPROVED"
    credit_reversed = "CREDIT_REVERSED"


# ── Numeric ─────────────────────────────────────────────────────────

DAYS_QUANTUM = Decimal("0.0001")
ZERO_DAYS = Decimal("0")
COMPOFF_CREDIT_DAYS = Decimal("1")

# ── Formats ─────────────────────────────────────────────────────────

DEFAULT_TRANSACTION_LIMIT = 200
MAX_TRANSACTION_LIMIT = 1000


def quantize_days(value: Decimal) -> Decimal:
    """Round a day amount to the ledger's fixed-point precision (4 dp)."""
    return Decimal(value).quantize(DAYS_QUANTUM)
