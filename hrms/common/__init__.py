"""Common module — shared utilities for the HRMS leave engine."""

from hrms.common.audit import AuditTrail, create_audit_entry
from hrms.common.constants import (
    CompoffStatus,
    LeaveStatus,
    LeaveType,
    LedgerAction,
    UserRole,
    WfhAction,
    WfhStatus,
    quantize_days,
)
from hrms.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    PolicyViolationException,
    SchemaNotMigratedException,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.pagination import PaginationParams, fetch_page
from hrms.common.rate_limit import limiter

__all__ = [
    # audit
    "AuditTrail",
    "create_audit_entry",
    # constants
    "CompoffStatus",
    "LeaveStatus",
    "LeaveType",
    "LedgerAction",
    "UserRole",
    "WfhAction",
    "WfhStatus",
    "quantize_days",
    # exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InvalidStateException",
    "NotFoundException",
    "PolicyViolationException",
    "SchemaNotMigratedException",
    "ValidationException",
    "register_exception_handlers",
    # pagination
    "PaginationParams",
    "fetch_page",
    # rate limiting
    "limiter",
]
