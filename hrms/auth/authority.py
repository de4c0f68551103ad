"""Approval authority resolution — who may act on which request.

Pure functions only: every input is a plain value (role, ids, status, rank),
so the rules can be evaluated and tested without a database. Services call
these to gate writes; routers never re-implement the checks.

Rules:
  - Leave: MD / ADMIN / HR act on any PENDING request; everyone else only
    on requests where they are the designated ``approver_id``.
  - Leave submitted with ``override_policy``: only HR may approve.
  - Company cancellation of an approved leave: HR only.
  - Comp-off: HR acts on any; others only on their direct reportees.
  - WFH: HR / ADMIN act on any; others only on their direct reportees.
  - Reporting managers are drawn from rank tiers (lower number = higher
    authority): 2 ← {1}; 3 ← {1, 2}; 4 ← {1, 2, 3}; 5+ ← {4}, else {1, 2, 3}.
"""

from __future__ import annotations

import uuid
from typing import Optional

from hrms.common.constants import (
    LEAVE_APPROVER_OVERRIDE_ROLES,
    WFH_APPROVER_OVERRIDE_ROLES,
    LeaveStatus,
    UserRole,
)


# ── Leave ───────────────────────────────────────────────────────────

def can_approve_leave(
    actor_role: UserRole,
    actor_id: uuid.UUID,
    approver_id: Optional[uuid.UUID],
    status: LeaveStatus,
    *,
    override_policy: bool = False,
) -> bool:
    """True if the actor may approve or reject a leave request."""
    if status != LeaveStatus.pending:
        return False
    if override_policy and actor_role != UserRole.hr:
        return False
    if actor_role in LEAVE_APPROVER_OVERRIDE_ROLES:
        return True
    return approver_id is not None and approver_id == actor_id


def can_company_cancel(actor_role: UserRole) -> bool:
    return actor_role == UserRole.hr


def can_override_policy(actor_role: Optional[UserRole]) -> bool:
    return actor_role == UserRole.hr


# ── Comp-off / WFH ──────────────────────────────────────────────────

def can_approve_compoff(
    actor_role: UserRole,
    actor_id: uuid.UUID,
    employee_manager_id: Optional[uuid.UUID],
) -> bool:
    """HR approves any comp-off; others only for their direct reportees."""
    if actor_role == UserRole.hr:
        return True
    return employee_manager_id is not None and employee_manager_id == actor_id


def can_approve_wfh(
    actor_role: UserRole,
    actor_id: uuid.UUID,
    employee_manager_id: Optional[uuid.UUID],
) -> bool:
    """HR/ADMIN approve any WFH request; others only for direct reportees."""
    if actor_role in WFH_APPROVER_OVERRIDE_ROLES:
        return True
    return employee_manager_id is not None and employee_manager_id == actor_id


# ── Reporting hierarchy ─────────────────────────────────────────────

def manager_candidate_ranks(target_rank: int) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Return ``(preferred, fallback)`` manager ranks for *target_rank*.

    Rank 1 has no manager, so both tiers are empty.
    """
    if target_rank <= 1:
        return (), ()
    if target_rank <= 4:
        return tuple(range(1, target_rank)), ()
    return (4,), (1, 2, 3)


def allowed_manager_ranks(target_rank: int) -> frozenset[int]:
    preferred, fallback = manager_candidate_ranks(target_rank)
    return frozenset(preferred + fallback)


def is_valid_reporting_line(
    target_rank: int,
    manager_rank: Optional[int],
) -> bool:
    """Rank 1 must have no manager; everyone else needs a higher-authority one."""
    if target_rank == 1:
        return manager_rank is None
    if manager_rank is None:
        return False
    return manager_rank < target_rank and manager_rank in allowed_manager_ranks(target_rank)
