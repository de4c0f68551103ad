"""Approval authority rules — pure functions, no database."""

from __future__ import annotations

import uuid

import pytest

from hrms.auth.authority import (
    allowed_manager_ranks,
    can_approve_compoff,
    can_approve_leave,
    can_approve_wfh,
    can_company_cancel,
    can_override_policy,
    is_valid_reporting_line,
    manager_candidate_ranks,
)
from hrms.common.constants import LeaveStatus, UserRole


ACTOR = uuid.uuid4()
OTHER = uuid.uuid4()


class TestLeaveAuthority:

    @pytest.mark.parametrize("role", [UserRole.md, UserRole.admin, UserRole.hr])
    def test_override_roles_approve_any_pending(self, role):
        assert can_approve_leave(role, ACTOR, OTHER, LeaveStatus.pending) is True

    def test_designated_approver_may_act(self):
        assert can_approve_leave(UserRole.manager, ACTOR, ACTOR, LeaveStatus.pending) is True

    def test_other_manager_may_not_act(self):
        assert can_approve_leave(UserRole.manager, ACTOR, OTHER, LeaveStatus.pending) is False

    def test_no_approver_means_only_override_roles(self):
        assert can_approve_leave(UserRole.vp, ACTOR, None, LeaveStatus.pending) is False
        assert can_approve_leave(UserRole.admin, ACTOR, None, LeaveStatus.pending) is True

    @pytest.mark.parametrize(
        "status",
        [LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled],
    )
    def test_only_pending_is_actionable(self, status):
        assert can_approve_leave(UserRole.hr, ACTOR, ACTOR, status) is False

    def test_override_policy_request_needs_hr(self):
        assert can_approve_leave(
            UserRole.manager, ACTOR, ACTOR, LeaveStatus.pending, override_policy=True,
        ) is False
        assert can_approve_leave(
            UserRole.md, ACTOR, ACTOR, LeaveStatus.pending, override_policy=True,
        ) is False
        assert can_approve_leave(
            UserRole.hr, ACTOR, OTHER, LeaveStatus.pending, override_policy=True,
        ) is True

    def test_company_cancel_and_override_are_hr_only(self):
        assert can_company_cancel(UserRole.hr) is True
        assert can_company_cancel(UserRole.admin) is False
        assert can_override_policy(UserRole.hr) is True
        assert can_override_policy(UserRole.md) is False
        assert can_override_policy(None) is False


class TestCompoffWfhAuthority:

    def test_hr_approves_any_compoff(self):
        assert can_approve_compoff(UserRole.hr, ACTOR, OTHER) is True

    def test_admin_is_not_a_compoff_override(self):
        assert can_approve_compoff(UserRole.admin, ACTOR, OTHER) is False

    def test_direct_manager_approves_compoff(self):
        assert can_approve_compoff(UserRole.manager, ACTOR, ACTOR) is True
        assert can_approve_compoff(UserRole.manager, ACTOR, None) is False

    @pytest.mark.parametrize("role", [UserRole.hr, UserRole.admin])
    def test_hr_and_admin_approve_any_wfh(self, role):
        assert can_approve_wfh(role, ACTOR, OTHER) is True

    def test_md_needs_direct_reportee_for_wfh(self):
        assert can_approve_wfh(UserRole.md, ACTOR, OTHER) is False
        assert can_approve_wfh(UserRole.md, ACTOR, ACTOR) is True


class TestReportingHierarchy:

    def test_rank_one_has_no_manager(self):
        assert manager_candidate_ranks(1) == ((), ())
        assert is_valid_reporting_line(1, None) is True
        assert is_valid_reporting_line(1, 2) is False

    @pytest.mark.parametrize(
        "target,expected",
        [
            (2, frozenset({1})),
            (3, frozenset({1, 2})),
            (4, frozenset({1, 2, 3})),
            (5, frozenset({1, 2, 3, 4})),
        ],
    )
    def test_allowed_ranks(self, target, expected):
        assert allowed_manager_ranks(target) == expected

    def test_rank_five_prefers_managers(self):
        preferred, fallback = manager_candidate_ranks(5)
        assert preferred == (4,)
        assert fallback == (1, 2, 3)

    def test_manager_must_outrank_target(self):
        assert is_valid_reporting_line(4, 4) is False
        assert is_valid_reporting_line(3, 4) is False
        assert is_valid_reporting_line(5, 4) is True

    def test_missing_manager_is_invalid_below_rank_one(self):
        assert is_valid_reporting_line(5, None) is False
