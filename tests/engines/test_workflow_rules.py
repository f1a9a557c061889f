"""
Tests for the pure transition-table functions (leave_engines/workflow.py).

Covers:
- resolve_transition() for every table row, aliases and terminal states
- authorize(): role gating and the manager department rule
- derive_status(): fold semantics, corrupted logs, and a hypothesis
  property comparing it with a step-by-step walk of the table
- outstanding_debit(), next_responsible(), allowed_actions()
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from leave_engines.workflow import (
    DEBIT_KEY,
    RELEASE_KEY,
    allowed_actions,
    authorize,
    derive_status,
    next_responsible,
    outstanding_debit,
    requires_comment,
    resolve_transition,
    status_trail,
)
from leave_kernel.domain.leave import TERMINAL_STATUSES, Actor, LeaveStatus, Role
from leave_kernel.domain.workflow import (
    ACTION_ROLES,
    INITIAL_STATUS,
    TRANSITIONS,
    WorkflowAction,
    WorkflowLogEntry,
)


def _actor(role: Role, department: str | None = "finance") -> Actor:
    return Actor(f"{role.value}-1", role.value.title(), role, department=department)


def _entry(seq: int, action: WorkflowAction, **metadata) -> WorkflowLogEntry:
    return WorkflowLogEntry(
        id=uuid4(),
        request_id=uuid4(),
        seq=seq,
        action=action,
        actor_id="someone",
        actor_name="Someone",
        actor_role=ACTION_ROLES[action],
        timestamp=datetime(2024, 1, 8, 9, 0, seq, tzinfo=timezone.utc),
        resulting_status=LeaveStatus.PENDING_DGPEC,
        metadata=metadata,
    )


@st.composite
def legal_sequences(draw, max_steps: int = 12):
    """Draw a table-consistent action sequence and the status it ends in."""
    status = INITIAL_STATUS
    actions: list[WorkflowAction] = []
    for _ in range(draw(st.integers(min_value=0, max_value=max_steps))):
        options = [action for (from_status, action) in TRANSITIONS if from_status == status]
        if not options:
            break
        action = draw(st.sampled_from(options))
        actions.append(action)
        status = TRANSITIONS[(status, action)].to_status
    return actions, status


class TestResolveTransition:

    @pytest.mark.parametrize("key", list(TRANSITIONS), ids=lambda k: f"{k[0].value}-{k[1].value}")
    def test_every_row_resolves_to_itself(self, key):
        assert resolve_transition(*key) is TRANSITIONS[key]

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    @pytest.mark.parametrize("action", list(WorkflowAction))
    def test_terminal_statuses_accept_nothing(self, status, action):
        assert resolve_transition(status, action) is None

    def test_submission_is_never_a_transition(self):
        for status in LeaveStatus:
            assert resolve_transition(status, WorkflowAction.SUBMISSION) is None

    def test_unproduced_statuses_behave_as_their_stage(self):
        assert (
            resolve_transition(LeaveStatus.PENDING_MANAGER, WorkflowAction.MANAGER_APPROVAL).to_status
            == LeaveStatus.PENDING_DGPEC
        )
        assert (
            resolve_transition(LeaveStatus.RETURNED_TO_DGPEC, WorkflowAction.DGPEC_APPROVAL).to_status
            == LeaveStatus.PENDING_DG
        )

    def test_quota_adjustment_keeps_status(self):
        t = resolve_transition(LeaveStatus.PENDING_DGPEC, WorkflowAction.DGPEC_QUOTA_ADJUSTMENT)
        assert t.to_status == LeaveStatus.PENDING_DGPEC
        assert not t.changes_status


class TestAuthorize:

    @pytest.mark.parametrize("action", [a for a in WorkflowAction if a != WorkflowAction.SUBMISSION])
    @pytest.mark.parametrize("role", list(Role))
    def test_only_the_owning_role_is_allowed(self, action, role):
        check = authorize(action, _actor(role), "finance")
        assert check.allowed == (role == ACTION_ROLES[action])
        assert check.required_role == ACTION_ROLES[action]

    def test_manager_of_another_department_is_refused(self):
        check = authorize(WorkflowAction.MANAGER_APPROVAL, _actor(Role.MANAGER, "it"), "finance")
        assert not check.allowed
        assert "department" in check.reason

    def test_dgpec_and_dg_are_not_department_bound(self):
        assert authorize(WorkflowAction.DGPEC_APPROVAL, _actor(Role.DGPEC, "hr"), "finance").allowed
        assert authorize(WorkflowAction.DG_APPROVAL, _actor(Role.DG, None), "finance").allowed


class TestDeriveStatus:

    def test_empty_log_is_submitted(self):
        assert derive_status([]) == LeaveStatus.SUBMITTED

    def test_leading_submission_is_accepted(self):
        assert derive_status([WorkflowAction.SUBMISSION]) == LeaveStatus.SUBMITTED

    def test_full_happy_path(self):
        actions = [
            WorkflowAction.SUBMISSION,
            WorkflowAction.MANAGER_APPROVAL,
            WorkflowAction.DGPEC_APPROVAL,
            WorkflowAction.DG_APPROVAL,
        ]
        assert derive_status(actions) == LeaveStatus.APPROVED

    def test_return_loop(self):
        actions = [
            WorkflowAction.MANAGER_APPROVAL,
            WorkflowAction.DGPEC_APPROVAL,
            WorkflowAction.DG_RETURN_TO_DGPEC,
            WorkflowAction.DGPEC_QUOTA_ADJUSTMENT,
            WorkflowAction.DGPEC_APPROVAL,
        ]
        assert status_trail(actions) == [
            LeaveStatus.PENDING_DGPEC,
            LeaveStatus.PENDING_DG,
            LeaveStatus.PENDING_DGPEC,
            LeaveStatus.PENDING_DGPEC,
            LeaveStatus.PENDING_DG,
        ]

    def test_submission_later_in_the_log_is_corruption(self):
        with pytest.raises(ValueError, match="submission"):
            derive_status([WorkflowAction.MANAGER_APPROVAL, WorkflowAction.SUBMISSION])

    def test_action_after_terminal_is_corruption(self):
        with pytest.raises(ValueError, match="terminal"):
            derive_status([WorkflowAction.MANAGER_REJECTION, WorkflowAction.MANAGER_APPROVAL])

    def test_undefined_action_is_corruption(self):
        with pytest.raises(ValueError, match="not defined"):
            derive_status([WorkflowAction.DG_APPROVAL])

    @settings(max_examples=200)
    @given(legal_sequences())
    def test_fold_matches_table_walk(self, drawn):
        actions, expected = drawn
        assert derive_status(actions) == expected
        assert derive_status([WorkflowAction.SUBMISSION, *actions]) == expected

    @given(legal_sequences())
    def test_prefixes_never_pass_through_a_terminal_status(self, drawn):
        actions, _ = drawn
        trail = status_trail(actions)
        assert all(status not in TERMINAL_STATUSES for status in trail[:-1])


class TestHelpers:

    def test_rejections_and_returns_require_a_comment(self):
        assert requires_comment(WorkflowAction.MANAGER_REJECTION)
        assert requires_comment(WorkflowAction.DGPEC_REJECTION)
        assert requires_comment(WorkflowAction.DG_REJECTION)
        assert requires_comment(WorkflowAction.DG_RETURN_TO_DGPEC)
        assert not requires_comment(WorkflowAction.MANAGER_APPROVAL)

    def test_allowed_actions_follow_table_order(self):
        assert allowed_actions(LeaveStatus.PENDING_DG, Role.DG) == (
            WorkflowAction.DG_APPROVAL,
            WorkflowAction.DG_REJECTION,
            WorkflowAction.DG_RETURN_TO_DGPEC,
        )
        assert allowed_actions(LeaveStatus.PENDING_DG, Role.EMPLOYEE) == ()
        assert allowed_actions(LeaveStatus.APPROVED, Role.DG) == ()

    def test_outstanding_debit_nets_releases(self):
        entries = [
            _entry(1, WorkflowAction.SUBMISSION),
            _entry(2, WorkflowAction.DGPEC_APPROVAL, **{DEBIT_KEY: 5}),
            _entry(3, WorkflowAction.DG_REJECTION, **{RELEASE_KEY: 5}),
        ]
        assert outstanding_debit(entries[:2]) == 5
        assert outstanding_debit(entries) == 0
        assert outstanding_debit([]) == 0

    @pytest.mark.parametrize(
        "status, expected",
        [
            (LeaveStatus.SUBMITTED, "role:manager:finance"),
            (LeaveStatus.PENDING_MANAGER, "role:manager:finance"),
            (LeaveStatus.PENDING_DGPEC, "role:dgpec"),
            (LeaveStatus.RETURNED_TO_DGPEC, "role:dgpec"),
            (LeaveStatus.PENDING_DG, "role:dg"),
            (LeaveStatus.APPROVED, "emp-001"),
            (LeaveStatus.REJECTED, "emp-001"),
        ],
    )
    def test_next_responsible(self, status, expected):
        assert next_responsible(status, "emp-001", "finance") == expected
