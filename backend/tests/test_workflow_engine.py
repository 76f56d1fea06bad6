"""
Approval state machine tests.

Pure functions only: no app, no database. Ladder used throughout:
level 1 (id 11, role 1, override enabled), level 2 (id 12, role 2),
level 3 (id 13, role 3). Role 9 is the override role.
"""

from dataclasses import replace

import pytest

from garage.services import workflow_engine as we
from garage.services.workflow_engine import LevelConfig, LedgerEntry, RequestState
from garage.validation import ValidationError


ROLE_A, ROLE_B, ROLE_C, ROLE_SUPER = 1, 2, 3, 9
USER_A, USER_B, USER_C, USER_SUPER, CREATOR = 101, 102, 103, 109, 100

LEVELS = [
    LevelConfig(id=11, level=1, role_id=ROLE_A, override_enabled=True),
    LevelConfig(id=12, level=2, role_id=ROLE_B),
    LevelConfig(id=13, level=3, role_id=ROLE_C),
]


def new_state(workflow_id=11, ledger=()):
    return RequestState(
        workflow_id=workflow_id,
        next_level_role_id=ROLE_A if workflow_id == 11 else None,
        created_by=CREATOR,
        ledger=tuple(ledger),
    )


def advance(state, transition):
    """Apply a transition the way the coordinator persists it."""
    stale = set(transition.superseded_sequence_nos)
    ledger = tuple(replace(e, superseded=True) if e.sequence_no in stale else e for e in state.ledger)
    return replace(
        state,
        workflow_id=transition.workflow_id,
        next_level_role_id=transition.next_level_role_id,
        ledger=ledger + tuple(transition.new_entries),
    )


def entry(seq, level, trail, role_id=None, **kwargs):
    return LedgerEntry(sequence_no=seq, level=level, trail=trail, status=f"{trail} {level}", role_id=role_id, **kwargs)


# =============================================================================
# compute_next_level
# =============================================================================


class TestComputeNextLevel:

    def test_workflow_id_below_max_describes_next_level(self):
        info = we.compute_next_level(11, (), LEVELS)
        assert info.current_level == 1
        assert info.current_role_id == ROLE_A
        assert info.is_max_level is False
        assert (info.next_level, info.next_role_id, info.next_workflow_id) == (2, ROLE_B, 12)
        assert info.max_level == 3

    def test_workflow_id_at_max_level(self):
        info = we.compute_next_level(13, (), LEVELS)
        assert info.is_max_level is True
        assert info.max_level == 3
        assert info.next_level is None

    def test_unknown_workflow_id_returns_none(self):
        assert we.compute_next_level(99, (), LEVELS) is None

    def test_missing_next_level_returns_none(self):
        gapped = [LEVELS[0], LEVELS[2]]
        assert we.compute_next_level(11, (), gapped) is None

    def test_no_levels_returns_none(self):
        assert we.compute_next_level(None, (), []) is None

    def test_null_workflow_empty_ledger_starts_at_level_one(self):
        info = we.compute_next_level(None, (), LEVELS)
        assert info.current_level == 1
        assert info.current_workflow_id == 11

    def test_null_workflow_created_rejected_resumes_at_level_one(self):
        ledger = [
            entry(0, 1, we.TRAIL_PENDING, ROLE_A),
            entry(1, 1, we.TRAIL_REJECTED, ROLE_A),
        ]
        info = we.compute_next_level(None, ledger, LEVELS)
        assert info.current_level == 1

    def test_null_workflow_rejection_resumes_at_its_level(self):
        ledger = [entry(0, 2, we.TRAIL_REJECTED, ROLE_B)]
        info = we.compute_next_level(None, ledger, LEVELS)
        assert info.current_level == 2
        assert info.current_workflow_id == 12

    def test_null_workflow_resumes_above_latest_approval(self):
        ledger = [
            entry(0, 1, we.TRAIL_APPROVED, ROLE_A),
            entry(1, 2, we.TRAIL_PENDING, ROLE_B),
        ]
        info = we.compute_next_level(None, ledger, LEVELS)
        assert info.current_level == 2

    def test_superseded_events_are_ignored(self):
        ledger = [
            entry(0, 1, we.TRAIL_REJECTED, ROLE_A),
            entry(1, 2, we.TRAIL_APPROVED, ROLE_B, superseded=True),
        ]
        info = we.compute_next_level(None, ledger, LEVELS)
        assert info.current_level == 1

    def test_first_config_per_level_wins(self):
        duplicate = LevelConfig(id=21, level=1, role_id=ROLE_C)
        info = we.compute_next_level(None, (), [duplicate] + LEVELS)
        assert info.current_workflow_id == 11
        assert info.current_role_id == ROLE_A


# =============================================================================
# approve
# =============================================================================


class TestApprove:

    def test_standard_approval_moves_to_next_level(self):
        state = new_state(ledger=[entry(0, 1, we.TRAIL_PENDING, ROLE_A)])
        t = we.approve(state, ROLE_A, USER_A, "ok", LEVELS)

        assert [(e.sequence_no, e.level, e.trail) for e in t.new_entries] == [
            (1, 1, we.TRAIL_APPROVED),
            (2, 2, we.TRAIL_PENDING),
        ]
        assert t.new_entries[0].approved_by == USER_A
        assert t.new_entries[0].comment == "ok"
        assert t.new_entries[1].role_id == ROLE_B
        assert t.workflow_id == 12
        assert t.next_level_role_id == ROLE_B
        assert t.status_key == we.STATUS_APPROVAL_PENDING
        assert t.status_level == 2
        assert not any(e.is_finalized for e in t.new_entries)

    def test_final_level_approval_is_finalized(self):
        t = we.approve(new_state(workflow_id=13), ROLE_C, USER_C, None, LEVELS)

        assert len(t.new_entries) == 1
        final = t.new_entries[0]
        assert final.trail == we.TRAIL_APPROVED
        assert final.level == 3
        assert final.is_finalized is True
        assert final.status == "Level 3 Approved"
        assert t.workflow_id is None
        assert t.next_level_role_id is None
        assert t.status_key == we.STATUS_APPROVER_COMPLETED

    def test_wrong_role_is_denied(self):
        with pytest.raises(we.WorkflowPermissionError):
            we.approve(new_state(), ROLE_B, USER_B, None, LEVELS)

    def test_override_role_without_override_enabled_is_denied(self):
        with pytest.raises(we.WorkflowPermissionError, match="Override is not enabled for level 2"):
            we.approve(new_state(workflow_id=12), ROLE_SUPER, USER_SUPER, None, LEVELS, is_override_role=True)

    def test_override_role_matching_level_role_approves_normally(self):
        levels = [LevelConfig(id=11, level=1, role_id=ROLE_SUPER), LEVELS[1], LEVELS[2]]
        t = we.approve(new_state(), ROLE_SUPER, USER_SUPER, None, levels, is_override_role=True)
        assert t.is_override is False
        assert t.workflow_id == 12

    def test_override_collapses_remaining_levels(self):
        state = new_state(ledger=[entry(0, 1, we.TRAIL_PENDING, ROLE_A)])
        t = we.approve(state, ROLE_SUPER, USER_SUPER, None, LEVELS, is_override_role=True)

        # 2 * (max - current) + 1
        assert len(t.new_entries) == 5
        assert [(e.level, e.trail) for e in t.new_entries] == [
            (1, we.TRAIL_APPROVED),
            (2, we.TRAIL_PENDING),
            (2, we.TRAIL_APPROVED),
            (3, we.TRAIL_PENDING),
            (3, we.TRAIL_APPROVED),
        ]
        assert [e.sequence_no for e in t.new_entries] == [1, 2, 3, 4, 5]
        assert [e.is_finalized for e in t.new_entries] == [False, False, False, False, True]
        assert t.workflow_id is None
        assert t.next_level_role_id is None
        assert t.is_override is True
        assert [cfg.level for cfg in t.collapsed_levels] == [1, 2, 3]
        assert t.status_key == we.STATUS_APPROVER_COMPLETED

    def test_override_from_max_level_emits_single_finalized_event(self):
        levels = LEVELS[:2] + [LevelConfig(id=13, level=3, role_id=ROLE_C, override_enabled=True)]
        t = we.approve(new_state(workflow_id=13), ROLE_SUPER, USER_SUPER, None, levels, is_override_role=True)
        assert len(t.new_entries) == 1
        assert t.new_entries[0].is_finalized is True

    def test_missing_configuration_is_an_error(self):
        with pytest.raises(we.WorkflowConfigurationError):
            we.approve(new_state(workflow_id=99), ROLE_A, USER_A, None, LEVELS)

    def test_terminal_request_cannot_be_approved(self):
        with pytest.raises(we.WorkflowStateError):
            we.approve(new_state(workflow_id=None), ROLE_A, USER_A, None, LEVELS)


# =============================================================================
# reject
# =============================================================================


class TestReject:

    @pytest.mark.parametrize("comment", [None, "", "   "])
    def test_blank_reason_is_rejected_before_anything_else(self, comment):
        # No levels at all: validation must still win
        with pytest.raises(we.WorkflowValidationError):
            we.reject(new_state(), ROLE_A, USER_A, comment, [])

    def test_validation_error_is_a_validation_error(self):
        assert issubclass(we.WorkflowValidationError, ValidationError)
        assert issubclass(we.WorkflowValidationError, we.WorkflowError)

    def test_rejection_above_level_one_goes_back_one_level(self):
        state = new_state(workflow_id=12, ledger=[
            entry(0, 1, we.TRAIL_PENDING, ROLE_A),
            entry(1, 1, we.TRAIL_APPROVED, ROLE_A, approved_by=USER_A),
            entry(2, 2, we.TRAIL_PENDING, ROLE_B),
        ])
        t = we.reject(state, ROLE_B, USER_B, "missing receipt", LEVELS)

        rejected = t.new_entries[0]
        assert rejected.trail == we.TRAIL_REJECTED
        assert rejected.status == "Level 2 Approval Rejected"
        assert rejected.sequence_no == 3
        assert rejected.rejected_by == USER_B
        assert rejected.rejected_to == USER_A
        assert t.workflow_id == 11
        assert t.next_level_role_id == ROLE_A
        assert t.status_key == we.STATUS_APPROVAL_PENDING
        assert t.status_level == 1
        assert t.inventory_restore_needed is False

    def test_rejection_at_level_one_leaves_the_workflow(self):
        state = new_state(ledger=[entry(0, 1, we.TRAIL_PENDING, ROLE_A)])
        t = we.reject(state, ROLE_A, USER_A, "wrong supplier", LEVELS)

        rejected = t.new_entries[0]
        assert rejected.status == "Created - Rejected"
        assert rejected.level == 1
        assert rejected.rejected_to is None
        assert t.workflow_id is None
        assert t.next_level_role_id is None
        assert t.status_key == we.STATUS_ORDER_RETURN_CREATED
        assert t.inventory_restore_needed is True

    def test_override_role_may_reject_any_level(self):
        t = we.reject(new_state(workflow_id=12), ROLE_SUPER, USER_SUPER, "no", LEVELS, is_override_role=True)
        assert t.workflow_id == 11

    def test_wrong_role_cannot_reject(self):
        with pytest.raises(we.WorkflowPermissionError):
            we.reject(new_state(workflow_id=12), ROLE_C, USER_C, "no", LEVELS)

    def test_terminal_request_cannot_be_rejected_twice(self):
        state = new_state(ledger=[entry(0, 1, we.TRAIL_PENDING, ROLE_A)])
        state = advance(state, we.reject(state, ROLE_A, USER_A, "no", LEVELS))

        assert we.is_awaiting_resubmission(state)
        with pytest.raises(we.WorkflowStateError):
            we.reject(state, ROLE_A, USER_A, "again", LEVELS)


# =============================================================================
# resubmit / start
# =============================================================================


class TestResubmit:

    def _rejected_state(self):
        state = new_state(ledger=[entry(0, 1, we.TRAIL_PENDING, ROLE_A)])
        return advance(state, we.reject(state, ROLE_A, USER_A, "no", LEVELS))

    def test_creator_restarts_at_level_one(self):
        t = we.resubmit(self._rejected_state(), CREATOR, LEVELS)
        assert t.action == "resubmit"
        assert [(e.sequence_no, e.level, e.trail) for e in t.new_entries] == [(2, 1, we.TRAIL_PENDING)]
        assert t.workflow_id == 11
        assert t.status_key == we.STATUS_APPROVAL_PENDING
        assert t.status_level == 1

    def test_other_users_cannot_resubmit(self):
        with pytest.raises(we.WorkflowPermissionError):
            we.resubmit(self._rejected_state(), USER_B, LEVELS)

    def test_override_role_can_resubmit(self):
        t = we.resubmit(self._rejected_state(), USER_SUPER, LEVELS, is_override_role=True)
        assert t.workflow_id == 11

    def test_pending_return_cannot_be_resubmitted(self):
        with pytest.raises(we.WorkflowStateError):
            we.resubmit(new_state(), CREATOR, LEVELS)

    def test_start_without_ladder_is_completed(self):
        t = we.start([])
        assert t.new_entries == []
        assert t.workflow_id is None
        assert t.status_key == we.STATUS_APPROVER_COMPLETED

    def test_start_opens_level_one_at_sequence_zero(self):
        t = we.start(LEVELS)
        assert [(e.sequence_no, e.level, e.trail, e.role_id) for e in t.new_entries] == [
            (0, 1, we.TRAIL_PENDING, ROLE_A),
        ]
        assert t.workflow_id == 11


# =============================================================================
# SCENARIOS
# =============================================================================


class TestScenarios:

    def test_three_level_reject_and_reapprove(self):
        state = new_state()

        state = advance(state, we.approve(state, ROLE_A, USER_A, "ok", LEVELS))
        assert [(e.level, e.trail) for e in we.active_ledger(state.ledger)] == [
            (1, we.TRAIL_APPROVED), (2, we.TRAIL_PENDING),
        ]
        assert state.workflow_id == 12

        t = we.reject(state, ROLE_B, USER_B, "missing receipt", LEVELS)
        state = advance(state, t)
        assert t.new_entries[0].level == 2
        assert state.workflow_id == 11

        state = advance(state, we.approve(state, ROLE_A, USER_A, "fixed", LEVELS))
        active = we.active_ledger(state.ledger)
        pending_l2 = [e for e in active if e.level == 2 and e.trail == we.TRAIL_PENDING]
        assert len(pending_l2) == 1
        assert pending_l2[0].sequence_no == 4
        assert state.workflow_id == 12

        state = advance(state, we.approve(state, ROLE_B, USER_B, None, LEVELS))
        assert state.workflow_id == 13

        t = we.approve(state, ROLE_C, USER_C, None, LEVELS)
        state = advance(state, t)
        assert state.workflow_id is None
        assert t.status_key == we.STATUS_APPROVER_COMPLETED

        sequence = [e.sequence_no for e in state.ledger]
        assert sequence == list(range(len(sequence)))

        finalized = [e for e in state.ledger if e.is_finalized]
        assert len(finalized) == 1
        assert finalized[0].trail == we.TRAIL_APPROVED
        assert finalized[0].level == 3

    def test_override_from_level_one_completes_in_one_action(self):
        state = new_state()
        t = we.approve(state, ROLE_SUPER, USER_SUPER, None, LEVELS, is_override_role=True)
        state = advance(state, t)

        assert len(t.new_entries) == 5
        assert t.new_entries[-1].is_finalized
        assert state.workflow_id is None
        assert sum(e.is_finalized for e in we.active_ledger(state.ledger)) == 1
        with pytest.raises(we.WorkflowStateError):
            we.approve(state, ROLE_C, USER_C, None, LEVELS)
