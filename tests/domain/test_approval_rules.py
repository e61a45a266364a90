"""
Tests for the pure approval rules (``travel_kernel.domain.approval``).

Covers:
- Level ranks are explicit integers, independent of declaration order
- APPROVAL_TRANSITIONS: PENDING is the only non-terminal status
- find_level_blocker(): lowest unapproved lower level blocks
- is_fully_approved(): the just-processed approval was the last PENDING one
- require_min_length(): stripped length against the minimum
- Frozen views
"""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from travel_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalLevel,
    ApprovalPage,
    ApprovalStatus,
    SiblingState,
    TravelStatus,
    find_level_blocker,
    is_fully_approved,
    is_valid_transition,
    require_min_length,
    travel_partial_status,
)
from travel_kernel.exceptions import ReasonTooShortError


def sibling(level: ApprovalLevel, status: ApprovalStatus) -> SiblingState:
    return SiblingState(approval_id=uuid4(), level=level, status=status)


# =========================================================================
# Levels
# =========================================================================


class TestApprovalLevel:
    def test_ranks_are_one_through_five(self):
        assert [lv.rank for lv in ApprovalLevel] == [1, 2, 3, 4, 5]

    def test_from_rank_round_trips(self):
        for level in ApprovalLevel:
            assert ApprovalLevel.from_rank(level.rank) is level

    def test_from_rank_unknown(self):
        with pytest.raises(ValueError):
            ApprovalLevel.from_rank(9)

    def test_partial_status_marker(self):
        assert travel_partial_status(ApprovalLevel.L1_SUPERVISOR) == TravelStatus.APPROVED_L1
        assert travel_partial_status(ApprovalLevel.L3_DIRECTOR) == TravelStatus.APPROVED_L3


# =========================================================================
# Approval record state machine
# =========================================================================


class TestApprovalTransitions:
    def test_pending_can_reach_every_terminal_status(self):
        for target in TERMINAL_APPROVAL_STATUSES:
            assert is_valid_transition(ApprovalStatus.PENDING, target)

    def test_terminal_statuses_have_no_outgoing_edges(self):
        for status in TERMINAL_APPROVAL_STATUSES:
            assert APPROVAL_TRANSITIONS[status] == frozenset()

    def test_approved_cannot_become_rejected(self):
        assert not is_valid_transition(ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)

    def test_pending_to_pending_is_not_a_transition(self):
        assert not is_valid_transition(ApprovalStatus.PENDING, ApprovalStatus.PENDING)


# =========================================================================
# Level gate
# =========================================================================


class TestFindLevelBlocker:
    def test_l1_is_never_blocked(self):
        siblings = [
            sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.PENDING),
            sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING),
        ]
        assert find_level_blocker(ApprovalLevel.L1_SUPERVISOR, siblings) is None

    def test_l2_blocked_by_pending_l1(self):
        l1 = sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.PENDING)
        siblings = [l1, sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING)]
        assert find_level_blocker(ApprovalLevel.L2_MANAGER, siblings) == l1

    def test_lowest_blocker_is_reported(self):
        l1 = sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.PENDING)
        l2 = sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING)
        siblings = [l2, sibling(ApprovalLevel.L3_DIRECTOR, ApprovalStatus.PENDING), l1]
        assert find_level_blocker(ApprovalLevel.L3_DIRECTOR, siblings) == l1

    def test_higher_levels_do_not_block(self):
        siblings = [
            sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.APPROVED),
            sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING),
            sibling(ApprovalLevel.L3_DIRECTOR, ApprovalStatus.PENDING),
        ]
        assert find_level_blocker(ApprovalLevel.L2_MANAGER, siblings) is None

    def test_skipped_level_does_not_block(self):
        # L2 was never resolved; L3 depends only on L1
        siblings = [
            sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.APPROVED),
            sibling(ApprovalLevel.L3_DIRECTOR, ApprovalStatus.PENDING),
        ]
        assert find_level_blocker(ApprovalLevel.L3_DIRECTOR, siblings) is None

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        statuses=st.lists(st.sampled_from(list(ApprovalStatus)), min_size=5, max_size=5),
        target=st.sampled_from(list(ApprovalLevel)),
    )
    def test_blocker_exists_iff_some_lower_level_unapproved(self, statuses, target):
        siblings = [sibling(level, status) for level, status in zip(ApprovalLevel, statuses)]
        lower = [s for s in siblings if s.level.rank < target.rank]
        blocker = find_level_blocker(target, siblings)
        if all(s.status == ApprovalStatus.APPROVED for s in lower):
            assert blocker is None
        else:
            assert blocker is not None
            assert blocker.level.rank < target.rank
            assert blocker.status != ApprovalStatus.APPROVED
            assert all(
                s.status == ApprovalStatus.APPROVED
                for s in lower
                if s.level.rank < blocker.level.rank
            )


# =========================================================================
# Aggregation
# =========================================================================


class TestIsFullyApproved:
    def test_last_pending_clears_parent(self):
        l1 = sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.APPROVED)
        l2 = sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING)
        assert is_fully_approved(l2.approval_id, [l1, l2])

    def test_other_pending_keeps_parent_open(self):
        l1 = sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.PENDING)
        l2 = sibling(ApprovalLevel.L2_MANAGER, ApprovalStatus.PENDING)
        assert not is_fully_approved(l1.approval_id, [l1, l2])

    def test_single_approval_chain(self):
        only = sibling(ApprovalLevel.L1_SUPERVISOR, ApprovalStatus.PENDING)
        assert is_fully_approved(only.approval_id, [only])


# =========================================================================
# Reasons
# =========================================================================


class TestRequireMinLength:
    def test_returns_stripped_text(self):
        assert require_min_length("  need more detail ", 10, "comments") == "need more detail"

    def test_whitespace_does_not_count(self):
        with pytest.raises(ReasonTooShortError) as exc_info:
            require_min_length("   short   ", 10, "reason")
        assert exc_info.value.field_name == "reason"
        assert exc_info.value.min_length == 10
        assert exc_info.value.actual_length == 5

    def test_none_is_too_short(self):
        with pytest.raises(ReasonTooShortError):
            require_min_length(None, 1, "reason")

    def test_exact_minimum_is_accepted(self):
        assert require_min_length("0123456789", 10, "reason") == "0123456789"


class TestViews:
    def test_page_without_cursor_has_no_more(self):
        assert not ApprovalPage(items=()).has_more

    def test_page_is_frozen(self):
        page = ApprovalPage(items=(), next_cursor=uuid4())
        with pytest.raises(FrozenInstanceError):
            page.next_cursor = None
