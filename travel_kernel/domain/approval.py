"""
Approval domain types (``travel_kernel.domain.approval``).

Responsibility
--------------
Pure value objects and rules for the multi-level approval chain:
level ranking, per-approval state machine, parent-entity status sets,
the level gate, the parent-status aggregation rule, and the read-side
views returned to callers.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Levels carry an explicit integer rank; "all previous levels approved"
  is a numeric comparison, never insertion order.
* ``APPROVAL_TRANSITIONS`` defines the only valid status changes of a
  single approval.  PENDING is the only non-terminal state; the reset
  protocol is the one sanctioned way back to PENDING.
* A parent is fully approved only when no sibling approval remains
  PENDING after the current one is approved.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from travel_kernel.exceptions import ReasonTooShortError


# =========================================================================
# Levels
# =========================================================================


class ApprovalLevel(str, Enum):
    """One rung of an approval chain, ordered by ``rank``."""

    L1_SUPERVISOR = "l1_supervisor"
    L2_MANAGER = "l2_manager"
    L3_DIRECTOR = "l3_director"
    L4_SENIOR_DIRECTOR = "l4_senior_director"
    L5_EXECUTIVE = "l5_executive"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> ApprovalLevel:
        for level, level_rank in _LEVEL_RANK.items():
            if level_rank == rank:
                return level
        raise ValueError(f"No approval level with rank {rank}")


_LEVEL_RANK: dict[ApprovalLevel, int] = {
    ApprovalLevel.L1_SUPERVISOR: 1,
    ApprovalLevel.L2_MANAGER: 2,
    ApprovalLevel.L3_DIRECTOR: 3,
    ApprovalLevel.L4_SENIOR_DIRECTOR: 4,
    ApprovalLevel.L5_EXECUTIVE: 5,
}


# =========================================================================
# Approval record lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Status of a single approval record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.REVISION_REQUESTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.REVISION_REQUESTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.REVISION_REQUESTED,
})


class ApprovalAction(str, Enum):
    """Verbs an approver can apply to a PENDING approval."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


ACTION_TARGET_STATUS: dict[ApprovalAction, ApprovalStatus] = {
    ApprovalAction.APPROVE: ApprovalStatus.APPROVED,
    ApprovalAction.REJECT: ApprovalStatus.REJECTED,
    ApprovalAction.REQUEST_REVISION: ApprovalStatus.REVISION_REQUESTED,
}


def is_valid_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Approvable entities
# =========================================================================


class EntityType(str, Enum):
    """Kinds of entity that carry a generic approval chain."""

    TRAVEL_REQUEST = "travel_request"
    CLAIM = "claim"


class TravelStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED_L1 = "approved_l1"
    APPROVED_L2 = "approved_l2"
    APPROVED_L3 = "approved_l3"
    APPROVED_L4 = "approved_l4"
    APPROVED_L5 = "approved_l5"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION = "revision"
    LOCKED = "locked"
    CLOSED = "closed"


class ClaimStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION = "revision"
    PAID = "paid"


EDITABLE_TRAVEL_STATUSES: frozenset[TravelStatus] = frozenset({
    TravelStatus.DRAFT,
    TravelStatus.REVISION,
})

AWAITING_TRAVEL_STATUSES: frozenset[TravelStatus] = frozenset({
    TravelStatus.SUBMITTED,
    TravelStatus.APPROVED_L1,
    TravelStatus.APPROVED_L2,
    TravelStatus.APPROVED_L3,
    TravelStatus.APPROVED_L4,
    TravelStatus.APPROVED_L5,
})

EDITABLE_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.DRAFT,
    ClaimStatus.REVISION,
})

AWAITING_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.SUBMITTED,
})

# Claims that still block closing their travel request
SETTLED_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.PAID,
    ClaimStatus.REJECTED,
})


def travel_partial_status(level: ApprovalLevel) -> TravelStatus:
    """Marker reflecting the highest level cleared so far."""
    return TravelStatus(f"approved_l{level.rank}")


class ApprovableEntity(Protocol):
    """Capability shared by every entity that carries an approval chain.

    The state machine is written once against this interface; the ORM
    models ``TravelRequest`` and ``Claim`` implement it.
    """

    id: UUID
    requester_id: UUID

    @property
    def entity_type(self) -> EntityType: ...

    @property
    def business_key(self) -> str: ...

    @property
    def current_status(self) -> str: ...

    @property
    def approvals(self) -> Sequence: ...

    def is_editable(self) -> bool: ...

    def is_awaiting_approval(self) -> bool: ...

    def submitted_status(self) -> str: ...

    def approved_status(self) -> str: ...

    def rejected_status(self) -> str: ...

    def revision_status(self) -> str: ...

    def partial_status(self, level: ApprovalLevel) -> str: ...

    def advance(self, new_status: str) -> None: ...


# =========================================================================
# Pure rules
# =========================================================================


@dataclass(frozen=True)
class SiblingState:
    """Minimal view of a sibling approval used by the pure rules."""

    approval_id: UUID
    level: ApprovalLevel
    status: ApprovalStatus


def find_level_blocker(
    level: ApprovalLevel,
    siblings: Iterable[SiblingState],
) -> SiblingState | None:
    """Return the lowest-ranked sibling below ``level`` that is not APPROVED."""
    blockers = sorted(
        (
            s for s in siblings
            if s.level.rank < level.rank and s.status != ApprovalStatus.APPROVED
        ),
        key=lambda s: s.level.rank,
    )
    return blockers[0] if blockers else None


def is_fully_approved(
    approval_id: UUID,
    siblings: Iterable[SiblingState],
) -> bool:
    """True if ``approval_id`` was the only PENDING approval on its parent."""
    return not any(
        s.approval_id != approval_id and s.status == ApprovalStatus.PENDING
        for s in siblings
    )


def require_min_length(value: str | None, min_length: int, field_name: str) -> str:
    """Return the stripped value or raise ReasonTooShortError."""
    text = (value or "").strip()
    if len(text) < min_length:
        raise ReasonTooShortError(field_name, min_length, len(text))
    return text


# =========================================================================
# Views returned to callers
# =========================================================================


@dataclass(frozen=True)
class ApprovalView:
    """Immutable snapshot of one approval record."""

    approval_id: UUID
    approval_number: str
    entity_type: EntityType
    entity_id: UUID
    entity_number: str
    entity_status: str
    level: ApprovalLevel
    approver_id: UUID
    status: ApprovalStatus
    comments: str | None = None
    rejection_reason: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class EntitySnapshot:
    """Immutable snapshot of an approvable entity and its chain."""

    entity_type: EntityType
    entity_id: UUID
    business_key: str
    requester_id: UUID
    status: str
    submitted_at: datetime | None
    approvals: tuple[ApprovalView, ...] = ()
    amount: Decimal | None = None

    @property
    def levels(self) -> tuple[ApprovalLevel, ...]:
        return tuple(a.level for a in self.approvals)


@dataclass(frozen=True)
class ApprovalPage:
    """One page of approvals, newest first."""

    items: tuple[ApprovalView, ...]
    next_cursor: UUID | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None
