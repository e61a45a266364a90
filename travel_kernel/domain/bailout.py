"""
Bailout domain types (``travel_kernel.domain.bailout``).

Responsibility
--------------
Pure types for the cash-advance chain: a linear, role-resolved
state machine DRAFT -> SUBMITTED -> APPROVED_CHIEF -> APPROVED_DIRECTOR
-> DISBURSED, with REJECTED reachable from SUBMITTED or APPROVED_CHIEF.

Invariants enforced
-------------------
* ``BAILOUT_TRANSITIONS`` is the only source of valid moves; status only
  moves forward except into the terminal REJECTED.
* Every action names the status it requires (``ACTION_RULES``) and the
  role group that may perform it.  The approver is resolved by role at
  call time, never fixed when the bailout is created.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class BailoutStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED_CHIEF = "approved_chief"
    APPROVED_DIRECTOR = "approved_director"
    REJECTED = "rejected"
    DISBURSED = "disbursed"


class BailoutCategory(str, Enum):
    TRANSPORT = "transport"
    HOTEL = "hotel"
    MEAL = "meal"
    OTHER = "other"


class BailoutAction(str, Enum):
    SUBMIT = "submit"
    APPROVE_CHIEF = "approve_chief"
    APPROVE_DIRECTOR = "approve_director"
    DISBURSE = "disburse"
    REJECT = "reject"


class RoleGroup(str, Enum):
    """Authorization group named in configuration."""

    CHIEF = "chief"
    DIRECTOR = "director"
    FINANCE = "finance"
    REQUESTER = "requester"


BAILOUT_TRANSITIONS: dict[BailoutStatus, frozenset[BailoutStatus]] = {
    BailoutStatus.DRAFT: frozenset({BailoutStatus.SUBMITTED}),
    BailoutStatus.SUBMITTED: frozenset({
        BailoutStatus.APPROVED_CHIEF,
        BailoutStatus.REJECTED,
    }),
    BailoutStatus.APPROVED_CHIEF: frozenset({
        BailoutStatus.APPROVED_DIRECTOR,
        BailoutStatus.REJECTED,
    }),
    BailoutStatus.APPROVED_DIRECTOR: frozenset({BailoutStatus.DISBURSED}),
    BailoutStatus.REJECTED: frozenset(),
    BailoutStatus.DISBURSED: frozenset(),
}

TERMINAL_BAILOUT_STATUSES: frozenset[BailoutStatus] = frozenset({
    BailoutStatus.REJECTED,
    BailoutStatus.DISBURSED,
})


@dataclass(frozen=True)
class BailoutActionRule:
    """Which statuses an action starts from, where it lands, who may do it."""

    action: BailoutAction
    from_statuses: frozenset[BailoutStatus]
    to_status: BailoutStatus
    role_group: RoleGroup


ACTION_RULES: dict[BailoutAction, BailoutActionRule] = {
    BailoutAction.SUBMIT: BailoutActionRule(
        action=BailoutAction.SUBMIT,
        from_statuses=frozenset({BailoutStatus.DRAFT}),
        to_status=BailoutStatus.SUBMITTED,
        role_group=RoleGroup.REQUESTER,
    ),
    BailoutAction.APPROVE_CHIEF: BailoutActionRule(
        action=BailoutAction.APPROVE_CHIEF,
        from_statuses=frozenset({BailoutStatus.SUBMITTED}),
        to_status=BailoutStatus.APPROVED_CHIEF,
        role_group=RoleGroup.CHIEF,
    ),
    BailoutAction.APPROVE_DIRECTOR: BailoutActionRule(
        action=BailoutAction.APPROVE_DIRECTOR,
        from_statuses=frozenset({BailoutStatus.APPROVED_CHIEF}),
        to_status=BailoutStatus.APPROVED_DIRECTOR,
        role_group=RoleGroup.DIRECTOR,
    ),
    BailoutAction.DISBURSE: BailoutActionRule(
        action=BailoutAction.DISBURSE,
        from_statuses=frozenset({BailoutStatus.APPROVED_DIRECTOR}),
        to_status=BailoutStatus.DISBURSED,
        role_group=RoleGroup.FINANCE,
    ),
    BailoutAction.REJECT: BailoutActionRule(
        action=BailoutAction.REJECT,
        from_statuses=frozenset({
            BailoutStatus.SUBMITTED,
            BailoutStatus.APPROVED_CHIEF,
        }),
        to_status=BailoutStatus.REJECTED,
        role_group=RoleGroup.CHIEF,
    ),
}

# Sanity: every rule must be an edge of the state machine
for _rule in ACTION_RULES.values():
    for _from in _rule.from_statuses:
        assert _rule.to_status in BAILOUT_TRANSITIONS[_from], _rule


@dataclass(frozen=True)
class BailoutView:
    """Immutable snapshot of a bailout."""

    bailout_id: UUID
    bailout_number: str
    travel_request_id: UUID
    requester_id: UUID
    category: BailoutCategory
    description: str
    amount: Decimal
    status: BailoutStatus
    submitted_at: datetime | None = None
    chief_approver_id: UUID | None = None
    chief_approved_at: datetime | None = None
    chief_notes: str | None = None
    director_approver_id: UUID | None = None
    director_approved_at: datetime | None = None
    director_notes: str | None = None
    rejected_by_id: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    disbursed_by_id: UUID | None = None
    disbursed_at: datetime | None = None
    disbursement_ref: str | None = None
