"""
Workflow policy (``travel_kernel.domain.policy``).

Responsibility
--------------
Frozen value object holding every tunable the kernel services consult:
minimum reason lengths, business-key prefixes, which chain levels are
walked, the director fallback, the claim finance-review threshold, the
role groups that gate bailout stages and lifecycle operations, and
paging limits.

Architecture position
---------------------
**Kernel domain layer** -- pure.  The kernel never reads configuration
files; ``travel_config.bridges.build_workflow_policy`` produces this
object from the active YAML configuration.  The defaults below are the
behaviour of the engine when no configuration is supplied.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from travel_kernel.domain.approval import ApprovalLevel
from travel_kernel.domain.bailout import RoleGroup
from travel_kernel.domain.roles import Role


class EmptyChainPolicy(str, Enum):
    """What happens when no approver resolves at any level."""

    # Stay SUBMITTED with no approvals; needs an administrator to act.
    HOLD = "hold"
    # Go straight to APPROVED with zero human sign-off.
    AUTO_APPROVE = "auto_approve"


@dataclass(frozen=True)
class WorkflowPolicy:
    approval_reason_min_length: int = 10
    bailout_reason_min_length: int = 5
    bailout_description_min_length: int = 10

    approval_key_prefix: str = "APR"
    travel_request_key_prefix: str = "TR"
    claim_key_prefix: str = "CLM"
    bailout_key_prefix: str = "BLT"
    key_padding: int = 5

    travel_chain_levels: tuple[ApprovalLevel, ...] = (
        ApprovalLevel.L1_SUPERVISOR,
        ApprovalLevel.L2_MANAGER,
        ApprovalLevel.L3_DIRECTOR,
    )
    claim_chain_levels: tuple[ApprovalLevel, ...] = (
        ApprovalLevel.L1_SUPERVISOR,
        ApprovalLevel.L2_MANAGER,
    )
    director_fallback_roles: frozenset[Role] = frozenset({Role.DIRECTOR, Role.ADMIN})
    claim_finance_review_threshold: Decimal = Decimal("5000000")
    claim_finance_reviewer_roles: frozenset[Role] = frozenset({Role.FINANCE})
    empty_chain_policy: EmptyChainPolicy = EmptyChainPolicy.HOLD

    chief_roles: frozenset[Role] = frozenset({
        Role.SALES_CHIEF, Role.MANAGER, Role.DIRECTOR, Role.ADMIN,
    })
    director_roles: frozenset[Role] = frozenset({Role.DIRECTOR, Role.ADMIN})
    finance_roles: frozenset[Role] = frozenset({Role.FINANCE, Role.ADMIN})
    admin_override_roles: frozenset[Role] = frozenset({
        Role.ADMIN, Role.DIRECTOR, Role.MANAGER,
    })

    default_page_size: int = 50
    max_page_size: int = 100

    def roles_for(self, group: RoleGroup) -> frozenset[Role]:
        """Roles belonging to a named authorization group."""
        if group == RoleGroup.CHIEF:
            return self.chief_roles
        if group == RoleGroup.DIRECTOR:
            return self.director_roles
        if group == RoleGroup.FINANCE:
            return self.finance_roles
        raise ValueError(f"Role group {group.value} is not role-resolved")

    def key_prefix(self, kind: str) -> str:
        return {
            "approval": self.approval_key_prefix,
            "travel_request": self.travel_request_key_prefix,
            "claim": self.claim_key_prefix,
            "bailout": self.bailout_key_prefix,
        }[kind]


DEFAULT_POLICY = WorkflowPolicy()
