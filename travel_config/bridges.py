"""
Config -> Kernel Bridges.

Converts an ``EngineConfiguration`` into the kernel's ``WorkflowPolicy``.
This lives in travel_config (the producer) because the kernel must never
import travel_config.

Usage:
    from travel_config import get_active_config
    from travel_config.bridges import build_workflow_policy

    policy = build_workflow_policy(get_active_config())
"""

from __future__ import annotations

from travel_config.schema import EngineConfiguration
from travel_kernel.domain.approval import ApprovalLevel
from travel_kernel.domain.policy import EmptyChainPolicy, WorkflowPolicy
from travel_kernel.domain.roles import parse_roles


def _levels(names: tuple[str, ...]) -> tuple[ApprovalLevel, ...]:
    """Levels in rank order, duplicates dropped."""
    return tuple(sorted({ApprovalLevel(n) for n in names}, key=lambda lv: lv.rank))


def build_workflow_policy(config: EngineConfiguration) -> WorkflowPolicy:
    """Build the kernel policy object from a parsed configuration."""
    return WorkflowPolicy(
        approval_reason_min_length=config.reasons.approval_min_length,
        bailout_reason_min_length=config.reasons.bailout_reason_min_length,
        bailout_description_min_length=config.reasons.bailout_description_min_length,
        approval_key_prefix=config.business_keys.approval_prefix,
        travel_request_key_prefix=config.business_keys.travel_request_prefix,
        claim_key_prefix=config.business_keys.claim_prefix,
        bailout_key_prefix=config.business_keys.bailout_prefix,
        key_padding=config.business_keys.padding,
        travel_chain_levels=_levels(config.travel_chain.levels),
        claim_chain_levels=_levels(config.claim_chain.levels),
        director_fallback_roles=parse_roles(config.travel_chain.director_fallback_roles),
        claim_finance_review_threshold=config.claim_chain.finance_review_threshold,
        claim_finance_reviewer_roles=parse_roles(config.claim_chain.finance_reviewer_roles),
        empty_chain_policy=EmptyChainPolicy(config.empty_chain_policy),
        chief_roles=parse_roles(config.role_groups.chief),
        director_roles=parse_roles(config.role_groups.director),
        finance_roles=parse_roles(config.role_groups.finance),
        admin_override_roles=parse_roles(config.role_groups.admin_override),
        default_page_size=config.paging.default_page_size,
        max_page_size=config.paging.max_page_size,
    )
