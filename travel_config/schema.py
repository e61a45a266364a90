"""
Engine configuration schema.

The human-authored YAML configuration is parsed by ``loader.py`` into the
frozen dataclasses below.  ``bridges.py`` turns an ``EngineConfiguration``
into the kernel's ``WorkflowPolicy``; the kernel never sees these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ReasonRules:
    """Minimum lengths of free-text reasons."""

    approval_min_length: int = 10
    bailout_reason_min_length: int = 5
    bailout_description_min_length: int = 10


@dataclass(frozen=True)
class BusinessKeyConfig:
    """Prefixes and zero padding of PREFIX-YEAR-NNNNN keys."""

    approval_prefix: str = "APR"
    travel_request_prefix: str = "TR"
    claim_prefix: str = "CLM"
    bailout_prefix: str = "BLT"
    padding: int = 5


@dataclass(frozen=True)
class TravelChainConfig:
    levels: tuple[str, ...] = ("l1_supervisor", "l2_manager", "l3_director")
    director_fallback_roles: tuple[str, ...] = ("director", "admin")


@dataclass(frozen=True)
class ClaimChainConfig:
    levels: tuple[str, ...] = ("l1_supervisor", "l2_manager")
    finance_review_threshold: Decimal = Decimal("5000000")
    finance_reviewer_roles: tuple[str, ...] = ("finance",)


@dataclass(frozen=True)
class RoleGroupsConfig:
    """Role names per authorization group."""

    chief: tuple[str, ...] = ("sales_chief", "manager", "director", "admin")
    director: tuple[str, ...] = ("director", "admin")
    finance: tuple[str, ...] = ("finance", "admin")
    admin_override: tuple[str, ...] = ("admin", "director", "manager")


@dataclass(frozen=True)
class PagingConfig:
    default_page_size: int = 50
    max_page_size: int = 100


@dataclass(frozen=True)
class TransactionConfig:
    # Attempts after the first one for store-level aborts
    max_retries: int = 1


@dataclass(frozen=True)
class EngineConfiguration:
    """Complete, validated engine configuration."""

    config_id: str
    version: int
    reasons: ReasonRules
    business_keys: BusinessKeyConfig
    travel_chain: TravelChainConfig
    claim_chain: ClaimChainConfig
    role_groups: RoleGroupsConfig
    paging: PagingConfig
    transactions: TransactionConfig
    empty_chain_policy: str = "hold"
    checksum: str = ""
