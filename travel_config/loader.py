"""
Configuration Loader (``travel_config.loader``).

Responsibility
--------------
Reads the engine configuration YAML and parses it into the frozen
dataclasses of ``travel_config.schema``.  This is internal tooling; the
runtime entry point is ``travel_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Sections left out of the YAML take the schema defaults; keys that are
  present are validated (known roles and levels, positive numbers).
* ``compute_checksum`` gives a deterministic SHA-256 over the parsed
  document for change detection.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown role / level / policy, non-positive numbers  -> ``ValueError``
  listing every problem found.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from travel_config.schema import (
    BusinessKeyConfig,
    ClaimChainConfig,
    EngineConfiguration,
    PagingConfig,
    ReasonRules,
    RoleGroupsConfig,
    TransactionConfig,
    TravelChainConfig,
)
from travel_kernel.domain.approval import ApprovalLevel
from travel_kernel.domain.policy import EmptyChainPolicy
from travel_kernel.domain.roles import Role

_KNOWN_ROLES = frozenset(r.value for r in Role)
_KNOWN_LEVELS = frozenset(lv.value for lv in ApprovalLevel)
_KNOWN_EMPTY_CHAIN_POLICIES = frozenset(p.value for p in EmptyChainPolicy)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _names(value: Any, known: frozenset[str], where: str, errors: list[str]) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    names = tuple(str(v).strip().lower() for v in (value or ()))
    for name in names:
        if name not in known:
            errors.append(f"{where}: unknown value {name!r}")
    return names


def _positive_int(value: Any, where: str, errors: list[str]) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(f"{where}: expected an integer, got {value!r}")
        return 0
    if number <= 0:
        errors.append(f"{where}: must be positive, got {number}")
    return number


def _decimal(value: Any, where: str, errors: list[str]) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{where}: expected a number, got {value!r}")
        return Decimal("0")


def parse_configuration(data: dict[str, Any]) -> EngineConfiguration:
    """
    Parse a configuration document.

    Raises:
        ValueError: with every validation problem, one per line.
    """
    errors: list[str] = []

    reasons_data = data.get("reasons") or {}
    reason_defaults = ReasonRules()
    reasons = ReasonRules(
        approval_min_length=_positive_int(
            reasons_data.get("approval_min_length", reason_defaults.approval_min_length),
            "reasons.approval_min_length", errors,
        ),
        bailout_reason_min_length=_positive_int(
            reasons_data.get(
                "bailout_reason_min_length", reason_defaults.bailout_reason_min_length,
            ),
            "reasons.bailout_reason_min_length", errors,
        ),
        bailout_description_min_length=_positive_int(
            reasons_data.get(
                "bailout_description_min_length",
                reason_defaults.bailout_description_min_length,
            ),
            "reasons.bailout_description_min_length", errors,
        ),
    )

    keys_data = data.get("business_keys") or {}
    key_defaults = BusinessKeyConfig()
    prefixes = keys_data.get("prefixes") or {}
    business_keys = BusinessKeyConfig(
        approval_prefix=str(prefixes.get("approval", key_defaults.approval_prefix)),
        travel_request_prefix=str(
            prefixes.get("travel_request", key_defaults.travel_request_prefix)
        ),
        claim_prefix=str(prefixes.get("claim", key_defaults.claim_prefix)),
        bailout_prefix=str(prefixes.get("bailout", key_defaults.bailout_prefix)),
        padding=_positive_int(
            keys_data.get("padding", key_defaults.padding), "business_keys.padding", errors,
        ),
    )
    all_prefixes = [
        business_keys.approval_prefix,
        business_keys.travel_request_prefix,
        business_keys.claim_prefix,
        business_keys.bailout_prefix,
    ]
    if len(set(all_prefixes)) != len(all_prefixes):
        errors.append(f"business_keys.prefixes: prefixes must be distinct, got {all_prefixes}")

    chains = data.get("chains") or {}
    travel_data = chains.get("travel_request") or {}
    travel_defaults = TravelChainConfig()
    travel_chain = TravelChainConfig(
        levels=_names(
            travel_data.get("levels", travel_defaults.levels),
            _KNOWN_LEVELS, "chains.travel_request.levels", errors,
        ),
        director_fallback_roles=_names(
            travel_data.get("director_fallback_roles", travel_defaults.director_fallback_roles),
            _KNOWN_ROLES, "chains.travel_request.director_fallback_roles", errors,
        ),
    )

    claim_data = chains.get("claim") or {}
    claim_defaults = ClaimChainConfig()
    claim_chain = ClaimChainConfig(
        levels=_names(
            claim_data.get("levels", claim_defaults.levels),
            _KNOWN_LEVELS, "chains.claim.levels", errors,
        ),
        finance_review_threshold=_decimal(
            claim_data.get("finance_review_threshold", claim_defaults.finance_review_threshold),
            "chains.claim.finance_review_threshold", errors,
        ),
        finance_reviewer_roles=_names(
            claim_data.get("finance_reviewer_roles", claim_defaults.finance_reviewer_roles),
            _KNOWN_ROLES, "chains.claim.finance_reviewer_roles", errors,
        ),
    )
    unsupported = set(claim_chain.levels) - {
        ApprovalLevel.L1_SUPERVISOR.value, ApprovalLevel.L2_MANAGER.value,
    }
    if unsupported:
        errors.append(
            "chains.claim.levels: only l1_supervisor and l2_manager apply to claims, "
            f"got {sorted(unsupported)}"
        )

    groups_data = data.get("role_groups") or {}
    group_defaults = RoleGroupsConfig()

    def group(name: str) -> tuple[str, ...]:
        return _names(
            groups_data.get(name, getattr(group_defaults, name)),
            _KNOWN_ROLES, f"role_groups.{name}", errors,
        )

    role_groups = RoleGroupsConfig(
        chief=group("chief"),
        director=group("director"),
        finance=group("finance"),
        admin_override=group("admin_override"),
    )

    paging_data = data.get("paging") or {}
    paging_defaults = PagingConfig()
    paging = PagingConfig(
        default_page_size=_positive_int(
            paging_data.get("default_page_size", paging_defaults.default_page_size),
            "paging.default_page_size", errors,
        ),
        max_page_size=_positive_int(
            paging_data.get("max_page_size", paging_defaults.max_page_size),
            "paging.max_page_size", errors,
        ),
    )
    if paging.default_page_size > paging.max_page_size:
        errors.append("paging.default_page_size: must not exceed paging.max_page_size")

    tx_data = data.get("transactions") or {}
    max_retries = tx_data.get("max_retries", TransactionConfig().max_retries)
    if not isinstance(max_retries, int) or max_retries < 0:
        errors.append(
            f"transactions.max_retries: must be a non-negative integer, got {max_retries!r}"
        )
        max_retries = 0
    transactions = TransactionConfig(max_retries=max_retries)

    empty_chain_policy = str(data.get("empty_chain_policy", "hold")).strip().lower()
    if empty_chain_policy not in _KNOWN_EMPTY_CHAIN_POLICIES:
        errors.append(f"empty_chain_policy: unknown value {empty_chain_policy!r}")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return EngineConfiguration(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        reasons=reasons,
        business_keys=business_keys,
        travel_chain=travel_chain,
        claim_chain=claim_chain,
        role_groups=role_groups,
        paging=paging,
        transactions=transactions,
        empty_chain_policy=empty_chain_policy,
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> EngineConfiguration:
    """Load and parse a configuration file."""
    return parse_configuration(load_yaml_file(path))
