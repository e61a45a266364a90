"""
Organisational roles (``travel_kernel.domain.roles``).

Pure value types.  Which role belongs to which authorization group
(chief-equivalent, director-equivalent, finance-equivalent, admin
override) is configuration, see ``travel_config``.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Role held by a user account."""

    EMPLOYEE = "employee"
    SALES_EMPLOYEE = "sales_employee"
    SUPERVISOR = "supervisor"
    SALES_CHIEF = "sales_chief"
    MANAGER = "manager"
    DIRECTOR = "director"
    FINANCE = "finance"
    ADMIN = "admin"


def parse_roles(values) -> frozenset[Role]:
    """Parse a collection of role names (any case) into a frozenset of Role."""
    return frozenset(Role(str(v).lower()) for v in values)
