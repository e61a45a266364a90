"""Selectors for the travel kernel (read side)."""

from travel_kernel.selectors.approval_selector import ApprovalSelector
from travel_kernel.selectors.bailout_selector import BailoutSelector

__all__ = [
    "ApprovalSelector",
    "BailoutSelector",
]
