"""ORM models for the travel kernel."""

from travel_kernel.models.approval import Approval
from travel_kernel.models.audit_record import AuditAction, AuditRecord
from travel_kernel.models.bailout import Bailout
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.models.user import Department, User

__all__ = [
    "Approval",
    "AuditAction",
    "AuditRecord",
    "Bailout",
    "Claim",
    "Department",
    "TravelRequest",
    "User",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every module that declares tables so Base.metadata is complete."""
    import travel_kernel.services.sequence_service  # noqa: F401
