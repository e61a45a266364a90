"""Services for the travel kernel (write side).  None of them commit."""

from travel_kernel.services.approval_service import ApprovalService
from travel_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from travel_kernel.services.bailout_service import BailoutService
from travel_kernel.services.chain_builder import ChainBuilder
from travel_kernel.services.entity_service import EntityLifecycleService
from travel_kernel.services.identity_verifier import (
    FixedApproverCheck,
    IdentityVerifier,
    RoleMembershipCheck,
)
from travel_kernel.services.revision_reset import RevisionResetService
from travel_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalService",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "BailoutService",
    "ChainBuilder",
    "EntityLifecycleService",
    "FixedApproverCheck",
    "IdentityVerifier",
    "RevisionResetService",
    "RoleMembershipCheck",
    "SequenceService",
]
