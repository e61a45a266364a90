"""
RevisionResetService -- returns a whole approval chain to its start.

Responsibility:
    When any approver sends an entity back for revision, every approval of
    that entity (APPROVED, REJECTED, REVISION_REQUESTED or still PENDING)
    goes back to PENDING with its decision timestamps cleared, and the
    entity moves to its editable REVISION status.  Approvers who already
    signed must sign again after the requester resubmits.

Architecture position:
    Kernel > Services.  Invoked by ApprovalService inside the same
    transaction as the revision request itself.

Invariants enforced:
    - Reset is total: no approval of the parent survives in a non-PENDING
      state.
    - Approval identity, level, approver and business key are untouched,
      so levels stay unique and ordering is preserved on resubmission.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import ApprovalStatus
from travel_kernel.logging_config import get_logger
from travel_kernel.models.approval import Approval
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.services.auditor_service import AuditorService
from travel_kernel.services.entity_access import reload_siblings

logger = get_logger("services.revision_reset")


class RevisionResetService:
    """Full-chain reset; caller holds the parent lock and owns the transaction."""

    def __init__(self, session: Session, auditor: AuditorService):
        self._session = session
        self._auditor = auditor

    def reset_chain(
        self,
        entity: TravelRequest | Claim,
        actor_id: UUID,
        trigger_approval_id: UUID,
    ) -> list[Approval]:
        """
        Reset every approval of ``entity`` to PENDING and move it to REVISION.

        Returns:
            The approvals of the entity after the reset, lowest level first.
        """
        fk = (
            Approval.travel_request_id
            if isinstance(entity, TravelRequest)
            else Approval.claim_id
        )
        result = self._session.execute(
            update(Approval)
            .where(fk == entity.id)
            .values(
                status=ApprovalStatus.PENDING.value,
                approved_at=None,
                rejected_at=None,
            )
            .execution_options(synchronize_session=False)
        )

        approvals = reload_siblings(self._session, entity)
        entity.advance(entity.revision_status())
        self._session.flush()

        reset_ids = [a.id for a in approvals]
        self._auditor.record_chain_reset(
            entity,
            actor_id=actor_id,
            trigger_approval_id=trigger_approval_id,
            reset_approval_ids=reset_ids,
        )

        logger.info(
            "chain_reset",
            extra={
                "business_key": entity.business_key,
                "reset_count": result.rowcount,
                "trigger_approval_id": str(trigger_approval_id),
            },
        )
        return approvals
