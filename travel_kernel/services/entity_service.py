"""
EntityLifecycleService -- creation and finance lifecycle of approvable entities.

Responsibility:
    Creates travel requests and claims in DRAFT with their business keys,
    applies requester edits while an entity is in DRAFT or REVISION,
    and drives the post-approval finance steps: locking and closing a
    travel request, marking a claim paid.  Everything between DRAFT and
    APPROVED belongs to ChainBuilder and ApprovalService.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - TR-/CLM- keys come from the locked per-year counter.
    - Claims can only be raised against an APPROVED or LOCKED request.
    - APPROVED -> LOCKED -> CLOSED for travel requests; a request closes
      only once none of its claims is still open.
    - APPROVED -> PAID for claims.
    - Lifecycle steps are gated by the finance role group.
    - Only the requester edits, and only in DRAFT or REVISION; every edit
      that changes a field writes an UPDATE audit record.

Failure modes:
    - RoleNotPermittedError: actor's role is not in the finance group.
    - NotEntityOwnerError: caller is not the requester on an edit.
    - InvalidEntityStateError: entity not in the required status, or a
      claim is still open on close.
    - EntityNotFoundError / UserNotFoundError.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import (
    SETTLED_CLAIM_STATUSES,
    ClaimStatus,
    EntitySnapshot,
    EntityType,
    TravelStatus,
)
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.identity import RoleProof
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.exceptions import (
    InvalidClaimInputError,
    InvalidEntityStateError,
    InvalidTravelRequestInputError,
    NotEntityOwnerError,
)
from travel_kernel.logging_config import get_logger
from travel_kernel.models.audit_record import AuditAction
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.services.auditor_service import AuditorService
from travel_kernel.services.chain_builder import snapshot_of
from travel_kernel.services.entity_access import load_approvable, load_user
from travel_kernel.services.identity_verifier import RoleMembershipCheck
from travel_kernel.services.sequence_service import SequenceService

logger = get_logger("services.entity_lifecycle")

# Travel statuses a claim may be raised against
_CLAIMABLE_TRAVEL_STATUSES = frozenset({TravelStatus.APPROVED, TravelStatus.LOCKED})


class EntityLifecycleService:
    """Creates entities and applies finance lifecycle steps; never commits."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        policy: WorkflowPolicy | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._policy = policy or DEFAULT_POLICY
        self._sequence = SequenceService(session)

    def _next_key(self, prefix: str) -> str:
        return self._sequence.next_business_key(
            prefix, self._clock.now().year, self._policy.key_padding,
        )

    def _require_finance(self, actor: RoleProof, operation: str) -> None:
        RoleMembershipCheck(self._policy.finance_roles, operation).authorize(None, actor)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_travel_request(
        self,
        requester_id: UUID,
        purpose: str,
        destination: str,
        start_date: date | None = None,
        end_date: date | None = None,
        estimated_budget: Decimal | None = None,
    ) -> EntitySnapshot:
        """Create a DRAFT travel request with a fresh TR- key."""
        load_user(self._session, requester_id)
        request = TravelRequest(
            request_number=self._next_key(self._policy.travel_request_key_prefix),
            requester_id=requester_id,
            purpose=purpose,
            destination=destination,
            start_date=start_date,
            end_date=end_date,
            estimated_budget=estimated_budget,
            status=TravelStatus.DRAFT.value,
            created_at=self._clock.now(),
        )
        self._session.add(request)
        self._session.flush()

        self._auditor.record_lifecycle(
            request, AuditAction.CREATE, actor_id=requester_id, from_status=None,
        )
        logger.info(
            "travel_request_created",
            extra={"business_key": request.request_number, "requester_id": str(requester_id)},
        )
        return snapshot_of(request)

    def create_claim(
        self,
        travel_request_id: UUID,
        requester_id: UUID,
        amount: Decimal,
        description: str,
    ) -> EntitySnapshot:
        """Create a DRAFT claim against an approved (or locked) travel request."""
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidClaimInputError("amount", "must be greater than zero")
        load_user(self._session, requester_id)
        request = load_approvable(
            self._session, EntityType.TRAVEL_REQUEST, travel_request_id,
        )
        if TravelStatus(request.status) not in _CLAIMABLE_TRAVEL_STATUSES:
            raise InvalidEntityStateError(
                "TravelRequest", str(travel_request_id), request.status, "create_claim",
            )

        claim = Claim(
            claim_number=self._next_key(self._policy.claim_key_prefix),
            travel_request_id=travel_request_id,
            requester_id=requester_id,
            amount=amount,
            description=description,
            status=ClaimStatus.DRAFT.value,
            created_at=self._clock.now(),
        )
        self._session.add(claim)
        self._session.flush()

        self._auditor.record_lifecycle(
            claim, AuditAction.CREATE, actor_id=requester_id, from_status=None,
            extra={"travel_request_id": travel_request_id, "amount": claim.amount},
        )
        logger.info(
            "claim_created",
            extra={"business_key": claim.claim_number, "amount": str(claim.amount)},
        )
        return snapshot_of(claim)

    # ------------------------------------------------------------------
    # Requester edits (DRAFT / REVISION only)
    # ------------------------------------------------------------------

    def _load_for_edit(self, entity_type: EntityType, entity_id: UUID, requester_id: UUID):
        entity = load_approvable(self._session, entity_type, entity_id, for_update=True)
        if entity.requester_id != requester_id:
            raise NotEntityOwnerError(type(entity).__name__, str(entity_id), str(requester_id))
        if not entity.is_editable():
            raise InvalidEntityStateError(
                type(entity).__name__, str(entity_id), entity.status, "update",
            )
        return entity

    def _apply_changes(self, entity, requester_id: UUID, values: dict) -> EntitySnapshot:
        changes = {
            name: {"from": getattr(entity, name), "to": value}
            for name, value in values.items()
            if value is not None and getattr(entity, name) != value
        }
        if not changes:
            return snapshot_of(entity)

        for name, change in changes.items():
            setattr(entity, name, change["to"])
        self._session.flush()

        self._auditor.record_lifecycle(
            entity, AuditAction.UPDATE, actor_id=requester_id, from_status=entity.status,
            extra={"changes": changes},
        )
        logger.info(
            "entity_updated",
            extra={"business_key": entity.business_key, "fields": sorted(changes)},
        )
        return snapshot_of(entity)

    def update_travel_request(
        self,
        travel_request_id: UUID,
        requester_id: UUID,
        *,
        purpose: str | None = None,
        destination: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        estimated_budget: Decimal | None = None,
    ) -> EntitySnapshot:
        """Edit a DRAFT or REVISION travel request; None leaves a field unchanged."""
        request = self._load_for_edit(
            EntityType.TRAVEL_REQUEST, travel_request_id, requester_id,
        )
        if destination is not None and not destination.strip():
            raise InvalidTravelRequestInputError("destination", "must not be blank")
        if estimated_budget is not None:
            estimated_budget = Decimal(str(estimated_budget))
            if estimated_budget <= 0:
                raise InvalidTravelRequestInputError(
                    "estimated_budget", "must be greater than zero",
                )
        start = start_date or request.start_date
        end = end_date or request.end_date
        if start is not None and end is not None and start >= end:
            raise InvalidTravelRequestInputError("end_date", "must be after start date")

        return self._apply_changes(request, requester_id, {
            "purpose": purpose,
            "destination": destination,
            "start_date": start_date,
            "end_date": end_date,
            "estimated_budget": estimated_budget,
        })

    def update_claim(
        self,
        claim_id: UUID,
        requester_id: UUID,
        *,
        amount: Decimal | None = None,
        description: str | None = None,
    ) -> EntitySnapshot:
        """Edit a DRAFT or REVISION claim; None leaves a field unchanged."""
        claim = self._load_for_edit(EntityType.CLAIM, claim_id, requester_id)
        if amount is not None:
            amount = Decimal(str(amount))
            if amount <= 0:
                raise InvalidClaimInputError("amount", "must be greater than zero")
        return self._apply_changes(claim, requester_id, {
            "amount": amount,
            "description": description,
        })

    # ------------------------------------------------------------------
    # Finance lifecycle
    # ------------------------------------------------------------------

    def lock_travel_request(self, travel_request_id: UUID, actor: RoleProof) -> EntitySnapshot:
        """APPROVED -> LOCKED; no further approval activity on the request."""
        self._require_finance(actor, "lock_travel_request")
        request = load_approvable(
            self._session, EntityType.TRAVEL_REQUEST, travel_request_id, for_update=True,
        )
        if request.status != TravelStatus.APPROVED.value:
            raise InvalidEntityStateError(
                "TravelRequest", str(travel_request_id), request.status, "lock",
            )
        from_status = request.status
        request.advance(TravelStatus.LOCKED.value)
        request.locked_at = self._clock.now()
        self._session.flush()

        self._auditor.record_lifecycle(
            request, AuditAction.LOCK, actor_id=actor.user_id, from_status=from_status,
        )
        logger.info("travel_request_locked", extra={"business_key": request.request_number})
        return snapshot_of(request)

    def close_travel_request(self, travel_request_id: UUID, actor: RoleProof) -> EntitySnapshot:
        """LOCKED -> CLOSED once every claim is paid or rejected."""
        self._require_finance(actor, "close_travel_request")
        request = load_approvable(
            self._session, EntityType.TRAVEL_REQUEST, travel_request_id, for_update=True,
        )
        if request.status != TravelStatus.LOCKED.value:
            raise InvalidEntityStateError(
                "TravelRequest", str(travel_request_id), request.status, "close",
            )

        open_claims = self._session.execute(
            select(Claim.claim_number).where(
                Claim.travel_request_id == travel_request_id,
                Claim.status.not_in(sorted(s.value for s in SETTLED_CLAIM_STATUSES)),
            )
        ).scalars().all()
        if open_claims:
            logger.info(
                "close_blocked_by_open_claims",
                extra={"business_key": request.request_number, "open_claims": list(open_claims)},
            )
            raise InvalidEntityStateError(
                "TravelRequest", str(travel_request_id), request.status,
                "close with open claims",
            )

        from_status = request.status
        request.advance(TravelStatus.CLOSED.value)
        request.closed_at = self._clock.now()
        self._session.flush()

        self._auditor.record_lifecycle(
            request, AuditAction.CLOSE, actor_id=actor.user_id, from_status=from_status,
        )
        logger.info("travel_request_closed", extra={"business_key": request.request_number})
        return snapshot_of(request)

    def mark_claim_paid(
        self,
        claim_id: UUID,
        actor: RoleProof,
        payment_reference: str | None = None,
    ) -> EntitySnapshot:
        """APPROVED -> PAID."""
        self._require_finance(actor, "mark_claim_paid")
        claim = load_approvable(self._session, EntityType.CLAIM, claim_id, for_update=True)
        if claim.status != ClaimStatus.APPROVED.value:
            raise InvalidEntityStateError("Claim", str(claim_id), claim.status, "mark_paid")

        from_status = claim.status
        claim.advance(ClaimStatus.PAID.value)
        claim.paid_at = self._clock.now()
        claim.payment_reference = payment_reference
        self._session.flush()

        self._auditor.record_lifecycle(
            claim, AuditAction.PAY, actor_id=actor.user_id, from_status=from_status,
            extra={"payment_reference": payment_reference},
        )
        logger.info("claim_paid", extra={"business_key": claim.claim_number})
        return snapshot_of(claim)

    def get_snapshot(self, entity_type: EntityType, entity_id: UUID) -> EntitySnapshot:
        return snapshot_of(load_approvable(self._session, entity_type, entity_id))
