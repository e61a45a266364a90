"""
BailoutService -- the role-resolved cash-advance chain.

Responsibility:
    Creates bailouts against a travel request and moves them through
    DRAFT -> SUBMITTED -> APPROVED_CHIEF -> APPROVED_DIRECTOR -> DISBURSED,
    with REJECTED reachable from SUBMITTED or APPROVED_CHIEF.

Architecture position:
    Kernel > Services.  Shares the RoleMembershipCheck strategy with the
    admin override and the finance lifecycle, and AuditorService with
    every other transition.

Invariants enforced:
    - Each action names the statuses it starts from and the role group
      that may perform it (``domain/bailout.ACTION_RULES``).
    - The approver of a stage is whoever holds a qualifying role at call
      time; the actor is recorded for audit but never gates.
    - Every move is a conditional UPDATE on the current status, so two
      concurrent actions on one bailout cannot both apply.
    - Only the requester may submit.

Failure modes:
    - BailoutNotFoundError / EntityNotFoundError / UserNotFoundError.
    - RoleNotPermittedError / NotEntityOwnerError (Forbidden).
    - InvalidBailoutTransitionError: status does not allow the action.
    - InvalidBailoutInputError, ReasonTooShortError (BadRequest).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import EntityType, require_min_length
from travel_kernel.domain.bailout import (
    ACTION_RULES,
    BailoutAction,
    BailoutCategory,
    BailoutStatus,
    BailoutView,
)
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.identity import RoleProof
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.exceptions import (
    BailoutNotFoundError,
    InvalidBailoutInputError,
    InvalidBailoutTransitionError,
    NotEntityOwnerError,
    UnsupportedActionError,
)
from travel_kernel.logging_config import LogContext, get_logger
from travel_kernel.models.audit_record import AuditAction
from travel_kernel.models.bailout import Bailout
from travel_kernel.services.auditor_service import AuditorService
from travel_kernel.services.entity_access import load_approvable, load_user
from travel_kernel.services.identity_verifier import RoleMembershipCheck
from travel_kernel.services.sequence_service import SequenceService

logger = get_logger("services.bailout")

_AUDIT_ACTIONS: dict[BailoutAction, AuditAction] = {
    BailoutAction.SUBMIT: AuditAction.SUBMIT,
    BailoutAction.APPROVE_CHIEF: AuditAction.APPROVE,
    BailoutAction.APPROVE_DIRECTOR: AuditAction.APPROVE,
    BailoutAction.DISBURSE: AuditAction.DISBURSE,
    BailoutAction.REJECT: AuditAction.REJECT,
}


class BailoutService:
    """Creates and transitions bailouts; never commits."""

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

    def _load(self, bailout_id: UUID, for_update: bool = False) -> Bailout:
        stmt = select(Bailout).where(Bailout.id == bailout_id)
        if for_update:
            stmt = stmt.with_for_update(of=Bailout).execution_options(populate_existing=True)
        bailout = self._session.execute(stmt).scalar_one_or_none()
        if bailout is None:
            raise BailoutNotFoundError(str(bailout_id))
        return bailout

    # ------------------------------------------------------------------
    # Creation and submission
    # ------------------------------------------------------------------

    def create(
        self,
        travel_request_id: UUID,
        requester_id: UUID,
        category: BailoutCategory | str,
        description: str,
        amount: Decimal | str | int,
    ) -> BailoutView:
        """
        Create a DRAFT bailout.

        Raises:
            InvalidBailoutInputError: bad category, non-positive amount or a
                description shorter than the configured minimum.
        """
        try:
            category = BailoutCategory(category)
        except ValueError:
            raise InvalidBailoutInputError("category", f"unknown category {category!r}") from None

        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise InvalidBailoutInputError("amount", "not a number") from None
        if amount <= 0:
            raise InvalidBailoutInputError("amount", "must be greater than zero")

        description = (description or "").strip()
        min_length = self._policy.bailout_description_min_length
        if len(description) < min_length:
            raise InvalidBailoutInputError(
                "description", f"must be at least {min_length} characters",
            )

        requester = load_user(self._session, requester_id)
        load_approvable(self._session, EntityType.TRAVEL_REQUEST, travel_request_id)

        now = self._clock.now()
        bailout = Bailout(
            bailout_number=self._sequence.next_business_key(
                self._policy.bailout_key_prefix, now.year, self._policy.key_padding,
            ),
            travel_request_id=travel_request_id,
            requester_id=requester_id,
            category=category.value,
            description=description,
            amount=amount,
            status=BailoutStatus.DRAFT.value,
            created_at=now,
        )
        self._session.add(bailout)
        self._session.flush()

        self._auditor.record_bailout_transition(
            bailout, AuditAction.CREATE, actor_id=requester_id,
            role=requester.role, from_status=None,
        )
        logger.info(
            "bailout_created",
            extra={
                "bailout_number": bailout.bailout_number,
                "amount": str(amount),
                "category": category.value,
            },
        )
        return bailout.to_view()

    def submit(self, bailout_id: UUID, requester_id: UUID) -> BailoutView:
        """DRAFT -> SUBMITTED; only the requester may submit."""
        bailout = self._load(bailout_id, for_update=True)
        if bailout.requester_id != requester_id:
            logger.warning(
                "bailout_submit_not_owner",
                extra={"bailout_id": str(bailout_id), "actor_id": str(requester_id)},
            )
            raise NotEntityOwnerError("Bailout", str(bailout_id), str(requester_id))
        requester = load_user(self._session, requester_id)
        return self._transition(
            bailout,
            BailoutAction.SUBMIT,
            actor_id=requester_id,
            role=requester.role,
            values={"submitted_at": self._clock.now()},
        )

    # ------------------------------------------------------------------
    # Role-gated stages
    # ------------------------------------------------------------------

    def act(
        self,
        bailout_id: UUID,
        actor: RoleProof,
        action: BailoutAction | str,
        comment: str | None = None,
    ) -> BailoutView:
        """
        Apply a chief / director / finance action.

        ``comment`` is stored as stage notes, as the disbursement reference
        for DISBURSE, and is the required reason for REJECT.
        """
        try:
            action = BailoutAction(action)
        except ValueError:
            raise UnsupportedActionError(str(action)) from None
        if action == BailoutAction.SUBMIT:
            return self.submit(bailout_id, actor.user_id)

        rule = ACTION_RULES[action]
        RoleMembershipCheck(
            self._policy.roles_for(rule.role_group), action.value,
        ).authorize(None, actor)

        bailout = self._load(bailout_id, for_update=True)
        now = self._clock.now()
        note = comment.strip() if comment and comment.strip() else None
        values: dict[str, Any]
        if action == BailoutAction.APPROVE_CHIEF:
            values = {
                "chief_approver_id": actor.user_id,
                "chief_approved_at": now,
                "chief_notes": note,
            }
        elif action == BailoutAction.APPROVE_DIRECTOR:
            values = {
                "director_approver_id": actor.user_id,
                "director_approved_at": now,
                "director_notes": note,
            }
        elif action == BailoutAction.DISBURSE:
            values = {
                "disbursed_by_id": actor.user_id,
                "disbursed_at": now,
                "disbursement_ref": note,
            }
        else:
            reason = require_min_length(
                comment, self._policy.bailout_reason_min_length, "reason",
            )
            values = {
                "rejected_by_id": actor.user_id,
                "rejected_at": now,
                "rejection_reason": reason,
            }
            note = reason

        return self._transition(
            bailout, action, actor_id=actor.user_id, role=actor.role.value,
            values=values, notes=note,
        )

    def _transition(
        self,
        bailout: Bailout,
        action: BailoutAction,
        actor_id: UUID,
        role: str,
        values: dict[str, Any],
        notes: str | None = None,
    ) -> BailoutView:
        rule = ACTION_RULES[action]
        allowed = sorted(s.value for s in rule.from_statuses)
        from_status = bailout.status

        with LogContext.bind(actor_id=actor_id, entity_id=bailout.id):
            if from_status not in allowed:
                logger.info(
                    "bailout_transition_rejected",
                    extra={"action": action.value, "current_status": from_status},
                )
                raise InvalidBailoutTransitionError(str(bailout.id), from_status, action.value)

            result = self._session.execute(
                update(Bailout)
                .where(Bailout.id == bailout.id, Bailout.status.in_(allowed))
                .values(status=rule.to_status.value, updated_at=self._clock.now(), **values)
                .execution_options(synchronize_session=False)
            )
            self._session.refresh(bailout)
            if result.rowcount != 1:
                raise InvalidBailoutTransitionError(str(bailout.id), bailout.status, action.value)

            self._auditor.record_bailout_transition(
                bailout, _AUDIT_ACTIONS[action], actor_id=actor_id,
                role=role, from_status=from_status, notes=notes,
            )
            logger.info(
                f"bailout_{action.value}",
                extra={
                    "bailout_number": bailout.bailout_number,
                    "from_status": from_status,
                    "to_status": bailout.status,
                    "role": role,
                },
            )
        return bailout.to_view()
