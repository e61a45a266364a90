"""
ApprovalService -- the approval state machine.

Responsibility:
    approve / reject / request_revision on one approval record, written
    once against the ApprovableEntity capability and shared by travel
    requests and claims.  After every action the parent entity's status
    is recomputed from the full set of sibling approvals.  Override role
    holders may also act on any approval, or create and decide a missing
    director-level approval of a travel request in one step.

Architecture position:
    Kernel > Services -- imperative shell over the pure rules in
    ``domain/approval.py``.  Uses IdentityVerifier for the caller check,
    RevisionResetService for revision requests and AuditorService for the
    trail.

Transaction shape (one unit, caller commits):
    1. Resolve the approval and verify the caller.
    2. Lock the parent entity row (SELECT ... FOR UPDATE).
    3. Re-read every sibling approval under the lock.
    4. Check PENDING, parent awaiting approval, and (approve only) the
       level gate.
    5. Conditional UPDATE restricted to the statuses that may move to the
       action's target (only PENDING); a rowcount of zero means another
       transaction won.
    6. Recompute the parent status, write the audit record.

Invariants enforced:
    - Exactly one action ever succeeds per approval.
    - Approving requires every lower level of the same parent APPROVED.
    - Rejection is terminal for the parent; sibling approvals are left
      as-is and can no longer be acted on.
    - Revision resets the entire chain (RevisionResetService).

Failure modes:
    - ApprovalAlreadyProcessedError: approval not PENDING (race loser).
    - ParentNotAwaitingApprovalError: parent already terminal or editable.
    - LevelOrderViolationError: a lower level is not yet APPROVED.
    - ReasonTooShortError: reject reason / revision comment too short.
    - ApprovalLevelExistsError: direct action on a request that already
      has a director-level approval.
    - Forbidden / NotFound family from IdentityVerifier.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import (
    ACTION_TARGET_STATUS,
    ApprovalAction,
    ApprovalLevel,
    ApprovalStatus,
    ApprovalView,
    EntityType,
    find_level_blocker,
    is_fully_approved,
    is_valid_transition,
    require_min_length,
)
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.identity import (
    ApprovalRef,
    CallerProof,
    ResolvedApprover,
    RoleProof,
)
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.exceptions import (
    ApprovalAlreadyProcessedError,
    ApprovalLevelExistsError,
    BusinessKeyCollisionError,
    LevelOrderViolationError,
    ParentNotAwaitingApprovalError,
    UnsupportedActionError,
)
from travel_kernel.logging_config import LogContext, get_logger
from travel_kernel.models.approval import Approval
from travel_kernel.models.audit_record import AuditAction
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.services.auditor_service import AuditorService
from travel_kernel.services.entity_access import (
    load_approvable,
    lock_parent_of,
    reload_siblings,
)
from travel_kernel.services.identity_verifier import IdentityVerifier, RoleMembershipCheck
from travel_kernel.services.revision_reset import RevisionResetService
from travel_kernel.services.sequence_service import SequenceService

logger = get_logger("services.approval")

_AUDIT_ACTIONS: dict[ApprovalAction, AuditAction] = {
    ApprovalAction.APPROVE: AuditAction.APPROVE,
    ApprovalAction.REJECT: AuditAction.REJECT,
    ApprovalAction.REQUEST_REVISION: AuditAction.REVISION_REQUESTED,
}

_LOG_EVENTS: dict[ApprovalAction, str] = {
    ApprovalAction.APPROVE: "approval_approved",
    ApprovalAction.REJECT: "approval_rejected",
    ApprovalAction.REQUEST_REVISION: "approval_revision_requested",
}


class ApprovalService:
    """
    Applies approver actions to approval records.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry; the facade retries store-level aborts once.
    """

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
        self._verifier = IdentityVerifier(session)
        self._reset = RevisionResetService(session, auditor)
        self._sequence = SequenceService(session)

    # ------------------------------------------------------------------
    # Public actions
    # ------------------------------------------------------------------

    def approve(
        self, ref: ApprovalRef, proof: CallerProof, comments: str | None = None,
    ) -> ApprovalView:
        return self.act(ref, proof, ApprovalAction.APPROVE, comments)

    def reject(self, ref: ApprovalRef, proof: CallerProof, reason: str) -> ApprovalView:
        return self.act(ref, proof, ApprovalAction.REJECT, reason)

    def request_revision(
        self, ref: ApprovalRef, proof: CallerProof, comments: str,
    ) -> ApprovalView:
        return self.act(ref, proof, ApprovalAction.REQUEST_REVISION, comments)

    def act(
        self,
        ref: ApprovalRef,
        proof: CallerProof,
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """Verify the caller as the fixed approver, then apply ``action``."""
        action = _coerce_action(action)
        approval, resolved = self._verifier.resolve_and_verify(ref, proof)
        return self._apply(approval, resolved, action, comment)

    def admin_act(
        self,
        ref: ApprovalRef,
        actor: RoleProof,
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """
        Act on a pending approval without being its approver.

        Only roles in ``admin_override_roles`` may do this.  Level gating,
        reason lengths and the exactly-once guarantee still apply; the audit
        payload is flagged ``admin_override``.

        Raises:
            RoleNotPermittedError: if the actor's role may not override.
        """
        action = _coerce_action(action)
        approval = self._verifier.resolve(ref)
        check = RoleMembershipCheck(self._policy.admin_override_roles, "admin_act")
        granted = check.authorize(approval, actor)
        resolved = ResolvedApprover(
            user_id=granted.user_id, channel=granted.channel, admin_override=True,
        )
        return self._apply(approval, resolved, action, comment)

    def admin_act_direct(
        self,
        travel_request_id: UUID,
        actor: RoleProof,
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """
        Create the director-level approval of a travel request and decide it
        in the same step.

        Meant for requests whose chain has no L3 approval.  The acting
        override role holder becomes the approver.  Reason lengths, the
        parent state check and the level gate apply as in ``admin_act``; a
        revision resets the whole chain, the new approval included.

        Raises:
            RoleNotPermittedError: if the actor's role may not override.
            ApprovalLevelExistsError: if the request already has an L3 approval.
            BusinessKeyCollisionError: if the allocated key or level collided.
        """
        action = _coerce_action(action)
        granted = RoleMembershipCheck(
            self._policy.admin_override_roles, "admin_act_direct",
        ).authorize(None, actor)
        text = self._validated_text(action, comment)
        level = ApprovalLevel.L3_DIRECTOR

        with LogContext.bind(
            actor_id=granted.user_id, entity_id=travel_request_id, channel=granted.channel,
        ):
            parent = load_approvable(
                self._session, EntityType.TRAVEL_REQUEST, travel_request_id, for_update=True,
            )
            siblings = reload_siblings(self._session, parent)
            existing = next((a for a in siblings if a.level_enum == level), None)
            if existing is not None:
                raise ApprovalLevelExistsError(
                    str(parent.id), level.value, existing.approval_number,
                )
            if not parent.is_awaiting_approval():
                raise ParentNotAwaitingApprovalError(
                    type(parent).__name__, str(parent.id), parent.status,
                )

            states = [s.sibling_state() for s in siblings]
            if action == ApprovalAction.APPROVE:
                blocker = find_level_blocker(level, states)
                if blocker is not None:
                    logger.info(
                        "level_order_violation",
                        extra={
                            "approval_level": level.value,
                            "blocking_level": blocker.level.value,
                        },
                    )
                    raise LevelOrderViolationError(
                        str(parent.id), level.value, blocker.level.value,
                    )

            approval = self._create_decided(parent, level, granted.user_id, action, text)

            if action == ApprovalAction.APPROVE:
                if is_fully_approved(approval.id, states):
                    parent.advance(parent.approved_status())
                else:
                    parent.advance(parent.partial_status(level))
            elif action == ApprovalAction.REJECT:
                parent.advance(parent.rejected_status())
            self._session.flush()

            self._auditor.record_approval_decision(
                approval,
                action=_AUDIT_ACTIONS[action],
                actor_id=granted.user_id,
                channel=granted.channel,
                parent_status=(
                    parent.revision_status()
                    if action == ApprovalAction.REQUEST_REVISION
                    else parent.status
                ),
                comments=text if action != ApprovalAction.REJECT else None,
                rejection_reason=text if action == ApprovalAction.REJECT else None,
                admin_override=True,
                direct=True,
            )

            if action == ApprovalAction.REQUEST_REVISION:
                self._reset.reset_chain(
                    parent, actor_id=granted.user_id, trigger_approval_id=approval.id,
                )

            logger.info(
                "approval_direct_decision",
                extra={
                    "approval_number": approval.approval_number,
                    "approval_level": level.value,
                    "action": action.value,
                    "parent_status": parent.status,
                },
            )

        self._session.refresh(approval)
        return approval.to_view()

    def _create_decided(
        self,
        parent: TravelRequest,
        level: ApprovalLevel,
        approver_id: UUID,
        action: ApprovalAction,
        text: str | None,
    ) -> Approval:
        now = self._clock.now()
        approval = Approval(
            approval_number=self._sequence.next_business_key(
                self._policy.approval_key_prefix, now.year, self._policy.key_padding,
            ),
            level=level.value,
            level_rank=level.rank,
            approver_id=approver_id,
            status=ACTION_TARGET_STATUS[action].value,
            comments=text if action != ApprovalAction.REJECT else None,
            rejection_reason=text if action == ApprovalAction.REJECT else None,
            approved_at=now if action == ApprovalAction.APPROVE else None,
            rejected_at=now if action == ApprovalAction.REJECT else None,
            created_at=now,
        )
        approval.travel_request = parent
        self._session.add(approval)
        try:
            self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                "approval_key_collision", extra={"approval_numbers": approval.approval_number},
            )
            raise BusinessKeyCollisionError(approval.approval_number) from exc
        return approval

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _validated_text(self, action: ApprovalAction, comment: str | None) -> str | None:
        min_length = self._policy.approval_reason_min_length
        if action == ApprovalAction.REJECT:
            return require_min_length(comment, min_length, "reason")
        if action == ApprovalAction.REQUEST_REVISION:
            return require_min_length(comment, min_length, "comments")
        return comment.strip() if comment and comment.strip() else None

    def _apply(
        self,
        approval: Approval,
        resolved: ResolvedApprover,
        action: ApprovalAction,
        comment: str | None,
    ) -> ApprovalView:
        text = self._validated_text(action, comment)

        with LogContext.bind(
            actor_id=resolved.user_id,
            approval_id=approval.id,
            entity_id=approval.entity_id,
            channel=resolved.channel,
        ):
            parent = lock_parent_of(self._session, approval)
            siblings = reload_siblings(self._session, parent)
            states = [s.sibling_state() for s in siblings]

            if approval.status != ApprovalStatus.PENDING.value:
                logger.info(
                    "approval_already_processed",
                    extra={"current_status": approval.status},
                )
                raise ApprovalAlreadyProcessedError(str(approval.id), approval.status)

            if not parent.is_awaiting_approval():
                raise ParentNotAwaitingApprovalError(
                    type(parent).__name__, str(parent.id), parent.status,
                )

            if action == ApprovalAction.APPROVE:
                blocker = find_level_blocker(approval.level_enum, states)
                if blocker is not None:
                    logger.info(
                        "level_order_violation",
                        extra={
                            "approval_level": approval.level,
                            "blocking_level": blocker.level.value,
                        },
                    )
                    raise LevelOrderViolationError(
                        str(approval.id), approval.level, blocker.level.value,
                    )

            self._claim_pending(approval, action, text)

            if action == ApprovalAction.APPROVE:
                if is_fully_approved(approval.id, states):
                    parent.advance(parent.approved_status())
                else:
                    parent.advance(parent.partial_status(approval.level_enum))
                self._session.flush()
            elif action == ApprovalAction.REJECT:
                parent.advance(parent.rejected_status())
                self._session.flush()

            self._auditor.record_approval_decision(
                approval,
                action=_AUDIT_ACTIONS[action],
                actor_id=resolved.user_id,
                channel=resolved.channel,
                parent_status=(
                    parent.revision_status()
                    if action == ApprovalAction.REQUEST_REVISION
                    else parent.status
                ),
                comments=text if action != ApprovalAction.REJECT else None,
                rejection_reason=text if action == ApprovalAction.REJECT else None,
                admin_override=resolved.admin_override,
            )

            if action == ApprovalAction.REQUEST_REVISION:
                self._reset.reset_chain(
                    parent,
                    actor_id=resolved.user_id,
                    trigger_approval_id=approval.id,
                )

            logger.info(
                _LOG_EVENTS[action],
                extra={
                    "approval_number": approval.approval_number,
                    "approval_level": approval.level,
                    "parent_status": parent.status,
                    "admin_override": resolved.admin_override,
                },
            )

        self._session.refresh(approval)
        return approval.to_view()

    def _claim_pending(
        self, approval: Approval, action: ApprovalAction, text: str | None,
    ) -> None:
        """Flip the approval to the action's target status iff it may still move there."""
        now = self._clock.now()
        target = ACTION_TARGET_STATUS[action]
        sources = sorted(s.value for s in ApprovalStatus if is_valid_transition(s, target))
        values: dict = {"status": target.value, "updated_at": now}
        if action == ApprovalAction.APPROVE:
            values["approved_at"] = now
            if text is not None:
                values["comments"] = text
        elif action == ApprovalAction.REJECT:
            values.update(rejected_at=now, rejection_reason=text)
        else:
            values["comments"] = text

        result = self._session.execute(
            update(Approval)
            .where(Approval.id == approval.id, Approval.status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.refresh(approval)
            raise ApprovalAlreadyProcessedError(str(approval.id), approval.status)
        self._session.refresh(approval)


def _coerce_action(action: ApprovalAction | str) -> ApprovalAction:
    try:
        return ApprovalAction(action)
    except ValueError:
        raise UnsupportedActionError(str(action)) from None

