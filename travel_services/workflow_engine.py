"""
travel_services.workflow_engine -- transactional facade over the kernel.

Responsibility:
    Exposes the engine's RPC-style contract (build and submit, act on an
    approval, list an approver's inbox, act on a bailout, finance lifecycle
    steps).  Every call runs in exactly one transaction: the kernel services
    only flush, this facade commits.

Architecture position:
    Services -- the only layer that opens and commits transactions.
    ``WorkflowServices`` is the per-transaction DI container: it creates
    every kernel service exactly once around one session.

Invariants enforced:
    - One call, one transaction: approval rows, parent status and audit
      records commit together or not at all.
    - Store-level aborts (OperationalError, IntegrityError, business-key
      collisions) are retried ``max_retries`` times, then surface as
      TransactionConflictError.  Caller errors are never retried.
    - Notifications are dispatched only after the commit succeeded.

Usage:
    from travel_kernel.db.engine import init_engine_from_url, create_tables
    from travel_services import WorkflowEngine

    init_engine_from_url("sqlite:///travel.db")
    create_tables()
    engine = WorkflowEngine.from_config()
    engine.act_on_approval("APR-2026-00001", PhoneProof("+62 811-2222"), "approve")
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from travel_config import EngineConfiguration, get_active_config
from travel_config.bridges import build_workflow_policy
from travel_kernel.db.engine import get_session_factory, session_scope
from travel_kernel.domain.approval import (
    ApprovalAction,
    ApprovalPage,
    ApprovalStatus,
    ApprovalView,
    EntitySnapshot,
    EntityType,
    TravelStatus,
)
from travel_kernel.domain.bailout import BailoutAction, BailoutCategory, BailoutView
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.identity import (
    ApprovalRef,
    CallerProof,
    PhoneProof,
    RoleProof,
)
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    BailoutNotFoundError,
    BusinessKeyCollisionError,
    TransactionConflictError,
)
from travel_kernel.logging_config import LogContext, get_logger
from travel_kernel.selectors.approval_selector import ApprovalSelector
from travel_kernel.selectors.bailout_selector import BailoutSelector
from travel_kernel.services.approval_service import ApprovalService
from travel_kernel.services.auditor_service import AuditorService, AuditTrace
from travel_kernel.services.bailout_service import BailoutService
from travel_kernel.services.chain_builder import ChainBuilder
from travel_kernel.services.entity_service import EntityLifecycleService
from travel_kernel.services.identity_verifier import IdentityVerifier, RoleMembershipCheck
from travel_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationKind,
    WorkflowNotification,
)

logger = get_logger("services.workflow_engine")

T = TypeVar("T")

_RETRYABLE = (OperationalError, IntegrityError, BusinessKeyCollisionError)

_DECISION_NOTIFICATIONS: dict[ApprovalAction, NotificationKind] = {
    ApprovalAction.REJECT: NotificationKind.ENTITY_REJECTED,
    ApprovalAction.REQUEST_REVISION: NotificationKind.REVISION_REQUESTED,
}


class WorkflowServices:
    """Every kernel service, created once around one session."""

    def __init__(self, session: Session, policy: WorkflowPolicy, clock: Clock):
        self.session = session
        self.auditor = AuditorService(session, clock)
        self.identity = IdentityVerifier(session)
        self.chain_builder = ChainBuilder(session, self.auditor, clock, policy)
        self.approvals = ApprovalService(session, self.auditor, clock, policy)
        self.bailouts = BailoutService(session, self.auditor, clock, policy)
        self.lifecycle = EntityLifecycleService(session, self.auditor, clock, policy)
        self.approval_selector = ApprovalSelector(session, policy)
        self.bailout_selector = BailoutSelector(session, policy)
        # Notifications to dispatch once the transaction commits
        self.outbox: list[WorkflowNotification] = []


def _as_ref(ref: ApprovalRef | UUID | str) -> ApprovalRef:
    if isinstance(ref, ApprovalRef):
        return ref
    if isinstance(ref, UUID):
        return ApprovalRef.by_id(ref)
    # Transports carry ids as text; anything that is not a UUID is a business key
    try:
        return ApprovalRef.by_id(UUID(ref))
    except (TypeError, ValueError):
        return ApprovalRef.by_number(ref)


def _as_role_proof(actor: RoleProof | tuple[UUID, Role | str]) -> RoleProof:
    if isinstance(actor, RoleProof):
        return actor
    user_id, role = actor
    return RoleProof(user_id=user_id, role=Role(role))


def _next_pending(snapshot: EntitySnapshot) -> ApprovalView | None:
    pending = [a for a in snapshot.approvals if a.status == ApprovalStatus.PENDING]
    return min(pending, key=lambda a: a.level.rank) if pending else None


class WorkflowEngine:
    """
    Facade exposing the approval workflow contract.

    Each public method opens its own transaction through the session
    factory; the engine keeps no state between calls.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        policy: WorkflowPolicy | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        max_retries: int = 1,
    ):
        self._factory = session_factory
        self._policy = policy or DEFAULT_POLICY
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotificationDispatcher()
        self._max_retries = max_retries

    @classmethod
    def from_config(
        cls,
        config: EngineConfiguration | None = None,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> WorkflowEngine:
        """Build an engine from the active (or a given) configuration."""
        config = config or get_active_config()
        return cls(
            session_factory=session_factory,
            policy=build_workflow_policy(config),
            clock=clock,
            notifier=notifier,
            max_retries=config.transactions.max_retries,
        )

    @property
    def policy(self) -> WorkflowPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Transaction runner
    # ------------------------------------------------------------------

    def _run(self, operation: str, fn: Callable[[WorkflowServices], T]) -> T:
        factory = self._factory or get_session_factory()
        attempt = 0
        while True:
            attempt += 1
            try:
                with session_scope(factory) as session:
                    services = WorkflowServices(session, self._policy, self._clock)
                    result = fn(services)
            except _RETRYABLE as exc:
                if attempt > self._max_retries:
                    logger.error(
                        "transaction_conflict",
                        extra={
                            "operation": operation,
                            "attempts": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise TransactionConflictError(operation, attempt) from exc
                logger.warning(
                    "transaction_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                    },
                )
                continue
            self._dispatch(services.outbox)
            return result

    def _dispatch(self, notifications: list[WorkflowNotification]) -> None:
        for notification in notifications:
            try:
                self._notifier.dispatch(notification)
            except Exception:
                # The transition is committed; a failed delivery does not undo it
                logger.exception(
                    "notification_failed",
                    extra={
                        "kind": notification.kind.value,
                        "business_key": notification.business_key,
                    },
                )

    # ------------------------------------------------------------------
    # Entities
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
        return self._run(
            "create_travel_request",
            lambda s: s.lifecycle.create_travel_request(
                requester_id, purpose, destination, start_date, end_date, estimated_budget,
            ),
        )

    def create_claim(
        self,
        travel_request_id: UUID,
        requester_id: UUID,
        amount: Decimal,
        description: str,
    ) -> EntitySnapshot:
        return self._run(
            "create_claim",
            lambda s: s.lifecycle.create_claim(
                travel_request_id, requester_id, amount, description,
            ),
        )

    def update_travel_request(
        self, travel_request_id: UUID, requester_id: UUID, **changes: Any,
    ) -> EntitySnapshot:
        """Requester edit while DRAFT or REVISION (purpose, destination, dates, budget)."""
        return self._run(
            "update_travel_request",
            lambda s: s.lifecycle.update_travel_request(
                travel_request_id, requester_id, **changes,
            ),
        )

    def update_claim(
        self,
        claim_id: UUID,
        requester_id: UUID,
        amount: Decimal | None = None,
        description: str | None = None,
    ) -> EntitySnapshot:
        return self._run(
            "update_claim",
            lambda s: s.lifecycle.update_claim(
                claim_id, requester_id, amount=amount, description=description,
            ),
        )

    def get_entity(self, entity_type: EntityType | str, entity_id: UUID) -> EntitySnapshot:
        return self._run(
            "get_entity",
            lambda s: s.lifecycle.get_snapshot(EntityType(entity_type), entity_id),
        )

    def build_and_submit(
        self,
        entity_type: EntityType | str,
        entity_id: UUID,
        requester_id: UUID,
    ) -> EntitySnapshot:
        """Build the approval chain and move the entity to SUBMITTED."""

        def submit(s: WorkflowServices) -> EntitySnapshot:
            snapshot = s.chain_builder.submit(EntityType(entity_type), entity_id, requester_id)
            next_approval = _next_pending(snapshot)
            if next_approval is not None:
                s.outbox.append(_approval_requested(snapshot, next_approval))
            elif snapshot.status == TravelStatus.APPROVED.value:
                s.outbox.append(_to_requester(snapshot, NotificationKind.ENTITY_APPROVED))
            return snapshot

        return self._run("build_and_submit", submit)

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def act_on_approval(
        self,
        ref: ApprovalRef | UUID | str,
        proof: CallerProof,
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """
        Apply approve / reject / request_revision for the fixed approver.

        ``ref`` is an ApprovalRef, an internal id, or an APR- business key.
        """
        approval_ref = _as_ref(ref)

        def act(s: WorkflowServices) -> ApprovalView:
            with LogContext.bind(channel=getattr(proof, "channel", None)):
                view = s.approvals.act(approval_ref, proof, action, comment)
            self._queue_decision(s, view, ApprovalAction(action))
            return view

        return self._run("act_on_approval", act)

    def admin_act_on_approval(
        self,
        ref: ApprovalRef | UUID | str,
        actor: RoleProof | tuple[UUID, Role | str],
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """Act on any pending approval as an override role holder."""
        approval_ref = _as_ref(ref)
        role_proof = _as_role_proof(actor)

        def act(s: WorkflowServices) -> ApprovalView:
            view = s.approvals.admin_act(approval_ref, role_proof, action, comment)
            self._queue_decision(s, view, ApprovalAction(action))
            return view

        return self._run("admin_act_on_approval", act)

    def _queue_decision(
        self, s: WorkflowServices, view: ApprovalView, action: ApprovalAction,
    ) -> None:
        snapshot = s.lifecycle.get_snapshot(view.entity_type, view.entity_id)
        if action in _DECISION_NOTIFICATIONS:
            s.outbox.append(_to_requester(snapshot, _DECISION_NOTIFICATIONS[action]))
            return
        next_approval = _next_pending(snapshot)
        if next_approval is not None:
            s.outbox.append(_approval_requested(snapshot, next_approval))
        else:
            s.outbox.append(_to_requester(snapshot, NotificationKind.ENTITY_APPROVED))

    def get_approval_by_number(self, approval_number: str, phone_number: str) -> ApprovalView:
        """Read an approval by business key after verifying the caller's phone."""

        def read(s: WorkflowServices) -> ApprovalView:
            approval = s.identity.resolve(ApprovalRef.by_number(approval_number))
            s.identity.verify(approval, PhoneProof(phone_number))
            return approval.to_view()

        return self._run("get_approval_by_number", read)

    def list_approvals_for(
        self,
        user_id: UUID,
        status: ApprovalStatus | str | None = None,
        entity_type: EntityType | str | None = None,
        limit: int | None = None,
        cursor: UUID | None = None,
    ) -> ApprovalPage:
        return self._run(
            "list_approvals_for",
            lambda s: s.approval_selector.list_for(user_id, status, entity_type, limit, cursor),
        )

    def pending_count(self, user_id: UUID) -> int:
        return self._run("pending_count", lambda s: s.approval_selector.pending_count(user_id))

    def director_review_queue(
        self,
        actor: RoleProof | tuple[UUID, Role | str],
        pending_only: bool = True,
        limit: int | None = None,
    ) -> list[EntitySnapshot]:
        """Travel requests awaiting a director decision; override roles only."""
        role_proof = _as_role_proof(actor)

        def read(s: WorkflowServices) -> list[EntitySnapshot]:
            RoleMembershipCheck(
                self._policy.admin_override_roles, "director_review_queue",
            ).authorize(None, role_proof)
            return s.approval_selector.director_review_queue(pending_only, limit)

        return self._run("director_review_queue", read)

    def admin_act_on_travel_request_direct(
        self,
        travel_request_id: UUID,
        actor: RoleProof | tuple[UUID, Role | str],
        action: ApprovalAction | str,
        comment: str | None = None,
    ) -> ApprovalView:
        """Create the missing L3 approval of a travel request and decide it."""
        role_proof = _as_role_proof(actor)

        def act(s: WorkflowServices) -> ApprovalView:
            view = s.approvals.admin_act_direct(travel_request_id, role_proof, action, comment)
            self._queue_decision(s, view, ApprovalAction(action))
            return view

        return self._run("admin_act_on_travel_request_direct", act)

    # ------------------------------------------------------------------
    # Bailouts
    # ------------------------------------------------------------------

    def create_bailout(
        self,
        travel_request_id: UUID,
        requester_id: UUID,
        category: BailoutCategory | str,
        description: str,
        amount: Decimal | str | int,
    ) -> BailoutView:
        return self._run(
            "create_bailout",
            lambda s: s.bailouts.create(
                travel_request_id, requester_id, category, description, amount,
            ),
        )

    def submit_bailout(self, bailout_id: UUID, requester_id: UUID) -> BailoutView:
        def submit(s: WorkflowServices) -> BailoutView:
            view = s.bailouts.submit(bailout_id, requester_id)
            s.outbox.append(_bailout_changed(view))
            return view

        return self._run("submit_bailout", submit)

    def act_on_bailout(
        self,
        bailout_id: UUID,
        actor: RoleProof | tuple[UUID, Role | str],
        action: BailoutAction | str,
        comment: str | None = None,
    ) -> BailoutView:
        """approve_chief / approve_director / disburse / reject by role."""
        role_proof = _as_role_proof(actor)

        def act(s: WorkflowServices) -> BailoutView:
            view = s.bailouts.act(bailout_id, role_proof, action, comment)
            s.outbox.append(_bailout_changed(view))
            return view

        return self._run("act_on_bailout", act)

    def get_bailout(self, bailout_id: UUID) -> BailoutView:
        def read(s: WorkflowServices) -> BailoutView:
            view = s.bailout_selector.get(bailout_id)
            if view is None:
                raise BailoutNotFoundError(str(bailout_id))
            return view

        return self._run("get_bailout", read)

    def pending_bailouts_for(self, role: Role | str) -> list[BailoutView]:
        return self._run(
            "pending_bailouts_for", lambda s: s.bailout_selector.pending_for_role(role),
        )

    # ------------------------------------------------------------------
    # Finance lifecycle
    # ------------------------------------------------------------------

    def lock_travel_request(
        self, travel_request_id: UUID, actor: RoleProof | tuple[UUID, Role | str],
    ) -> EntitySnapshot:
        role_proof = _as_role_proof(actor)
        return self._run(
            "lock_travel_request",
            lambda s: s.lifecycle.lock_travel_request(travel_request_id, role_proof),
        )

    def close_travel_request(
        self, travel_request_id: UUID, actor: RoleProof | tuple[UUID, Role | str],
    ) -> EntitySnapshot:
        role_proof = _as_role_proof(actor)
        return self._run(
            "close_travel_request",
            lambda s: s.lifecycle.close_travel_request(travel_request_id, role_proof),
        )

    def mark_claim_paid(
        self,
        claim_id: UUID,
        actor: RoleProof | tuple[UUID, Role | str],
        payment_reference: str | None = None,
    ) -> EntitySnapshot:
        role_proof = _as_role_proof(actor)
        return self._run(
            "mark_claim_paid",
            lambda s: s.lifecycle.mark_claim_paid(claim_id, role_proof, payment_reference),
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def audit_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Audit trail of one entity; ``entity_type`` is the model name."""
        return self._run(
            "audit_trace", lambda s: s.auditor.get_trace(entity_type, entity_id),
        )

    def validate_audit_chain(self) -> bool:
        return self._run("validate_audit_chain", lambda s: s.auditor.validate_chain())


# ----------------------------------------------------------------------
# Notification builders
# ----------------------------------------------------------------------


def _model_name(entity_type: EntityType) -> str:
    return "TravelRequest" if entity_type == EntityType.TRAVEL_REQUEST else "Claim"


def _approval_requested(snapshot: EntitySnapshot, approval: ApprovalView) -> WorkflowNotification:
    return WorkflowNotification(
        kind=NotificationKind.APPROVAL_REQUESTED,
        recipient_id=approval.approver_id,
        entity_type=_model_name(snapshot.entity_type),
        entity_id=snapshot.entity_id,
        business_key=snapshot.business_key,
        details={
            "approval_number": approval.approval_number,
            "level": approval.level.value,
        },
    )


def _to_requester(snapshot: EntitySnapshot, kind: NotificationKind) -> WorkflowNotification:
    details: dict[str, Any] = {"status": snapshot.status}
    return WorkflowNotification(
        kind=kind,
        recipient_id=snapshot.requester_id,
        entity_type=_model_name(snapshot.entity_type),
        entity_id=snapshot.entity_id,
        business_key=snapshot.business_key,
        details=details,
    )


def _bailout_changed(view: BailoutView) -> WorkflowNotification:
    return WorkflowNotification(
        kind=NotificationKind.BAILOUT_STATUS_CHANGED,
        recipient_id=view.requester_id,
        entity_type="Bailout",
        entity_id=view.bailout_id,
        business_key=view.bailout_number,
        details={"status": view.status.value},
    )
