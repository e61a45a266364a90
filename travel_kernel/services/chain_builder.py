"""
ChainBuilder -- builds the approval chain of a submitted entity.

Responsibility:
    Walks the requester's position in the organisation and creates one
    PENDING approval per resolved level, in ascending level order, then
    moves the parent entity to SUBMITTED.  Chain creation, the parent
    status change and the SUBMIT audit record happen in the caller's
    transaction, so they commit or roll back together.

Architecture position:
    Kernel > Services -- imperative shell.  Reads the org hierarchy
    (User / Department), writes Approval rows and the parent status.

Level resolution (travel requests):
    L1  requester's supervisor
    L2  department manager
    L3  department director; when the department has none, the
        earliest-created active user holding a director-fallback role
    L4  parent department's director
    L5  director of the root department above the parent department

    Claims use L1 (supervisor) and, above the finance-review threshold,
    L2 resolved to the earliest-created finance reviewer.

    A level whose role has no assigned (active) person is skipped; the
    chain may be empty.  ``WorkflowPolicy.empty_chain_policy`` decides
    whether an empty chain holds the entity at SUBMITTED or approves it
    outright.

Invariants enforced:
    - Levels are unique per parent and strictly ascending.
    - Approval business keys come from the locked per-year counter.
    - Resubmission from REVISION reuses the (already reset) approvals.

Failure modes:
    - NotEntityOwnerError: caller is not the entity's requester.
    - InvalidEntityStateError: entity not in DRAFT / REVISION.
    - BusinessKeyCollisionError: an approval key collided on insert.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import (
    ApprovalLevel,
    ApprovalStatus,
    EntitySnapshot,
    EntityType,
)
from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.domain.policy import DEFAULT_POLICY, EmptyChainPolicy, WorkflowPolicy
from travel_kernel.domain.roles import Role
from travel_kernel.exceptions import (
    BusinessKeyCollisionError,
    InvalidEntityStateError,
    NotEntityOwnerError,
)
from travel_kernel.logging_config import LogContext, get_logger
from travel_kernel.models.approval import Approval
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.models.user import Department, User
from travel_kernel.services.auditor_service import AuditorService
from travel_kernel.services.entity_access import load_approvable, load_user
from travel_kernel.services.sequence_service import SequenceService

logger = get_logger("services.chain_builder")

Approvable = TravelRequest | Claim


def snapshot_of(entity: Approvable) -> EntitySnapshot:
    """Immutable view of an entity and its chain."""
    return entity.to_snapshot()


class ChainBuilder:
    """
    Builds approval chains and submits entities.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT edit the organisation it reads.
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
        self._sequence = SequenceService(session)

        self._travel_resolvers: dict[ApprovalLevel, Callable[[User], User | None]] = {
            ApprovalLevel.L1_SUPERVISOR: self._supervisor_of,
            ApprovalLevel.L2_MANAGER: self._department_manager_of,
            ApprovalLevel.L3_DIRECTOR: self._director_of,
            ApprovalLevel.L4_SENIOR_DIRECTOR: self._parent_director_of,
            ApprovalLevel.L5_EXECUTIVE: self._root_director_of,
        }

    # ------------------------------------------------------------------
    # Org lookups
    # ------------------------------------------------------------------

    def _active_user(self, user_id: UUID | None) -> User | None:
        if user_id is None:
            return None
        user = self._session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return user

    def _earliest_with_role(
        self, roles: frozenset[Role], exclude: UUID,
    ) -> User | None:
        return self._session.execute(
            select(User)
            .where(
                User.role.in_(sorted(r.value for r in roles)),
                User.deleted_at.is_(None),
                User.id != exclude,
            )
            .order_by(User.created_at, User.id)
            .limit(1)
        ).scalar_one_or_none()

    def _supervisor_of(self, requester: User) -> User | None:
        return self._active_user(requester.supervisor_id)

    def _department_manager_of(self, requester: User) -> User | None:
        department = requester.department
        return self._active_user(department.manager_id) if department else None

    def _director_of(self, requester: User) -> User | None:
        department = requester.department
        director = self._active_user(department.director_id) if department else None
        if director is not None:
            return director
        fallback = self._earliest_with_role(
            self._policy.director_fallback_roles, exclude=requester.id,
        )
        if fallback is not None:
            logger.info(
                "director_fallback_resolved",
                extra={
                    "requester_id": str(requester.id),
                    "fallback_user_id": str(fallback.id),
                },
            )
        return fallback

    def _parent_director_of(self, requester: User) -> User | None:
        department = requester.department
        if department is None or department.parent is None:
            return None
        return self._active_user(department.parent.director_id)

    def _root_director_of(self, requester: User) -> User | None:
        department = requester.department
        if department is None or department.parent is None:
            return None
        root = _root_of(department.parent)
        if root is department.parent:
            # Already covered by L4
            return None
        return self._active_user(root.director_id)

    # ------------------------------------------------------------------
    # Chain resolution
    # ------------------------------------------------------------------

    def resolve_levels(
        self, entity: Approvable, requester: User,
    ) -> list[tuple[ApprovalLevel, User]]:
        """Resolve approvers per configured level; unresolved levels are skipped."""
        resolved: list[tuple[ApprovalLevel, User]] = []

        if isinstance(entity, TravelRequest):
            for level in sorted(self._policy.travel_chain_levels, key=lambda lv: lv.rank):
                approver = self._travel_resolvers[level](requester)
                if approver is not None:
                    resolved.append((level, approver))
                else:
                    logger.debug(
                        "chain_level_skipped",
                        extra={"approval_level": level.value, "entity_id": str(entity.id)},
                    )
            return resolved

        levels = set(self._policy.claim_chain_levels)
        if ApprovalLevel.L1_SUPERVISOR in levels:
            supervisor = self._supervisor_of(requester)
            if supervisor is not None:
                resolved.append((ApprovalLevel.L1_SUPERVISOR, supervisor))
        if (
            ApprovalLevel.L2_MANAGER in levels
            and entity.amount > self._policy.claim_finance_review_threshold
        ):
            reviewer = self._earliest_with_role(
                self._policy.claim_finance_reviewer_roles, exclude=requester.id,
            )
            if reviewer is not None:
                resolved.append((ApprovalLevel.L2_MANAGER, reviewer))
        return resolved

    def build_chain(self, entity: Approvable, requester: User) -> list[Approval]:
        """
        Create one PENDING approval per resolved level, lowest level first.

        Does not change the entity's status; see ``submit``.

        Raises:
            BusinessKeyCollisionError: if an allocated key already exists.
        """
        now = self._clock.now()
        approvals: list[Approval] = []
        for level, approver in self.resolve_levels(entity, requester):
            approval_number = self._sequence.next_business_key(
                self._policy.approval_key_prefix, now.year, self._policy.key_padding,
            )
            approval = Approval(
                approval_number=approval_number,
                level=level.value,
                level_rank=level.rank,
                approver_id=approver.id,
                status=ApprovalStatus.PENDING.value,
                created_at=now,
            )
            if isinstance(entity, TravelRequest):
                approval.travel_request = entity
            else:
                approval.claim = entity
            self._session.add(approval)
            approvals.append(approval)

        try:
            self._session.flush()
        except IntegrityError as exc:
            keys = ", ".join(a.approval_number for a in approvals)
            logger.warning("approval_key_collision", extra={"approval_numbers": keys})
            raise BusinessKeyCollisionError(keys) from exc

        return approvals

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        requester_id: UUID,
    ) -> EntitySnapshot:
        """
        Build (or reuse) the chain and move the entity to SUBMITTED.

        Preconditions:
            - ``requester_id`` owns the entity.
            - The entity is DRAFT or REVISION.

        Postconditions:
            - The entity is SUBMITTED (or APPROVED for an empty chain under
              the auto-approve policy) with ``submitted_at`` set.
            - One SUBMIT audit record is written.
        """
        entity = load_approvable(self._session, entity_type, entity_id, for_update=True)

        with LogContext.bind(actor_id=requester_id, entity_id=entity_id):
            if entity.requester_id != requester_id:
                logger.warning("submit_not_owner")
                raise NotEntityOwnerError(
                    type(entity).__name__, str(entity_id), str(requester_id),
                )
            if not entity.is_editable():
                raise InvalidEntityStateError(
                    type(entity).__name__, str(entity_id), entity.status, "submit",
                )

            requester = load_user(self._session, requester_id)
            existing = list(entity.approvals)
            resubmission = bool(existing)
            if resubmission:
                approvals = sorted(existing, key=lambda a: a.level_rank)
            else:
                approvals = self.build_chain(entity, requester)

            entity.submitted_at = self._clock.now()
            empty_chain = not approvals
            if empty_chain and self._policy.empty_chain_policy == EmptyChainPolicy.AUTO_APPROVE:
                entity.advance(entity.approved_status())
            else:
                entity.advance(entity.submitted_status())
            self._session.flush()

            if empty_chain:
                logger.warning(
                    "empty_approval_chain",
                    extra={
                        "business_key": entity.business_key,
                        "policy": self._policy.empty_chain_policy.value,
                    },
                )

            self._auditor.record_submission(
                entity,
                actor_id=requester_id,
                levels=[a.level for a in approvals],
                empty_chain=empty_chain,
                resubmission=resubmission,
            )

            logger.info(
                "entity_submitted",
                extra={
                    "business_key": entity.business_key,
                    "status": entity.status,
                    "chain_length": len(approvals),
                    "resubmission": resubmission,
                },
            )

        self._session.refresh(entity, attribute_names=["approvals"])
        return snapshot_of(entity)


def _root_of(department: Department) -> Department:
    seen: set[UUID] = set()
    node = department
    while node.parent is not None and node.id not in seen:
        seen.add(node.id)
        node = node.parent
    return node
