"""
Module: travel_kernel.selectors.approval_selector
Responsibility: Read-only access to approval records: an approver's inbox
    with keyset paging, the actionable pending count, and the director
    review queue of travel requests.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns ApprovalPage / EntitySnapshot, never ORM models.
    - Inbox order is newest first by (created_at, id); the cursor is the id
      of the last approval of the previous page, so pages never overlap or
      skip rows while new approvals arrive.

Failure modes:
    - Returns empty pages and lists on absence of data (never raises).
"""

from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, aliased, selectinload

from travel_kernel.domain.approval import (
    AWAITING_CLAIM_STATUSES,
    AWAITING_TRAVEL_STATUSES,
    ApprovalLevel,
    ApprovalPage,
    ApprovalStatus,
    EntitySnapshot,
    EntityType,
    TravelStatus,
)
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.models.approval import Approval
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[Approval]):
    """
    Selector for approval queries.

    Guarantees:
        - Parents are loaded with selectinload, so building views does not
          issue one query per row.
    """

    def __init__(self, session: Session, policy: WorkflowPolicy | None = None):
        super().__init__(session)
        self._policy = policy or DEFAULT_POLICY

    def _with_parents(self, stmt):
        return stmt.options(
            selectinload(Approval.travel_request),
            selectinload(Approval.claim),
        )

    def list_for(
        self,
        approver_id: UUID,
        status: ApprovalStatus | str | None = None,
        entity_type: EntityType | str | None = None,
        limit: int | None = None,
        cursor: UUID | None = None,
    ) -> ApprovalPage:
        """
        One page of the approvals assigned to ``approver_id``, newest first.

        Args:
            status: only approvals in this status.
            entity_type: only approvals of travel requests or of claims.
            limit: page size; defaults to and is capped by the policy.
            cursor: ``next_cursor`` of the previous page.
        """
        if limit is None or limit <= 0:
            limit = self._policy.default_page_size
        limit = min(limit, self._policy.max_page_size)

        stmt = select(Approval).where(Approval.approver_id == approver_id)
        if status is not None:
            stmt = stmt.where(Approval.status == ApprovalStatus(status).value)
        if entity_type is not None:
            if EntityType(entity_type) == EntityType.TRAVEL_REQUEST:
                stmt = stmt.where(Approval.travel_request_id.is_not(None))
            else:
                stmt = stmt.where(Approval.claim_id.is_not(None))

        if cursor is not None:
            cursor_row = aliased(Approval)
            cursor_created = (
                select(cursor_row.created_at)
                .where(cursor_row.id == cursor)
                .scalar_subquery()
            )
            stmt = stmt.where(
                or_(
                    Approval.created_at < cursor_created,
                    and_(Approval.created_at == cursor_created, Approval.id < cursor),
                )
            )

        stmt = stmt.order_by(Approval.created_at.desc(), Approval.id.desc()).limit(limit + 1)
        rows = list(self.session.execute(self._with_parents(stmt)).scalars().all())

        has_more = len(rows) > limit
        rows = rows[:limit]
        return ApprovalPage(
            items=tuple(a.to_view() for a in rows),
            next_cursor=rows[-1].id if has_more else None,
        )

    def pending_count(self, approver_id: UUID) -> int:
        """PENDING approvals of ``approver_id`` whose parent still awaits a decision."""
        awaiting_travel = select(TravelRequest.id).where(
            TravelRequest.status.in_(sorted(s.value for s in AWAITING_TRAVEL_STATUSES))
        )
        awaiting_claims = select(Claim.id).where(
            Claim.status.in_(sorted(s.value for s in AWAITING_CLAIM_STATUSES))
        )
        return self.session.execute(
            select(func.count(Approval.id)).where(
                Approval.approver_id == approver_id,
                Approval.status == ApprovalStatus.PENDING.value,
                or_(
                    Approval.travel_request_id.in_(awaiting_travel),
                    Approval.claim_id.in_(awaiting_claims),
                ),
            )
        ).scalar_one()

    def director_review_queue(
        self, pending_only: bool = True, limit: int | None = None,
    ) -> list[EntitySnapshot]:
        """
        Travel requests needing a director decision, most recently touched first.

        With ``pending_only`` a request qualifies when its L3 approval is
        PENDING while the request still awaits approval, or when it is
        APPROVED_L1 / APPROVED_L2 and no L3 approval exists.  Otherwise every
        request that has an L3 approval is listed.
        """
        if limit is None or limit <= 0:
            limit = self._policy.default_page_size
        limit = min(limit, self._policy.max_page_size)

        director = ApprovalLevel.L3_DIRECTOR.value
        has_director = select(Approval.travel_request_id).where(
            Approval.level == director,
            Approval.travel_request_id.is_not(None),
        )
        if pending_only:
            pending_director = has_director.where(
                Approval.status == ApprovalStatus.PENDING.value,
            )
            condition = or_(
                and_(
                    TravelRequest.id.in_(pending_director),
                    TravelRequest.status.in_(
                        sorted(s.value for s in AWAITING_TRAVEL_STATUSES)
                    ),
                ),
                and_(
                    TravelRequest.status.in_(
                        [TravelStatus.APPROVED_L1.value, TravelStatus.APPROVED_L2.value]
                    ),
                    TravelRequest.id.not_in(has_director),
                ),
            )
        else:
            condition = TravelRequest.id.in_(has_director)

        rows = self.session.execute(
            select(TravelRequest)
            .where(condition)
            .options(
                selectinload(TravelRequest.approvals).selectinload(Approval.travel_request),
            )
            .order_by(TravelRequest.updated_at.desc(), TravelRequest.id.desc())
            .limit(limit)
        ).scalars().all()
        return [r.to_snapshot() for r in rows]
