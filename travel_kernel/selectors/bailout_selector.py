"""
Module: travel_kernel.selectors.bailout_selector
Responsibility: Read-only access to bailouts, including the work queue a
    role holder sees.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from travel_kernel.domain.bailout import BailoutStatus, BailoutView
from travel_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from travel_kernel.domain.roles import Role
from travel_kernel.models.bailout import Bailout
from travel_kernel.selectors.base import BaseSelector


class BailoutSelector(BaseSelector[Bailout]):
    """Selector for bailout queries."""

    def __init__(self, session: Session, policy: WorkflowPolicy | None = None):
        super().__init__(session)
        self._policy = policy or DEFAULT_POLICY

    def get(self, bailout_id: UUID) -> BailoutView | None:
        bailout = self.session.get(Bailout, bailout_id)
        return bailout.to_view() if bailout else None

    def statuses_actionable_by(self, role: Role | str) -> frozenset[BailoutStatus]:
        """Statuses a holder of ``role`` can move forward."""
        role = Role(role)
        statuses: set[BailoutStatus] = set()
        if role in self._policy.chief_roles:
            statuses.add(BailoutStatus.SUBMITTED)
        if role in self._policy.director_roles:
            statuses.add(BailoutStatus.APPROVED_CHIEF)
        if role in self._policy.finance_roles:
            statuses.add(BailoutStatus.APPROVED_DIRECTOR)
        return frozenset(statuses)

    def pending_for_role(self, role: Role | str) -> list[BailoutView]:
        """Bailouts waiting on ``role``, oldest first."""
        statuses = self.statuses_actionable_by(role)
        if not statuses:
            return []
        rows = self.session.execute(
            select(Bailout)
            .where(Bailout.status.in_(sorted(s.value for s in statuses)))
            .order_by(Bailout.created_at, Bailout.id)
        ).scalars().all()
        return [b.to_view() for b in rows]

    def list_for_travel_request(self, travel_request_id: UUID) -> list[BailoutView]:
        rows = self.session.execute(
            select(Bailout)
            .where(Bailout.travel_request_id == travel_request_id)
            .order_by(Bailout.created_at, Bailout.id)
        ).scalars().all()
        return [b.to_view() for b in rows]
