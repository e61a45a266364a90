"""
Module: travel_kernel.models.approvable
Responsibility: Shared implementation of the ``ApprovableEntity`` capability
    for the ORM models that carry a generic approval chain.
Architecture position: Kernel > Models.

Concrete models declare their status enum and the editable / awaiting
status sets; the state machine talks only to the methods defined here.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from travel_kernel.domain.approval import ApprovalLevel, EntitySnapshot, EntityType


class ApprovableMixin:
    """Mixin for TravelRequest and Claim."""

    ENTITY_TYPE: ClassVar[EntityType]
    STATUS_ENUM: ClassVar[type[Enum]]
    EDITABLE_STATUSES: ClassVar[frozenset]
    AWAITING_STATUSES: ClassVar[frozenset]

    @property
    def entity_type(self) -> EntityType:
        return self.ENTITY_TYPE

    @property
    def current_status(self) -> str:
        return self.status

    def is_editable(self) -> bool:
        return self.STATUS_ENUM(self.status) in self.EDITABLE_STATUSES

    def is_awaiting_approval(self) -> bool:
        return self.STATUS_ENUM(self.status) in self.AWAITING_STATUSES

    def submitted_status(self) -> str:
        return self.STATUS_ENUM.SUBMITTED.value

    def approved_status(self) -> str:
        return self.STATUS_ENUM.APPROVED.value

    def rejected_status(self) -> str:
        return self.STATUS_ENUM.REJECTED.value

    def revision_status(self) -> str:
        return self.STATUS_ENUM.REVISION.value

    def partial_status(self, level: ApprovalLevel) -> str:
        raise NotImplementedError

    def advance(self, new_status: str) -> None:
        self.status = self.STATUS_ENUM(new_status).value

    def to_snapshot(self) -> EntitySnapshot:
        """Frozen view of the entity and its chain, lowest level first."""
        return EntitySnapshot(
            entity_type=self.ENTITY_TYPE,
            entity_id=self.id,
            business_key=self.business_key,
            requester_id=self.requester_id,
            status=self.status,
            submitted_at=self.submitted_at,
            approvals=tuple(
                a.to_view() for a in sorted(self.approvals, key=lambda a: a.level_rank)
            ),
            amount=self.amount,
        )
