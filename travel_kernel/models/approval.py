"""
Module: travel_kernel.models.approval
Responsibility: ORM persistence for approval records: one authorization
    step of a travel request or claim chain.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - An approval belongs to exactly one parent (CHECK: exactly one of
      travel_request_id / claim_id is set).
    - Levels are unique within a parent (UNIQUE(parent, level)).
    - approval_number (APR-<year>-<seq>) is unique and, with level,
      approver and parent link, fixed at creation (db/immutability.py).
    - status is one of ApprovalStatus (CHECK).
    - Approvals are never deleted, only transitioned.

Failure modes:
    - IntegrityError on duplicate approval_number or duplicate level.
    - ImmutabilityViolationError on structural UPDATE or any DELETE.

Audit relevance:
    Every status change of an approval is paired with an AuditRecord in
    the same transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase, UUIDString
from travel_kernel.domain.approval import (
    ApprovalLevel,
    ApprovalStatus,
    ApprovalView,
    EntityType,
    SiblingState,
)

if TYPE_CHECKING:
    from travel_kernel.models.claim import Claim
    from travel_kernel.models.travel_request import TravelRequest
    from travel_kernel.models.user import User


class Approval(TrackedBase):
    """Persistent approval record.

    Contract:
        Status moves PENDING -> {APPROVED, REJECTED, REVISION_REQUESTED}
        through conditional updates; only the reset protocol moves a record
        back to PENDING.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'revision_requested')",
            name="ck_approvals_valid_status",
        ),
        CheckConstraint(
            "(travel_request_id IS NOT NULL AND claim_id IS NULL) OR "
            "(travel_request_id IS NULL AND claim_id IS NOT NULL)",
            name="ck_approvals_single_parent",
        ),
        CheckConstraint(
            "level_rank BETWEEN 1 AND 5",
            name="ck_approvals_level_rank",
        ),
        UniqueConstraint(
            "travel_request_id", "level",
            name="uq_approvals_travel_request_level",
        ),
        UniqueConstraint("claim_id", "level", name="uq_approvals_claim_level"),
        # Covers listApprovalsFor() keyset paging
        Index(
            "ix_approvals_approver_created",
            "approver_id", "created_at", "id",
        ),
        Index("ix_approvals_approver_status", "approver_id", "status"),
    )

    approval_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True,
    )
    travel_request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("travel_requests.id"), nullable=True,
    )
    claim_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("claims.id"), nullable=True,
    )
    level: Mapped[str] = mapped_column(String(30), nullable=False)
    level_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ApprovalStatus.PENDING.value,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    travel_request: Mapped[TravelRequest | None] = relationship(
        "TravelRequest", back_populates="approvals",
    )
    claim: Mapped[Claim | None] = relationship(
        "Claim", back_populates="approvals",
    )
    approver: Mapped[User] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<Approval {self.approval_number} {self.level} "
            f"status={self.status}>"
        )

    @property
    def level_enum(self) -> ApprovalLevel:
        return ApprovalLevel(self.level)

    @property
    def status_enum(self) -> ApprovalStatus:
        return ApprovalStatus(self.status)

    @property
    def entity_type(self) -> EntityType:
        if self.travel_request_id is not None:
            return EntityType.TRAVEL_REQUEST
        return EntityType.CLAIM

    @property
    def entity_id(self) -> UUID:
        return self.travel_request_id or self.claim_id

    @property
    def parent(self) -> TravelRequest | Claim:
        return self.travel_request if self.travel_request_id is not None else self.claim

    def sibling_state(self) -> SiblingState:
        return SiblingState(
            approval_id=self.id,
            level=self.level_enum,
            status=self.status_enum,
        )

    def to_view(self) -> ApprovalView:
        """Convert ORM model to frozen domain view."""
        parent = self.parent
        return ApprovalView(
            approval_id=self.id,
            approval_number=self.approval_number,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            entity_number=parent.business_key,
            entity_status=parent.status,
            level=self.level_enum,
            approver_id=self.approver_id,
            status=self.status_enum,
            comments=self.comments,
            rejection_reason=self.rejection_reason,
            approved_at=self.approved_at,
            rejected_at=self.rejected_at,
            created_at=self.created_at,
        )
