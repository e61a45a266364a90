"""
Module: travel_kernel.models.claim
Responsibility: ORM persistence for expense claims raised against a travel
    request.
Architecture position: Kernel > Models.

Invariants enforced:
    - claim_number (CLM-<year>-<seq>) is unique.
    - Claims carry no per-level markers: a partially approved claim stays
      SUBMITTED until its last pending approval clears.
    - APPROVED -> PAID happens only through the finance lifecycle.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase, UUIDString
from travel_kernel.domain.approval import (
    AWAITING_CLAIM_STATUSES,
    EDITABLE_CLAIM_STATUSES,
    ApprovalLevel,
    ClaimStatus,
    EntityType,
)
from travel_kernel.models.approvable import ApprovableMixin

if TYPE_CHECKING:
    from travel_kernel.models.approval import Approval
    from travel_kernel.models.travel_request import TravelRequest
    from travel_kernel.models.user import User


class Claim(ApprovableMixin, TrackedBase):
    """Expense claim."""

    __tablename__ = "claims"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved', 'rejected', "
            "'revision', 'paid')",
            name="ck_claims_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_claims_positive_amount"),
        Index("ix_claims_travel_request", "travel_request_id"),
    )

    ENTITY_TYPE = EntityType.CLAIM
    STATUS_ENUM = ClaimStatus
    EDITABLE_STATUSES = EDITABLE_CLAIM_STATUSES
    AWAITING_STATUSES = AWAITING_CLAIM_STATUSES

    claim_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True,
    )
    travel_request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("travel_requests.id"), nullable=False,
    )
    requester_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ClaimStatus.DRAFT.value,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    payment_reference: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )

    travel_request: Mapped[TravelRequest] = relationship(
        "TravelRequest", back_populates="claims",
    )
    requester: Mapped[User] = relationship("User")
    approvals: Mapped[list[Approval]] = relationship(
        "Approval",
        back_populates="claim",
        order_by="Approval.level_rank",
    )

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} status={self.status}>"

    @property
    def business_key(self) -> str:
        return self.claim_number

    def partial_status(self, level: ApprovalLevel) -> str:
        return ClaimStatus.SUBMITTED.value
