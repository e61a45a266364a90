"""
Module: travel_kernel.models.bailout
Responsibility: ORM persistence for bailouts (pre-trip cash advances).
Architecture position: Kernel > Models.

Invariants enforced:
    - bailout_number (BLT-<year>-<seq>) is unique.
    - amount > 0 (CHECK).
    - status is one of BailoutStatus (CHECK); moves follow
      domain/bailout.BAILOUT_TRANSITIONS, applied as conditional updates.
    - Bailouts do not use approval records: each stage stores the actor
      who cleared it, resolved by role at action time.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase, UUIDString
from travel_kernel.domain.bailout import BailoutCategory, BailoutStatus, BailoutView

if TYPE_CHECKING:
    from travel_kernel.models.travel_request import TravelRequest


class Bailout(TrackedBase):
    """Cash-advance request with a role-resolved chain."""

    __tablename__ = "bailouts"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved_chief', "
            "'approved_director', 'rejected', 'disbursed')",
            name="ck_bailouts_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_bailouts_positive_amount"),
        Index("ix_bailouts_status_created", "status", "created_at"),
        Index("ix_bailouts_travel_request", "travel_request_id"),
    )

    bailout_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True,
    )
    travel_request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("travel_requests.id"), nullable=False,
    )
    requester_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BailoutStatus.DRAFT.value,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    chief_approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    chief_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    chief_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    director_approver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    director_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    director_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejected_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    disbursed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    disbursement_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    travel_request: Mapped[TravelRequest] = relationship("TravelRequest")

    def __repr__(self) -> str:
        return f"<Bailout {self.bailout_number} status={self.status}>"

    def to_view(self) -> BailoutView:
        """Convert ORM model to frozen domain view."""
        return BailoutView(
            bailout_id=self.id,
            bailout_number=self.bailout_number,
            travel_request_id=self.travel_request_id,
            requester_id=self.requester_id,
            category=BailoutCategory(self.category),
            description=self.description,
            amount=self.amount,
            status=BailoutStatus(self.status),
            submitted_at=self.submitted_at,
            chief_approver_id=self.chief_approver_id,
            chief_approved_at=self.chief_approved_at,
            chief_notes=self.chief_notes,
            director_approver_id=self.director_approver_id,
            director_approved_at=self.director_approved_at,
            director_notes=self.director_notes,
            rejected_by_id=self.rejected_by_id,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            disbursed_by_id=self.disbursed_by_id,
            disbursed_at=self.disbursed_at,
            disbursement_ref=self.disbursement_ref,
        )
