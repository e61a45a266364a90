"""
Module: travel_kernel.models.travel_request
Responsibility: ORM persistence for business-trip requests.
Architecture position: Kernel > Models.

Invariants enforced:
    - request_number (TR-<year>-<seq>) is unique.
    - status is one of TravelStatus; partial approval is tracked with the
      APPROVED_L<rank> markers.
    - Outside DRAFT / REVISION the request changes only through approval
      actions and the finance lifecycle (lock, close).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase, UUIDString
from travel_kernel.domain.approval import (
    AWAITING_TRAVEL_STATUSES,
    EDITABLE_TRAVEL_STATUSES,
    ApprovalLevel,
    EntityType,
    TravelStatus,
    travel_partial_status,
)
from travel_kernel.models.approvable import ApprovableMixin

if TYPE_CHECKING:
    from travel_kernel.models.approval import Approval
    from travel_kernel.models.claim import Claim
    from travel_kernel.models.user import User


class TravelRequest(ApprovableMixin, TrackedBase):
    """Business-trip request."""

    __tablename__ = "travel_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved_l1', 'approved_l2', "
            "'approved_l3', 'approved_l4', 'approved_l5', 'approved', "
            "'rejected', 'revision', 'locked', 'closed')",
            name="ck_travel_requests_valid_status",
        ),
        Index("ix_travel_requests_requester_status", "requester_id", "status"),
    )

    ENTITY_TYPE = EntityType.TRAVEL_REQUEST
    STATUS_ENUM = TravelStatus
    EDITABLE_STATUSES = EDITABLE_TRAVEL_STATUSES
    AWAITING_STATUSES = AWAITING_TRAVEL_STATUSES

    request_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True,
    )
    requester_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    estimated_budget: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=TravelStatus.DRAFT.value,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    requester: Mapped[User] = relationship("User")
    approvals: Mapped[list[Approval]] = relationship(
        "Approval",
        back_populates="travel_request",
        order_by="Approval.level_rank",
    )
    claims: Mapped[list[Claim]] = relationship(
        "Claim", back_populates="travel_request",
    )

    def __repr__(self) -> str:
        return f"<TravelRequest {self.request_number} status={self.status}>"

    @property
    def business_key(self) -> str:
        return self.request_number

    @property
    def amount(self) -> Decimal | None:
        return self.estimated_budget

    def partial_status(self, level: ApprovalLevel) -> str:
        return travel_partial_status(level).value
