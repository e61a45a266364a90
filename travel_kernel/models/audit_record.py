"""
Module: travel_kernel.models.audit_record
Responsibility: ORM persistence for the append-only, hash-chained audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
      Validated by AuditorService.validate_chain().
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    Every approval action, chain build, chain reset, bailout transition and
    entity lifecycle change writes one AuditRecord in the same transaction
    as the change it describes.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from travel_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    CREATE = "create"
    UPDATE = "update"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REVISION_REQUESTED = "revision_requested"
    CHAIN_RESET = "chain_reset"
    LOCK = "lock"
    CLOSE = "close"
    PAY = "pay"
    DISBURSE = "disburse"


class AuditRecord(Base):
    """
    Audit record with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis record.
    """

    __tablename__ = "audit_records"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_actor", "actor_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # "TravelRequest", "Claim", "Approval", "Bailout"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditRecord {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def action_enum(self) -> AuditAction:
        return AuditAction(self.action)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
