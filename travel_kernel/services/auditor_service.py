"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Appends an immutable, hash-chained AuditRecord for every transition the
    engine performs: chain build and submission, approve / reject /
    revision, chain reset, bailout stage changes and entity lifecycle
    changes.  Provides chain validation and per-entity traces.

Architecture position:
    Kernel > Services -- imperative shell, called by ChainBuilder,
    ApprovalService, RevisionResetService, BailoutService and
    EntityLifecycleService inside their callers' transactions.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Append-only: AuditRecord rows are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError from validate_chain() on any mismatch.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from travel_kernel.domain.clock import Clock, SystemClock
from travel_kernel.exceptions import AuditChainBrokenError
from travel_kernel.logging_config import get_logger
from travel_kernel.models.audit_record import AuditAction, AuditRecord
from travel_kernel.services.sequence_service import SequenceService
from travel_kernel.utils.hashing import hash_audit_record, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit records of one entity in chronological order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit records.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(AuditRecord.hash).order_by(AuditRecord.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """
        Append one audit record linked to its predecessor.

        The sequence allocation locks the audit counter row, so the
        predecessor read below sees the last committed record.

        Postconditions:
            - A new AuditRecord is flushed with a fresh seq and
              ``hash == H(entity_type, entity_id, action, payload_hash,
              prev_hash)``.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_RECORD)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        record_hash = hash_audit_record(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_record = AuditRecord(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=record_hash,
        )

        self._session.add(audit_record)
        self._session.flush()

        logger.info(
            "audit_record_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_record

    # Domain-specific recording methods

    def record_submission(
        self,
        entity,
        actor_id: UUID,
        levels: list[str],
        empty_chain: bool,
        resubmission: bool,
    ) -> AuditRecord:
        """Record that an entity was submitted with its approval chain."""
        return self.record(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            action=AuditAction.SUBMIT,
            actor_id=actor_id,
            payload={
                "business_key": entity.business_key,
                "status": entity.status,
                "levels": levels,
                "empty_chain": empty_chain,
                "resubmission": resubmission,
            },
        )

    def record_approval_decision(
        self,
        approval,
        action: AuditAction,
        actor_id: UUID,
        channel: str,
        parent_status: str,
        comments: str | None = None,
        rejection_reason: str | None = None,
        admin_override: bool = False,
        direct: bool = False,
    ) -> AuditRecord:
        """Record approve / reject / revision on one approval of a parent.

        ``direct`` marks an approval created and decided in one step.
        """
        payload: dict[str, Any] = {
            "approval_id": approval.id,
            "approval_number": approval.approval_number,
            "level": approval.level,
            "channel": channel,
            "parent_status": parent_status,
        }
        if comments is not None:
            payload["comments"] = comments
        if rejection_reason is not None:
            payload["rejection_reason"] = rejection_reason
        if admin_override:
            payload["admin_override"] = True
        if direct:
            payload["direct"] = True
        return self.record(
            entity_type=type(approval.parent).__name__,
            entity_id=approval.entity_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_chain_reset(
        self,
        entity,
        actor_id: UUID,
        trigger_approval_id: UUID,
        reset_approval_ids: list[UUID],
    ) -> AuditRecord:
        """Record that every approval of an entity returned to PENDING."""
        return self.record(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            action=AuditAction.CHAIN_RESET,
            actor_id=actor_id,
            payload={
                "trigger_approval_id": trigger_approval_id,
                "reset_approval_ids": sorted(str(i) for i in reset_approval_ids),
                "reset_count": len(reset_approval_ids),
            },
        )

    def record_bailout_transition(
        self,
        bailout,
        action: AuditAction,
        actor_id: UUID,
        role: str,
        from_status: str | None,
        notes: str | None = None,
    ) -> AuditRecord:
        """Record one stage change of a bailout."""
        payload: dict[str, Any] = {
            "bailout_number": bailout.bailout_number,
            "from_status": from_status,
            "to_status": bailout.status,
            "role": role,
        }
        if notes is not None:
            payload["notes"] = notes
        return self.record(
            entity_type="Bailout",
            entity_id=bailout.id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_lifecycle(
        self,
        entity,
        action: AuditAction,
        actor_id: UUID,
        from_status: str | None,
        extra: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Record create / lock / close / pay of a travel request or claim."""
        return self.record(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            action=action,
            actor_id=actor_id,
            payload={
                "business_key": entity.business_key,
                "from_status": from_status,
                "to_status": entity.status,
                **(extra or {}),
            },
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If any stored hash or predecessor link
                does not match.
        """
        records = self._session.execute(
            select(AuditRecord).order_by(AuditRecord.seq)
        ).scalars().all()

        if not records:
            return True

        if records[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"record_id": str(records[0].id)})
            raise AuditChainBrokenError(
                str(records[0].id), "None", records[0].prev_hash,
            )

        for i, record in enumerate(records):
            expected_hash = hash_audit_record(
                entity_type=record.entity_type,
                entity_id=str(record.entity_id),
                action=record.action,
                payload_hash=hash_payload(record.payload or {}),
                prev_hash=record.prev_hash,
            )
            if record.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"record_id": str(record.id)})
                raise AuditChainBrokenError(str(record.id), expected_hash, record.hash)

            if i > 0 and record.prev_hash != records[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"record_id": str(record.id)})
                raise AuditChainBrokenError(
                    str(record.id), records[i - 1].hash, record.prev_hash or "None",
                )

        logger.info("audit_chain_valid", extra={"record_count": len(records)})
        return True

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit records for an entity, oldest first."""
        records = self._session.execute(
            select(AuditRecord)
            .where(
                AuditRecord.entity_type == entity_type,
                AuditRecord.entity_id == entity_id,
            )
            .order_by(AuditRecord.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=r.seq,
                action=r.action_enum,
                occurred_at=r.occurred_at,
                actor_id=r.actor_id,
                payload=r.payload or {},
                hash=r.hash,
            )
            for r in records
        )
        return AuditTrace(entity_type=entity_type, entity_id=entity_id, entries=entries)
