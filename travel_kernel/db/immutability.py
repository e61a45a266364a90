"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here reject:

Entity          | Rule
----------------|-----------------------------------------------------------
AuditRecord     | ALWAYS immutable; never updated, never deleted
Approval        | approval_number, level, approver and parent link are fixed
                | at creation; approvals are never deleted, only transitioned
TravelRequest / | requester-entered content changes only while the status
Claim           | before the flush is DRAFT or REVISION

Status transitions of approvals go through conditional Core UPDATE
statements (see services/approval_service.py); those never touch the
structural columns guarded here.

If a check fails, ImmutabilityViolationError is raised and the flush is
aborted.  The database is never modified.
"""

from sqlalchemy import event, inspect

from travel_kernel.exceptions import ImmutabilityViolationError
from travel_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

APPROVAL_STRUCTURAL_FIELDS = frozenset({
    "approval_number",
    "level",
    "approver_id",
    "travel_request_id",
    "claim_id",
})


# Requester-entered content, editable only in DRAFT / REVISION
TRAVEL_REQUEST_CONTENT_FIELDS = frozenset({
    "requester_id",
    "purpose",
    "destination",
    "start_date",
    "end_date",
    "estimated_budget",
})

CLAIM_CONTENT_FIELDS = frozenset({
    "requester_id",
    "travel_request_id",
    "amount",
    "description",
})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_audit_record_update(mapper, connection, target):
    _blocked(
        "AuditRecord",
        str(target.id),
        "UPDATE",
        "Audit records are immutable and cannot be modified",
    )


def _check_audit_record_delete(mapper, connection, target):
    _blocked(
        "AuditRecord",
        str(target.id),
        "DELETE",
        "Audit records cannot be deleted",
    )


def _check_approval_structural_update(mapper, connection, target):
    state = inspect(target)
    changed = sorted(
        name
        for name in APPROVAL_STRUCTURAL_FIELDS
        if state.attrs[name].history.has_changes()
    )
    if changed:
        _blocked(
            "Approval",
            str(target.id),
            "UPDATE",
            f"Fields fixed at creation cannot change: {', '.join(changed)}",
        )


def _check_approval_delete(mapper, connection, target):
    _blocked(
        "Approval",
        str(target.id),
        "DELETE",
        "Approvals are never deleted, only transitioned",
    )


def _content_guard(fields: frozenset):
    def check(mapper, connection, target):
        state = inspect(target)
        changed = sorted(
            name for name in fields if state.attrs[name].history.has_changes()
        )
        if not changed:
            return
        previous = state.attrs["status"].history.deleted
        status_before = previous[0] if previous else target.status
        if target.STATUS_ENUM(status_before) not in target.EDITABLE_STATUSES:
            _blocked(
                type(target).__name__,
                str(target.id),
                "UPDATE",
                f"{', '.join(changed)} cannot change in status {status_before}",
            )

    return check


_check_travel_request_content = _content_guard(TRAVEL_REQUEST_CONTENT_FIELDS)
_check_claim_content = _content_guard(CLAIM_CONTENT_FIELDS)


def _listeners():
    from travel_kernel.models.approval import Approval
    from travel_kernel.models.audit_record import AuditRecord
    from travel_kernel.models.claim import Claim
    from travel_kernel.models.travel_request import TravelRequest

    return (
        (AuditRecord, "before_update", _check_audit_record_update),
        (AuditRecord, "before_delete", _check_audit_record_delete),
        (Approval, "before_update", _check_approval_structural_update),
        (Approval, "before_delete", _check_approval_delete),
        (TravelRequest, "before_update", _check_travel_request_content),
        (Claim, "before_update", _check_claim_content),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
