"""
travel_services.notifications -- hand-off to the notification dispatcher.

Responsibility:
    Describes the notifications the engine emits after a committed
    transition (an approver has something to act on, a requester's entity
    was decided, a bailout moved) and passes them to an injected
    dispatcher.  Delivery itself (e-mail, chat, push) is an external
    collaborator.

Architecture position:
    Services layer.  Only ``WorkflowEngine`` calls into this module, and
    only after the transaction that produced the event has committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from travel_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    APPROVAL_REQUESTED = "approval_requested"
    ENTITY_APPROVED = "entity_approved"
    ENTITY_REJECTED = "entity_rejected"
    REVISION_REQUESTED = "revision_requested"
    BAILOUT_STATUS_CHANGED = "bailout_status_changed"


@dataclass(frozen=True)
class WorkflowNotification:
    """One message for one recipient."""

    kind: NotificationKind
    recipient_id: UUID
    entity_type: str
    entity_id: UUID
    business_key: str
    details: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: WorkflowNotification) -> None: ...


class LoggingNotificationDispatcher:
    """Dispatcher that only records notifications in the structured log."""

    def dispatch(self, notification: WorkflowNotification) -> None:
        logger.info(
            "notification_dispatched",
            extra={
                "kind": notification.kind.value,
                "recipient_id": str(notification.recipient_id),
                "entity_type": notification.entity_type,
                "business_key": notification.business_key,
            },
        )


class RecordingNotificationDispatcher:
    """Keeps every notification in memory; used by tests and demos."""

    def __init__(self) -> None:
        self.sent: list[WorkflowNotification] = []

    def dispatch(self, notification: WorkflowNotification) -> None:
        self.sent.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[WorkflowNotification]:
        return [n for n in self.sent if n.kind == kind]
