"""Transactional facade over the travel kernel."""

from travel_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationKind,
    RecordingNotificationDispatcher,
    WorkflowNotification,
)
from travel_services.workflow_engine import WorkflowEngine, WorkflowServices

__all__ = [
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationKind",
    "RecordingNotificationDispatcher",
    "WorkflowEngine",
    "WorkflowNotification",
    "WorkflowServices",
]
