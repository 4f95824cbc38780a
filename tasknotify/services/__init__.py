"""Business logic services."""

from tasknotify.services.audit import AuditRecorder, AuditSink, SqlAuditSink
from tasknotify.services.tasks import TaskService

__all__ = [
    "AuditRecorder",
    "AuditSink",
    "SqlAuditSink",
    "TaskService",
]
