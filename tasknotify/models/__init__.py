"""SQLModel entities for the task notification pipeline."""

from tasknotify.models.audit_log import AuditAction, AuditLog
from tasknotify.models.task import (
    CLOSED_STATUSES,
    Task,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)
from tasknotify.models.user import User

__all__ = [
    "User",
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TaskStatus",
    "TaskPriority",
    "CLOSED_STATUSES",
    "AuditLog",
    "AuditAction",
]
