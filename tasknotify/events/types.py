"""Domain event and notification message definitions."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from tasknotify.models.task import Task, TaskPriority, TaskStatus
from tasknotify.models.user import User


class DomainEventType(str, Enum):
    """Task lifecycle transitions that may trigger side effects."""

    CREATED = "task.created"
    STATUS_CHANGED = "task.status_changed"
    ASSIGNED = "task.assigned"
    REMINDER = "task.reminder"
    DELETED = "task.deleted"


class NotificationType(str, Enum):
    """Channel-agnostic notification kinds carried on the broker."""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_REMINDER = "TASK_REMINDER"
    TASK_OVERDUE = "TASK_OVERDUE"


class TaskSnapshot(BaseModel):
    """Immutable copy of a task taken when an event is raised.

    The assignee's address and display name are resolved inside the
    transaction so nothing downstream of the commit gate needs a session.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None = None
    assignee_id: int | None = None
    assignee_email: str | None = None
    assignee_name: str | None = None
    created_by_id: int | None = None
    reminder_sent: bool = False
    completed_at: datetime | None = None

    @classmethod
    def from_task(cls, task: Task, assignee: User | None = None) -> "TaskSnapshot":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            assignee_id=task.assignee_id,
            assignee_email=assignee.email if assignee else None,
            assignee_name=assignee.display_name if assignee else None,
            created_by_id=task.created_by_id,
            reminder_sent=task.reminder_sent,
            completed_at=task.completed_at,
        )


class DomainEvent(BaseModel):
    """A fact about a task transition, raised inside a transaction.

    Events are transient: they live in the per-transaction buffer until
    commit and are never persisted.
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: DomainEventType
    task_id: int
    task: TaskSnapshot | None = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def for_task(
        cls,
        event_type: DomainEventType,
        task: Task,
        assignee: User | None = None,
    ) -> "DomainEvent":
        return cls(
            event_type=event_type,
            task_id=task.id,
            task=TaskSnapshot.from_task(task, assignee),
        )

    @classmethod
    def deleted(cls, task_id: int) -> "DomainEvent":
        return cls(event_type=DomainEventType.DELETED, task_id=task_id)

    def log_context(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type.value,
            "task_id": self.task_id,
        }


class NotificationMessage(BaseModel):
    """Notification handed from the publisher to the consumer via the broker."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    subject: str
    body: str
    type: NotificationType
    task_id: int
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes | str) -> "NotificationMessage":
        return cls.model_validate_json(payload)

    def log_context(self) -> dict[str, Any]:
        return {
            "notification_type": self.type.value,
            "task_id": self.task_id,
            "recipient": self.recipient,
        }
