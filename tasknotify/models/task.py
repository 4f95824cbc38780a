"""Task entity model."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    """Task priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Statuses that never receive due-date reminders
CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TaskBase(SQLModel):
    """Base Task schema."""

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)


class Task(TaskBase, table=True):
    """Task database model."""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, index=True)
    due_date: datetime | None = Field(default=None, index=True)
    assignee_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    created_by_id: int | None = Field(default=None, foreign_key="users.id")
    reminder_sent: bool = Field(default=False)
    estimated_hours: int | None = Field(default=None)
    actual_hours: int | None = Field(default=None)
    tags: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = Field(default=None)


class TaskCreate(SQLModel):
    """Schema for task creation."""

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: int | None = None
    created_by_id: int | None = None
    estimated_hours: int | None = None
    tags: str | None = None


class TaskUpdate(SQLModel):
    """Schema for partial task update.

    Fields left as None are not applied.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: int | None = None
    estimated_hours: int | None = None
    actual_hours: int | None = None
    tags: str | None = None
