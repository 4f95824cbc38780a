"""Database repositories for tasks, users and audit records."""

from datetime import datetime

from sqlmodel import Session, col, select

from tasknotify.models.audit_log import AuditAction, AuditLog
from tasknotify.models.task import CLOSED_STATUSES, Task
from tasknotify.models.user import User


class TaskRepository:
    """Repository for task persistence.

    The repository never commits; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def save(self, task: Task) -> Task:
        task.updated_at = datetime.utcnow()
        self.session.add(task)
        self.session.flush()
        return task

    def get(self, task_id: int) -> Task | None:
        return self.session.get(Task, task_id)

    def find_due_for_reminder(self, threshold: datetime) -> list[Task]:
        """Tasks due at or before threshold, not yet reminded and still open."""
        statement = (
            select(Task)
            .where(col(Task.due_date).is_not(None))
            .where(col(Task.due_date) <= threshold)
            .where(Task.reminder_sent == False)  # noqa: E712
            .where(col(Task.status).notin_(CLOSED_STATUSES))
            .order_by(col(Task.due_date))
        )
        return list(self.session.exec(statement).all())

    def delete(self, task: Task) -> None:
        self.session.delete(task)
        self.session.flush()


class UserRepository:
    """Read-only user lookup."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)


class AuditLogRepository:
    """Append-only access to audit records."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, audit_log: AuditLog) -> AuditLog:
        self.session.add(audit_log)
        self.session.flush()
        return audit_log

    def list_for_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        statement = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type)
            .where(AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
        )
        return list(self.session.exec(statement).all())

    def list_by_action(self, action: AuditAction) -> list[AuditLog]:
        statement = select(AuditLog).where(AuditLog.action == action).order_by(AuditLog.id)
        return list(self.session.exec(statement).all())
