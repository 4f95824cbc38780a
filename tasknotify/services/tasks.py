"""Task service: transactional task mutations.

Each mutating operation runs as one transaction on the caller's session.
Domain events describing the transition are handed to the commit-gated
dispatcher and only reach subscribers once the transaction commits. Audit
records go to the audit recorder and are written independently of the
transaction outcome.
"""

import logging
from datetime import datetime

from sqlmodel import Session

from tasknotify.db.repositories import TaskRepository, UserRepository
from tasknotify.errors import InvalidReference, NotFound
from tasknotify.events.dispatcher import CommitGatedDispatcher
from tasknotify.events.types import DomainEvent, DomainEventType
from tasknotify.models.audit_log import AuditAction
from tasknotify.models.task import Task, TaskCreate, TaskPriority, TaskStatus, TaskUpdate
from tasknotify.models.user import User
from tasknotify.services.audit import AuditRecorder

logger = logging.getLogger(__name__)

ENTITY_TYPE = "TASK"
SYSTEM_ACTOR = "SYSTEM"

# Plain fields copied from a TaskUpdate when present
_PATCHABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "tags",
)


class TaskService:
    """Creates, updates and deletes tasks, raising events for each transition.

    Usage:
        service = TaskService(dispatcher, audit)
        task = service.create(session, TaskCreate(title="Ship release", assignee_id=7))
    """

    def __init__(self, dispatcher: CommitGatedDispatcher, audit: AuditRecorder) -> None:
        self.dispatcher = dispatcher
        self.audit = audit

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session: Session, task_id: int) -> Task:
        task = TaskRepository(session).get(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        return task

    def find_due_for_reminder(self, session: Session, threshold: datetime) -> list[Task]:
        """Open, not yet reminded tasks due at or before threshold."""
        return TaskRepository(session).find_due_for_reminder(threshold)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, session: Session, data: TaskCreate, actor: str = SYSTEM_ACTOR) -> Task:
        """Create a task.

        Raises CREATED, and ASSIGNED when the task has an assignee.

        Raises:
            InvalidReference: If assignee_id or created_by_id does not resolve
        """
        logger.info("Creating task", extra={"title": data.title})

        try:
            assignee = self._resolve_user(session, "assignee_id", data.assignee_id)
            self._resolve_user(session, "created_by_id", data.created_by_id)

            task = Task(
                title=data.title,
                description=data.description,
                status=data.status or TaskStatus.TODO,
                priority=data.priority or TaskPriority.MEDIUM,
                due_date=data.due_date,
                assignee_id=data.assignee_id,
                created_by_id=data.created_by_id,
                estimated_hours=data.estimated_hours,
                tags=data.tags,
                reminder_sent=False,
            )
            if task.status == TaskStatus.COMPLETED:
                task.completed_at = datetime.utcnow()
            TaskRepository(session).save(task)

            self.audit.record(
                ENTITY_TYPE, task.id, AuditAction.CREATE, actor,
                new_value=task.title, details="Task created",
            )

            self.dispatcher.raise_event(
                session, DomainEvent.for_task(DomainEventType.CREATED, task, assignee)
            )
            if assignee is not None:
                self.dispatcher.raise_event(
                    session, DomainEvent.for_task(DomainEventType.ASSIGNED, task, assignee)
                )

            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info("Task created", extra={"task_id": task.id})
        return task

    def update_fields(
        self,
        session: Session,
        task_id: int,
        patch: TaskUpdate,
        actor: str = SYSTEM_ACTOR,
    ) -> Task:
        """Apply the non-null fields of patch to a task.

        A change of status raises STATUS_CHANGED; a change of assignee
        raises ASSIGNED. Setting the same value again is not a change.

        Raises:
            NotFound: If the task does not exist
            InvalidReference: If the new assignee does not resolve
        """
        logger.info("Updating task", extra={"task_id": task_id})

        try:
            task = self.get(session, task_id)
            old_status = task.status
            old_assignee_id = task.assignee_id

            assignee_changed = (
                patch.assignee_id is not None and patch.assignee_id != old_assignee_id
            )
            if assignee_changed:
                self._resolve_user(session, "assignee_id", patch.assignee_id)

            for name in _PATCHABLE_FIELDS:
                value = getattr(patch, name)
                if value is not None:
                    setattr(task, name, value)

            status_changed = patch.status is not None and patch.status != old_status
            if status_changed:
                task.status = patch.status
                if patch.status == TaskStatus.COMPLETED:
                    task.completed_at = datetime.utcnow()
                self.audit.record(
                    ENTITY_TYPE, task.id, AuditAction.STATUS_CHANGE, actor,
                    old_value=old_status.value, new_value=patch.status.value,
                    details="Task status changed",
                )

            if assignee_changed:
                task.assignee_id = patch.assignee_id
                self.audit.record(
                    ENTITY_TYPE, task.id, AuditAction.ASSIGN, actor,
                    old_value=str(old_assignee_id) if old_assignee_id is not None else "null",
                    new_value=str(patch.assignee_id),
                    details="Task assigned",
                )

            TaskRepository(session).save(task)

            # Snapshots are taken after all fields are applied
            assignee = self._resolve_user(session, "assignee_id", task.assignee_id)
            if status_changed:
                self.dispatcher.raise_event(
                    session,
                    DomainEvent.for_task(DomainEventType.STATUS_CHANGED, task, assignee),
                )
            if assignee_changed:
                self.dispatcher.raise_event(
                    session,
                    DomainEvent.for_task(DomainEventType.ASSIGNED, task, assignee),
                )

            self.audit.record(
                ENTITY_TYPE, task.id, AuditAction.UPDATE, actor, details="Task updated"
            )

            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info(
            "Task updated",
            extra={
                "task_id": task.id,
                "status_changed": status_changed,
                "assignee_changed": assignee_changed,
            },
        )
        return task

    def update_status(
        self,
        session: Session,
        task_id: int,
        status: TaskStatus,
        actor: str = SYSTEM_ACTOR,
    ) -> Task:
        return self.update_fields(session, task_id, TaskUpdate(status=status), actor)

    def update_assignee(
        self,
        session: Session,
        task_id: int,
        assignee_id: int,
        actor: str = SYSTEM_ACTOR,
    ) -> Task:
        return self.update_fields(session, task_id, TaskUpdate(assignee_id=assignee_id), actor)

    def delete(self, session: Session, task_id: int, actor: str = SYSTEM_ACTOR) -> None:
        """Delete a task and raise DELETED.

        Raises:
            NotFound: If the task does not exist
        """
        logger.info("Deleting task", extra={"task_id": task_id})

        try:
            task = self.get(session, task_id)
            title = task.title
            TaskRepository(session).delete(task)

            self.audit.record(
                ENTITY_TYPE, task_id, AuditAction.DELETE, actor,
                old_value=title, details="Task deleted",
            )
            self.dispatcher.raise_event(session, DomainEvent.deleted(task_id))

            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info("Task deleted", extra={"task_id": task_id})

    def mark_reminder_sent(self, session: Session, task_id: int) -> None:
        """Flag a task as reminded. Calling it again is a no-op.

        Raises:
            NotFound: If the task does not exist
        """
        try:
            task = self.get(session, task_id)
            if not task.reminder_sent:
                task.reminder_sent = True
                TaskRepository(session).save(task)
            session.commit()
        except Exception:
            session.rollback()
            raise

    def raise_reminder(self, session: Session, task_id: int) -> DomainEvent:
        """Raise a REMINDER event for a task and commit.

        Raises:
            NotFound: If the task does not exist
        """
        try:
            task = self.get(session, task_id)
            assignee = self._resolve_user(session, "assignee_id", task.assignee_id)
            event = DomainEvent.for_task(DomainEventType.REMINDER, task, assignee)
            self.dispatcher.raise_event(session, event)
            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info("Reminder raised", extra=event.log_context())
        return event

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_user(self, session: Session, field: str, user_id: int | None) -> User | None:
        if user_id is None:
            return None
        user = UserRepository(session).get(user_id)
        if user is None:
            raise InvalidReference(field, user_id)
        return user
