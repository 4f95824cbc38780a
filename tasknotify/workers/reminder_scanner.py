"""Reminder scanner.

Finds open tasks whose due date falls within the reminder lead time and
that have not been reminded yet. For each one it raises a REMINDER event
in its own transaction, then flags the task as reminded in a second one.

A crash between the two steps leaves the flag unset, so the task is
picked up again on the next scan and may be reminded twice.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from tasknotify.config import Settings
from tasknotify.db.session import SessionFactory
from tasknotify.models.task import Task
from tasknotify.services.tasks import TaskService
from tasknotify.workers.base import WorkerBase, WorkerResult

logger = logging.getLogger(__name__)


class ReminderScanner(WorkerBase[Task]):
    """Worker that raises due-date reminders."""

    def __init__(
        self,
        task_service: TaskService,
        session_factory: SessionFactory,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        super().__init__(batch_size=settings.WORKER_BATCH_SIZE)
        self.task_service = task_service
        self.session_factory = session_factory
        self.lead_time = timedelta(hours=settings.REMINDER_HOURS_BEFORE_DUE)
        self.clock = clock

    @property
    def worker_name(self) -> str:
        return "ReminderScanner"

    def threshold(self) -> datetime:
        """Latest due date that qualifies for a reminder now."""
        return self.clock() + self.lead_time

    def scan(self) -> WorkerResult:
        """Run one scan over every qualifying task."""
        return self.run()

    def fetch_pending(self) -> list[Task]:
        threshold = self.threshold()
        with self.session_factory() as session:
            tasks = self.task_service.find_due_for_reminder(session, threshold)

        self._logger.info(
            f"[{self.worker_name}] Scanned for due tasks",
            extra={"threshold": threshold.isoformat(), "found": len(tasks)},
        )
        return tasks

    def mark_processing(self, item: Task) -> bool:
        return not item.reminder_sent

    def process_item(self, item: Task) -> None:
        with self.session_factory() as session:
            self.task_service.raise_reminder(session, item.id)

    def mark_completed(self, item: Task) -> None:
        with self.session_factory() as session:
            self.task_service.mark_reminder_sent(session, item.id)

    def mark_failed(self, item: Task, error: str) -> None:
        # Left unflagged; the next scan will try again
        self._logger.warning(
            f"[{self.worker_name}] Reminder not raised",
            extra={"task_id": item.id, "error": error},
        )

    def get_item_id(self, item: Task) -> str:
        return str(item.id)
