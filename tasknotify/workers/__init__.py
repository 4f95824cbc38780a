"""Background workers for the notification pipeline.

Workers:
- NotificationConsumer: Delivers notifications from the broker to channels
- ReminderScanner: Raises reminders for tasks approaching their due date
"""

from tasknotify.workers.base import WorkerBase, WorkerResult, WorkerStatus
from tasknotify.workers.notification_consumer import NotificationConsumer
from tasknotify.workers.reminder_scanner import ReminderScanner
from tasknotify.workers.runner import (
    RunnerResult,
    WorkerRunner,
    configure_worker_logging,
    run_worker_loop,
    run_worker_once,
)

__all__ = [
    # Base
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Workers
    "NotificationConsumer",
    "ReminderScanner",
    # Runner
    "WorkerRunner",
    "RunnerResult",
    "run_worker_once",
    "run_worker_loop",
    "configure_worker_logging",
]
