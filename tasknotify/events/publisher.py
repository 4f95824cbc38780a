"""Notification publisher.

Subscribed to the commit-gated dispatcher, so it only ever sees events
from committed transactions, on a background thread. It turns a domain
event into a channel-agnostic NotificationMessage and appends it to the
notification topic.

Failures here (broker unreachable, serialization errors) are logged and
swallowed: the originating request has already succeeded.
"""

import logging
from datetime import datetime

from tasknotify.broker.base import MessageProducer
from tasknotify.config import Settings
from tasknotify.errors import SuppressedByConfig, TransientDeliveryFailure
from tasknotify.events.types import (
    DomainEvent,
    DomainEventType,
    NotificationMessage,
    NotificationType,
    TaskSnapshot,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
SIGNATURE = "Best regards,\nTask Management System"

# Events that produce a notification; CREATED and DELETED intentionally do not
EVENT_TO_NOTIFICATION: dict[DomainEventType, NotificationType] = {
    DomainEventType.ASSIGNED: NotificationType.TASK_ASSIGNED,
    DomainEventType.STATUS_CHANGED: NotificationType.TASK_STATUS_CHANGED,
    DomainEventType.REMINDER: NotificationType.TASK_REMINDER,
}

# Notification templates: (subject, body)
TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.TASK_ASSIGNED: (
        "New Task Assigned: {title}",
        "Hello {name},\n\n"
        "You have been assigned a new task:\n\n"
        "Title: {title}\n"
        "Description: {description}\n"
        "Priority: {priority}\n"
        "Due Date: {due_date}\n\n"
        "Please review and start working on it.\n\n"
        f"{SIGNATURE}",
    ),
    NotificationType.TASK_STATUS_CHANGED: (
        "Task Status Updated: {title}",
        "Hello {name},\n\n"
        "The status of your task has been updated:\n\n"
        "Title: {title}\n"
        "New Status: {status}\n"
        "Priority: {priority}\n\n"
        f"{SIGNATURE}",
    ),
    NotificationType.TASK_REMINDER: (
        "Task Reminder: {title}",
        "Hello {name},\n\n"
        "This is a reminder about your upcoming task:\n\n"
        "Title: {title}\n"
        "Description: {description}\n"
        "Priority: {priority}\n"
        "Due Date: {due_date}\n\n"
        "Please ensure you complete it on time.\n\n"
        f"{SIGNATURE}",
    ),
    NotificationType.TASK_OVERDUE: (
        "Task Overdue: {title}",
        "Hello {name},\n\n"
        "The following task is past its due date:\n\n"
        "Title: {title}\n"
        "Priority: {priority}\n"
        "Due Date: {due_date}\n\n"
        f"{SIGNATURE}",
    ),
}


def render(notification_type: NotificationType, task: TaskSnapshot) -> tuple[str, str]:
    """Render the (subject, body) pair for a task snapshot."""
    subject_template, body_template = TEMPLATES[notification_type]
    fields = {
        "name": task.assignee_name or task.assignee_email or "there",
        "title": task.title,
        "description": task.description or NOT_AVAILABLE,
        "status": task.status.value,
        "priority": task.priority.value,
        "due_date": task.due_date.isoformat() if task.due_date else NOT_AVAILABLE,
    }
    return subject_template.format(**fields), body_template.format(**fields)


class NotificationPublisher:
    """Builds notification messages from committed events and appends them to the broker."""

    def __init__(self, broker: MessageProducer, settings: Settings) -> None:
        """Initialize the publisher.

        Args:
            broker: Producer for the notification topic
            settings: Supplies NOTIFICATIONS_ENABLED and NOTIFICATION_TOPIC
        """
        self.broker = broker
        self.enabled = settings.NOTIFICATIONS_ENABLED
        self.topic = settings.NOTIFICATION_TOPIC

    def build_message(self, event: DomainEvent) -> NotificationMessage | None:
        """Map an event to a message, or None when there is nothing to send."""
        notification_type = EVENT_TO_NOTIFICATION.get(event.event_type)
        if notification_type is None:
            logger.debug("No notification needed for event", extra=event.log_context())
            return None

        task = event.task
        if task is None or not task.assignee_email:
            logger.debug("No recipient for event, skipping", extra=event.log_context())
            return None

        subject, body = render(notification_type, task)
        return NotificationMessage(
            recipient=task.assignee_email,
            subject=subject,
            body=body,
            type=notification_type,
            task_id=task.id,
            timestamp=datetime.utcnow(),
        )

    def publish(self, event: DomainEvent) -> None:
        """Publish the notification for a committed event.

        Never raises.
        """
        try:
            self._ensure_enabled()
        except SuppressedByConfig as e:
            logger.info(
                "Notification suppressed",
                extra={**event.log_context(), "reason": e.message},
            )
            return

        try:
            message = self.build_message(event)
            if message is None:
                return
            self._append(message)
        except TransientDeliveryFailure as e:
            logger.error(
                "Failed to publish notification",
                extra={
                    **event.log_context(),
                    "topic": self.topic,
                    "recipient": e.destination,
                    "error": e.message,
                },
                exc_info=True,
            )
        except Exception as e:
            logger.error(
                "Unexpected error publishing notification",
                extra={**event.log_context(), "topic": self.topic, "error": str(e)},
                exc_info=True,
            )

    def _ensure_enabled(self) -> None:
        if not self.enabled:
            raise SuppressedByConfig()

    def _append(self, message: NotificationMessage) -> None:
        try:
            payload = message.to_bytes()
            self.broker.append(self.topic, payload, key=str(message.task_id))
        except Exception as e:
            raise TransientDeliveryFailure(str(e), destination=message.recipient) from e

        logger.info(
            "Notification appended to topic",
            extra={**message.log_context(), "topic": self.topic},
        )
