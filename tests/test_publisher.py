"""Tests for NotificationPublisher."""

import logging
from datetime import datetime

import pytest

from tasknotify.broker.base import BrokerError, MessageProducer
from tasknotify.broker.memory import InMemoryBroker
from tasknotify.events.publisher import TEMPLATES, NotificationPublisher, render
from tasknotify.events.types import (
    DomainEvent,
    DomainEventType,
    NotificationMessage,
    NotificationType,
    TaskSnapshot,
)
from tasknotify.models.task import TaskPriority, TaskStatus


def _snapshot(**overrides) -> TaskSnapshot:
    fields = {
        "id": 3,
        "title": "Ship release",
        "description": "Tag and publish 2.0",
        "status": TaskStatus.IN_PROGRESS,
        "priority": TaskPriority.HIGH,
        "due_date": datetime(2026, 11, 1, 9, 0),
        "assignee_id": 7,
        "assignee_email": "alice@example.com",
        "assignee_name": "Alice",
    }
    fields.update(overrides)
    return TaskSnapshot(**fields)


def _event(event_type: DomainEventType, **overrides) -> DomainEvent:
    return DomainEvent(event_type=event_type, task_id=3, task=_snapshot(**overrides))


class FailingBroker(MessageProducer):
    def append(self, topic, payload, key=None):
        raise BrokerError("broker unreachable")


@pytest.fixture
def publisher(broker, settings) -> NotificationPublisher:
    return NotificationPublisher(broker, settings)


class TestBuildMessage:
    """Event to message mapping and templates."""

    @pytest.mark.parametrize(
        "event_type, notification_type, subject",
        [
            (DomainEventType.ASSIGNED, NotificationType.TASK_ASSIGNED, "New Task Assigned: Ship release"),
            (DomainEventType.STATUS_CHANGED, NotificationType.TASK_STATUS_CHANGED, "Task Status Updated: Ship release"),
            (DomainEventType.REMINDER, NotificationType.TASK_REMINDER, "Task Reminder: Ship release"),
        ],
    )
    def test_mapping(self, publisher, event_type, notification_type, subject):
        message = publisher.build_message(_event(event_type))

        assert message.type == notification_type
        assert message.subject == subject
        assert message.recipient == "alice@example.com"
        assert message.task_id == 3

    @pytest.mark.parametrize("event_type", [DomainEventType.CREATED, DomainEventType.DELETED])
    def test_events_without_notification(self, publisher, event_type):
        event = DomainEvent(event_type=event_type, task_id=3, task=_snapshot())
        assert publisher.build_message(event) is None

    def test_unassigned_task_has_no_recipient(self, publisher):
        event = _event(DomainEventType.REMINDER, assignee_id=None, assignee_email=None, assignee_name=None)
        assert publisher.build_message(event) is None

    def test_assigned_body(self, publisher):
        body = publisher.build_message(_event(DomainEventType.ASSIGNED)).body

        assert body.startswith("Hello Alice,")
        assert "Description: Tag and publish 2.0" in body
        assert "Priority: HIGH" in body
        assert "Due Date: 2026-11-01T09:00:00" in body
        assert body.endswith("Task Management System")

    def test_status_body(self, publisher):
        body = publisher.build_message(_event(DomainEventType.STATUS_CHANGED)).body
        assert "New Status: IN_PROGRESS" in body

    def test_missing_fields_render_as_not_available(self, publisher):
        body = publisher.build_message(
            _event(DomainEventType.REMINDER, description=None, due_date=None)
        ).body

        assert "Description: N/A" in body
        assert "Due Date: N/A" in body

    def test_every_type_has_a_template(self):
        assert set(TEMPLATES) == set(NotificationType)

    def test_overdue_template(self):
        subject, body = render(NotificationType.TASK_OVERDUE, _snapshot())

        assert subject == "Task Overdue: Ship release"
        assert body.startswith("Hello Alice,")
        assert "The following task is past its due date:" in body
        assert "Due Date: 2026-11-01T09:00:00" in body
        assert body.endswith("Task Management System")


class TestPublish:
    """Appending to the broker."""

    def test_publish_appends_keyed_message(self, publisher, broker):
        publisher.publish(_event(DomainEventType.ASSIGNED))

        payloads = broker.messages("notifications")
        assert len(payloads) == 1
        message = NotificationMessage.from_bytes(payloads[0])
        assert message.type == NotificationType.TASK_ASSIGNED
        assert message.recipient == "alice@example.com"

    def test_publish_skips_events_without_notification(self, publisher, broker):
        publisher.publish(_event(DomainEventType.CREATED))
        assert broker.messages("notifications") == []

    def test_disabled_notifications_are_suppressed(self, settings, caplog):
        settings.NOTIFICATIONS_ENABLED = False
        broker = InMemoryBroker()
        publisher = NotificationPublisher(broker, settings)

        with caplog.at_level(logging.INFO, logger="tasknotify.events.publisher"):
            publisher.publish(_event(DomainEventType.ASSIGNED))

        assert broker.messages("notifications") == []
        suppressed = [r for r in caplog.records if r.getMessage() == "Notification suppressed"]
        assert len(suppressed) == 1
        assert suppressed[0].levelno == logging.INFO

    def test_broker_failure_is_logged_not_raised(self, settings, caplog):
        publisher = NotificationPublisher(FailingBroker(), settings)

        with caplog.at_level(logging.ERROR, logger="tasknotify.events.publisher"):
            publisher.publish(_event(DomainEventType.STATUS_CHANGED))

        failures = [r for r in caplog.records if r.getMessage() == "Failed to publish notification"]
        assert len(failures) == 1
        assert failures[0].task_id == 3
        assert failures[0].recipient == "alice@example.com"
        assert failures[0].event_type == "task.status_changed"
