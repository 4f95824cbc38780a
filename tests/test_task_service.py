"""Tests for TaskService: transactions, events and audit records."""

import pytest
from sqlmodel import select

from tasknotify.errors import InvalidReference, NotFound
from tasknotify.events.types import DomainEventType
from tasknotify.models.audit_log import AuditAction
from tasknotify.models.task import Task, TaskCreate, TaskPriority, TaskStatus, TaskUpdate


def _drain(dispatcher, audit) -> None:
    assert dispatcher.join(timeout=5)
    assert audit.join(timeout=5)


class TestCreate:
    """Task creation."""

    def test_create_with_assignee(self, task_service, dispatcher, audit, recorder, audit_sink, db_session, users):
        """Creating an assigned task raises CREATED then ASSIGNED and audits CREATE."""
        task = task_service.create(db_session, TaskCreate(title="Ship release", assignee_id=7))
        _drain(dispatcher, audit)

        assert task.id is not None
        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.reminder_sent is False

        assert recorder.types() == [DomainEventType.CREATED, DomainEventType.ASSIGNED]
        assigned = recorder.events[1]
        assert assigned.task.assignee_email == "alice@example.com"
        assert assigned.task.assignee_name == "Alice"

        creates = audit_sink.by_action(AuditAction.CREATE)
        assert len(creates) == 1
        assert creates[0]["entity_type"] == "TASK"
        assert creates[0]["entity_id"] == task.id
        assert creates[0]["new_value"] == "Ship release"
        assert creates[0]["actor"] == "SYSTEM"

    def test_create_without_assignee(self, task_service, dispatcher, audit, recorder, db_session, users):
        task_service.create(db_session, TaskCreate(title="Backlog item"))
        _drain(dispatcher, audit)

        assert recorder.types() == [DomainEventType.CREATED]

    def test_create_with_unknown_assignee(self, task_service, dispatcher, audit, recorder, db_session, users):
        """An unresolved assignee aborts the transaction and emits nothing."""
        with pytest.raises(InvalidReference) as exc_info:
            task_service.create(db_session, TaskCreate(title="Orphan", assignee_id=999))
        _drain(dispatcher, audit)

        assert exc_info.value.field == "assignee_id"
        assert recorder.events == []
        assert db_session.exec(select(Task)).all() == []

    def test_create_with_unknown_creator(self, task_service, db_session, users):
        with pytest.raises(InvalidReference):
            task_service.create(db_session, TaskCreate(title="Orphan", created_by_id=999))


class TestUpdate:
    """Partial updates, status changes and reassignment."""

    def test_status_change(self, task_service, dispatcher, audit, recorder, audit_sink, db_session, make_task):
        """TODO -> IN_PROGRESS raises STATUS_CHANGED and audits old/new status."""
        task = make_task(status=TaskStatus.TODO)

        updated = task_service.update_status(db_session, task.id, TaskStatus.IN_PROGRESS)
        _drain(dispatcher, audit)

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.completed_at is None
        assert recorder.types() == [DomainEventType.STATUS_CHANGED]

        changes = audit_sink.by_action(AuditAction.STATUS_CHANGE)
        assert len(changes) == 1
        assert changes[0]["old_value"] == "TODO"
        assert changes[0]["new_value"] == "IN_PROGRESS"
        assert len(audit_sink.by_action(AuditAction.UPDATE)) == 1

    def test_completed_stamps_completed_at(self, task_service, db_session, make_task):
        task = make_task(status=TaskStatus.IN_REVIEW)

        updated = task_service.update_status(db_session, task.id, TaskStatus.COMPLETED)

        assert updated.completed_at is not None

    def test_other_status_leaves_completed_at(self, task_service, db_session, make_task):
        """Moving away from COMPLETED does not clear completed_at."""
        task = make_task(status=TaskStatus.IN_REVIEW)
        completed = task_service.update_status(db_session, task.id, TaskStatus.COMPLETED)
        stamp = completed.completed_at

        reopened = task_service.update_status(db_session, task.id, TaskStatus.IN_PROGRESS)

        assert reopened.completed_at == stamp

    def test_same_status_is_not_a_change(self, task_service, dispatcher, audit, recorder, audit_sink, db_session, make_task):
        task = make_task(status=TaskStatus.IN_PROGRESS)

        task_service.update_status(db_session, task.id, TaskStatus.IN_PROGRESS)
        _drain(dispatcher, audit)

        assert recorder.events == []
        assert audit_sink.by_action(AuditAction.STATUS_CHANGE) == []
        assert len(audit_sink.by_action(AuditAction.UPDATE)) == 1

    def test_reassignment(self, task_service, dispatcher, audit, recorder, audit_sink, db_session, make_task):
        """Changing the assignee raises ASSIGNED with the new assignee's address."""
        task = make_task(assignee_id=7)

        task_service.update_assignee(db_session, task.id, 8)
        _drain(dispatcher, audit)

        assert recorder.types() == [DomainEventType.ASSIGNED]
        assert recorder.events[0].task.assignee_email == "bob@example.com"
        assigns = audit_sink.by_action(AuditAction.ASSIGN)
        assert assigns[0]["old_value"] == "7"
        assert assigns[0]["new_value"] == "8"

    def test_first_assignment_audits_null(self, task_service, dispatcher, audit, audit_sink, db_session, make_task):
        task = make_task(assignee_id=None)

        task_service.update_assignee(db_session, task.id, 7)
        _drain(dispatcher, audit)

        assert audit_sink.by_action(AuditAction.ASSIGN)[0]["old_value"] == "null"

    def test_status_and_assignee_in_one_patch(self, task_service, dispatcher, audit, recorder, db_session, make_task):
        """Both events are raised, in order, with the final state."""
        task = make_task(assignee_id=7)

        task_service.update_fields(
            db_session, task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS, assignee_id=8)
        )
        _drain(dispatcher, audit)

        assert recorder.types() == [DomainEventType.STATUS_CHANGED, DomainEventType.ASSIGNED]
        assert all(event.task.assignee_id == 8 for event in recorder.events)

    def test_plain_fields_only(self, task_service, dispatcher, audit, recorder, db_session, make_task):
        task = make_task()

        updated = task_service.update_fields(
            db_session, task.id, TaskUpdate(title="Renamed", priority=TaskPriority.HIGH)
        )
        _drain(dispatcher, audit)

        assert updated.title == "Renamed"
        assert updated.priority == TaskPriority.HIGH
        assert recorder.events == []

    def test_unknown_new_assignee_rolls_back(self, task_service, dispatcher, audit, recorder, session_factory, make_task):
        task = make_task(status=TaskStatus.TODO)

        with session_factory() as session:
            with pytest.raises(InvalidReference):
                task_service.update_fields(
                    session, task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS, assignee_id=999)
                )
        _drain(dispatcher, audit)

        assert recorder.events == []
        with session_factory() as session:
            assert session.get(Task, task.id).status == TaskStatus.TODO

    def test_update_missing_task(self, task_service, db_session, users):
        with pytest.raises(NotFound):
            task_service.update_status(db_session, 12345, TaskStatus.COMPLETED)


class TestDelete:
    def test_delete(self, task_service, dispatcher, audit, recorder, audit_sink, db_session, make_task):
        task = make_task(title="Old work")

        task_service.delete(db_session, task.id)
        _drain(dispatcher, audit)

        assert db_session.get(Task, task.id) is None
        assert recorder.types() == [DomainEventType.DELETED]
        assert recorder.events[0].task is None
        deletes = audit_sink.by_action(AuditAction.DELETE)
        assert deletes[0]["old_value"] == "Old work"

    def test_delete_missing_task(self, task_service, db_session, users):
        with pytest.raises(NotFound):
            task_service.delete(db_session, 12345)


class TestReminders:
    def test_mark_reminder_sent_is_idempotent(self, task_service, dispatcher, audit, recorder, audit_sink, session_factory, make_task):
        task = make_task()

        with session_factory() as session:
            task_service.mark_reminder_sent(session, task.id)
            task_service.mark_reminder_sent(session, task.id)
        _drain(dispatcher, audit)

        with session_factory() as session:
            assert session.get(Task, task.id).reminder_sent is True
        assert recorder.events == []
        assert audit_sink.records == []

    def test_raise_reminder(self, task_service, dispatcher, audit, recorder, db_session, make_task):
        task = make_task(title="Pay invoice")

        event = task_service.raise_reminder(db_session, task.id)
        _drain(dispatcher, audit)

        assert event.event_type == DomainEventType.REMINDER
        assert recorder.events == [event]
        assert event.task.title == "Pay invoice"

