"""Tests for commit-gated event dispatch."""

import logging
import threading

from tasknotify.events.dispatcher import CommitGatedDispatcher
from tasknotify.events.types import DomainEvent, DomainEventType
from tasknotify.models.task import Task


def _event(task_id: int = 1, event_type: DomainEventType = DomainEventType.DELETED) -> DomainEvent:
    return DomainEvent(event_type=event_type, task_id=task_id)


class TestCommitGate:
    """Events only reach subscribers after the outermost commit."""

    def test_events_released_after_commit(self, dispatcher, recorder, db_session):
        """Buffered events are held until commit, then delivered."""
        dispatcher.raise_event(db_session, _event(1))
        assert dispatcher.pending_events(db_session) != []

        dispatcher.join(timeout=1)
        assert recorder.events == []

        db_session.commit()
        assert dispatcher.join(timeout=5)

        assert [event.task_id for event in recorder.events] == [1]
        assert dispatcher.pending_events(db_session) == []

    def test_rollback_discards_events(self, dispatcher, recorder, db_session):
        """Events from a rolled-back transaction are never delivered."""
        db_session.add(Task(title="Doomed"))
        db_session.flush()
        dispatcher.raise_event(db_session, _event(1))
        db_session.rollback()

        db_session.commit()
        assert dispatcher.join(timeout=5)
        assert recorder.events == []

    def test_savepoint_rollback_drops_only_inner_events(self, dispatcher, recorder, db_session):
        """Rolling back a savepoint drops events raised inside it."""
        db_session.begin()
        dispatcher.raise_event(db_session, _event(1))

        savepoint = db_session.begin_nested()
        dispatcher.raise_event(db_session, _event(2))
        savepoint.rollback()

        dispatcher.raise_event(db_session, _event(3))
        db_session.commit()
        assert dispatcher.join(timeout=5)

        assert [event.task_id for event in recorder.events] == [1, 3]

    def test_savepoint_release_does_not_dispatch(self, dispatcher, recorder, db_session):
        """Releasing a savepoint is not a commit of the outer transaction."""
        db_session.begin()
        savepoint = db_session.begin_nested()
        dispatcher.raise_event(db_session, _event(1))
        savepoint.commit()

        assert dispatcher.join(timeout=1)
        assert recorder.events == []

        db_session.commit()
        assert dispatcher.join(timeout=5)
        assert [event.task_id for event in recorder.events] == [1]

    def test_close_without_commit_discards_events(self, dispatcher, recorder, session_factory):
        """Closing a session mid-transaction drops its buffer."""
        with session_factory() as session:
            session.add(Task(title="Never saved"))
            session.flush()
            dispatcher.raise_event(session, _event(1))

        assert dispatcher.join(timeout=5)
        assert recorder.events == []

    def test_buffers_are_per_session(self, dispatcher, recorder, session_factory):
        """A commit on one session never releases another session's events."""
        with session_factory() as first, session_factory() as second:
            dispatcher.raise_event(first, _event(1))
            dispatcher.raise_event(second, _event(2))
            first.commit()
            assert dispatcher.join(timeout=5)
            assert [event.task_id for event in recorder.events] == [1]
            second.rollback()


class TestDelivery:
    """Delivery runs in the background, in order, once per subscriber."""

    def test_emission_order_preserved(self, dispatcher, recorder, db_session):
        for task_id in range(1, 6):
            dispatcher.raise_event(db_session, _event(task_id))
        db_session.commit()
        assert dispatcher.join(timeout=5)

        assert [event.task_id for event in recorder.events] == [1, 2, 3, 4, 5]

    def test_subscribers_do_not_run_on_committing_thread(self, dispatcher, recorder, db_session):
        dispatcher.raise_event(db_session, _event(1))
        db_session.commit()
        assert dispatcher.join(timeout=5)

        assert recorder.threads
        assert threading.current_thread().name not in recorder.threads

    def test_failing_subscriber_does_not_affect_others(
        self, dispatcher, recorder, db_session, caplog
    ):
        """A raising subscriber is logged; later subscribers still run."""
        calls: list[DomainEvent] = []

        def broken(event: DomainEvent) -> None:
            raise RuntimeError("boom")

        dispatcher.subscribe(broken)
        dispatcher.subscribe(calls.append)

        with caplog.at_level(logging.ERROR, logger="tasknotify.events.dispatcher"):
            dispatcher.raise_event(db_session, _event(4, DomainEventType.DELETED))
            db_session.commit()
            assert dispatcher.join(timeout=5)

        assert len(recorder.events) == 1
        assert len(calls) == 1
        failures = [r for r in caplog.records if r.getMessage() == "Event subscriber failed"]
        assert len(failures) == 1
        assert failures[0].task_id == 4
        assert failures[0].event_type == "task.deleted"

    def test_each_subscriber_called_once_per_event(self, dispatcher, recorder, db_session):
        dispatcher.raise_event(db_session, _event(1))
        db_session.commit()
        db_session.commit()
        assert dispatcher.join(timeout=5)

        assert len(recorder.events) == 1

    def test_shutdown_drops_later_batches(self, recorder, db_session, caplog):
        """After shutdown committed events are logged and dropped, not raised."""
        dispatcher = CommitGatedDispatcher(max_workers=1)
        dispatcher.subscribe(recorder)
        dispatcher.shutdown()

        with caplog.at_level(logging.ERROR, logger="tasknotify.events.dispatcher"):
            dispatcher.raise_event(db_session, _event(1))
            db_session.commit()

        assert recorder.events == []
        assert any("executor unavailable" in r.getMessage() for r in caplog.records)
