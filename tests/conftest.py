"""Shared fixtures for the notification pipeline tests.

Tests run against a file-backed SQLite database (background executors
open their own connections, which an in-memory database would not share)
and the in-memory broker.
"""

import threading
import time
from datetime import datetime, timedelta

import pytest

from tasknotify.broker.memory import InMemoryBroker
from tasknotify.config import Settings
from tasknotify.db.session import build_engine, init_db, make_session_factory
from tasknotify.events.dispatcher import CommitGatedDispatcher
from tasknotify.events.types import DomainEvent
from tasknotify.models.audit_log import AuditAction
from tasknotify.models.task import Task, TaskStatus
from tasknotify.models.user import User
from tasknotify.pipeline import build_pipeline
from tasknotify.services.audit import AuditRecorder, AuditSink
from tasknotify.services.tasks import TaskService


class RecordingAuditSink(AuditSink):
    """Audit sink that keeps records in memory."""

    def __init__(self) -> None:
        self.records: list[dict] = []
        self._lock = threading.Lock()

    def append(
        self,
        entity_type,
        entity_id,
        action,
        actor,
        old_value=None,
        new_value=None,
        details=None,
    ) -> None:
        with self._lock:
            self.records.append({
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "actor": actor,
                "old_value": old_value,
                "new_value": new_value,
                "details": details,
            })

    def by_action(self, action: AuditAction) -> list[dict]:
        with self._lock:
            return [record for record in self.records if record["action"] == action]


class RecordingEmailSender:
    """Stands in for SmtpEmailSender; fails when fail is set, sleeps for delay seconds."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False
        self.delay = 0.0

    def send(self, to: str, subject: str, body: str) -> None:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise OSError("connection refused")
        self.sent.append((to, subject, body))


class EventRecorder:
    """Dispatcher subscriber that records delivered events."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []
        self.threads: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, event: DomainEvent) -> None:
        with self._lock:
            self.events.append(event)
            self.threads.append(threading.current_thread().name)

    def types(self) -> list:
        with self._lock:
            return [event.event_type for event in self.events]


@pytest.fixture
def settings() -> Settings:
    """Settings with deterministic values for tests."""
    s = Settings()
    s.DATABASE_URL = "sqlite://"
    s.NOTIFICATIONS_ENABLED = True
    s.NOTIFICATION_TOPIC = "notifications"
    s.NOTIFICATION_CONSUMER_GROUP = "notification-consumer-group"
    s.NOTIFICATION_CHANNELS = ["email"]
    s.REMINDER_HOURS_BEFORE_DUE = 24
    s.REMINDER_SCAN_INTERVAL_SECONDS = 3600
    s.BROKER_BACKEND = "memory"
    s.SMTP_HOST = ""
    s.DISPATCH_MAX_WORKERS = 2
    s.AUDIT_MAX_WORKERS = 1
    s.WORKER_BATCH_SIZE = 50
    s.WORKER_POLL_INTERVAL_SECONDS = 0.01
    return s


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tasknotify.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def users(session_factory) -> dict[int, User]:
    """Seeded users keyed by id."""
    seeded = [
        User(id=7, username="alice", email="alice@example.com", first_name="Alice"),
        User(id=8, username="bob", email="bob@example.com"),
    ]
    with session_factory() as session:
        session.add_all(seeded)
        session.commit()
    return {user.id: user for user in seeded}


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def dispatcher(recorder):
    dispatcher = CommitGatedDispatcher(max_workers=2)
    dispatcher.subscribe(recorder)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def audit(audit_sink):
    audit = AuditRecorder(audit_sink, max_workers=1)
    yield audit
    audit.shutdown(wait=True)


@pytest.fixture
def task_service(dispatcher, audit) -> TaskService:
    """TaskService whose events go to the recorder instead of a broker."""
    return TaskService(dispatcher, audit)


@pytest.fixture
def pipeline(settings, session_factory, broker, email_sender, audit_sink, users):
    """Fully wired pipeline on the in-memory broker."""
    pipeline = build_pipeline(
        settings=settings,
        session_factory=session_factory,
        broker=broker,
        email_sender=email_sender,
        audit_sink=audit_sink,
    )
    yield pipeline
    pipeline.close()


@pytest.fixture
def make_task(session_factory, users):
    """Insert a task directly, bypassing the service (no events, no audit)."""

    def _make(
        title: str = "Write report",
        status: TaskStatus = TaskStatus.TODO,
        assignee_id: int | None = 7,
        due_in: timedelta | None = None,
        reminder_sent: bool = False,
    ) -> Task:
        task = Task(
            title=title,
            status=status,
            assignee_id=assignee_id,
            due_date=datetime.utcnow() + due_in if due_in is not None else None,
            reminder_sent=reminder_sent,
        )
        with session_factory() as session:
            session.add(task)
            session.commit()
        return task

    return _make
