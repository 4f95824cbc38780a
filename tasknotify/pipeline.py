"""Wiring of the notification pipeline.

    TaskService --events--> CommitGatedDispatcher --after commit--> NotificationPublisher
        |                                                              |
        +--> AuditRecorder --> audit_logs                              v
                                                                    broker
                                                                       |
    ReminderScanner --> TaskService                                    v
                                                           NotificationConsumer --> channels
"""

import logging
from dataclasses import dataclass

from tasknotify.broker import MessageProducer, MessageSource, create_broker
from tasknotify.channels import ChannelRegistry, SmtpEmailSender, build_default_registry
from tasknotify.config import Settings, get_settings
from tasknotify.db.session import SessionFactory, get_engine, make_session_factory
from tasknotify.events.dispatcher import CommitGatedDispatcher
from tasknotify.events.publisher import NotificationPublisher
from tasknotify.services.audit import AuditRecorder, AuditSink, SqlAuditSink
from tasknotify.services.tasks import TaskService
from tasknotify.workers.notification_consumer import NotificationConsumer
from tasknotify.workers.reminder_scanner import ReminderScanner

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """All pipeline components, built for one process."""

    settings: Settings
    session_factory: SessionFactory
    broker: MessageProducer
    dispatcher: CommitGatedDispatcher
    publisher: NotificationPublisher
    audit: AuditRecorder
    task_service: TaskService
    registry: ChannelRegistry
    consumer: NotificationConsumer
    reminder_scanner: ReminderScanner

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for dispatched events and audit writes in flight."""
        dispatched = self.dispatcher.join(timeout)
        audited = self.audit.join(timeout)
        return dispatched and audited

    def close(self) -> None:
        """Drain background work and release broker resources."""
        self.consumer.close()
        self.dispatcher.shutdown(wait=True)
        self.audit.shutdown(wait=True)
        self.broker.close()
        logger.info("Pipeline closed")


def build_pipeline(
    settings: Settings | None = None,
    session_factory: SessionFactory | None = None,
    broker: MessageProducer | None = None,
    email_sender: SmtpEmailSender | None = None,
    audit_sink: AuditSink | None = None,
) -> Pipeline:
    """Build a pipeline; anything not supplied comes from settings."""
    settings = settings or get_settings()
    session_factory = session_factory or make_session_factory(get_engine())
    broker = broker or create_broker(settings)

    dispatcher = CommitGatedDispatcher(max_workers=settings.DISPATCH_MAX_WORKERS)
    publisher = NotificationPublisher(broker, settings)
    dispatcher.subscribe(publisher.publish)

    audit = AuditRecorder(
        audit_sink or SqlAuditSink(session_factory),
        max_workers=settings.AUDIT_MAX_WORKERS,
    )
    task_service = TaskService(dispatcher, audit)

    registry = build_default_registry(settings, email_sender=email_sender)
    source = broker if isinstance(broker, MessageSource) else None
    consumer = NotificationConsumer(registry, settings, source=source)
    reminder_scanner = ReminderScanner(task_service, session_factory, settings)

    logger.info(
        "Pipeline built",
        extra={
            "broker": type(broker).__name__,
            "notifications_enabled": settings.NOTIFICATIONS_ENABLED,
            "channels": registry.names(),
        },
    )

    return Pipeline(
        settings=settings,
        session_factory=session_factory,
        broker=broker,
        dispatcher=dispatcher,
        publisher=publisher,
        audit=audit,
        task_service=task_service,
        registry=registry,
        consumer=consumer,
        reminder_scanner=reminder_scanner,
    )


_pipeline: Pipeline | None = None


def get_pipeline() -> Pipeline:
    """Get or create the process-wide pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline
