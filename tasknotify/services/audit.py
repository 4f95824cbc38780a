"""Audit trail recording.

Every task mutation produces audit records describing what changed. They
are written off the request thread on the recorder's own executor and in
their own session, so an audit failure never aborts the mutation and a
rolled-back mutation may still leave its audit record behind.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait

from tasknotify.db.repositories import AuditLogRepository
from tasknotify.db.session import SessionFactory
from tasknotify.models.audit_log import AuditAction, AuditLog

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Destination for audit records."""

    @abstractmethod
    def append(
        self,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        actor: str | None,
        old_value: str | None = None,
        new_value: str | None = None,
        details: str | None = None,
    ) -> None:
        pass


class SqlAuditSink(AuditSink):
    """Writes AuditLog rows in a dedicated session per record."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    def append(
        self,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        actor: str | None,
        old_value: str | None = None,
        new_value: str | None = None,
        details: str | None = None,
    ) -> None:
        with self.session_factory() as session:
            AuditLogRepository(session).append(
                AuditLog(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    performed_by=actor,
                    old_value=old_value,
                    new_value=new_value,
                    details=details,
                )
            )
            session.commit()


class AuditRecorder:
    """Fire-and-forget front end for an AuditSink.

    record() returns immediately; the sink runs on a background pool and
    its failures are logged and dropped.
    """

    def __init__(
        self,
        sink: AuditSink,
        max_workers: int = 2,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.sink = sink
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="audit",
        )
        self._futures: set[Future] = set()
        self._lock = threading.Lock()

    def record(
        self,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        actor: str | None,
        old_value: str | None = None,
        new_value: str | None = None,
        details: str | None = None,
    ) -> None:
        """Schedule an audit record. Never raises."""
        try:
            future = self._executor.submit(
                self._write,
                entity_type,
                entity_id,
                action,
                actor,
                old_value,
                new_value,
                details,
            )
        except RuntimeError as e:
            logger.error(
                "Audit executor unavailable, record dropped",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "action": action.value,
                    "error": str(e),
                },
            )
            return

        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def _write(
        self,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        actor: str | None,
        old_value: str | None,
        new_value: str | None,
        details: str | None,
    ) -> None:
        try:
            self.sink.append(
                entity_type,
                entity_id,
                action,
                actor,
                old_value=old_value,
                new_value=new_value,
                details=details,
            )
        except Exception as e:
            logger.error(
                "Failed to record audit log",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "action": action.value,
                    "error": str(e),
                },
                exc_info=True,
            )
            return

        logger.info(
            "Audit log recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action.value,
                "performed_by": actor,
            },
        )

    def join(self, timeout: float | None = None) -> bool:
        """Wait for scheduled records. Returns True when none remain."""
        with self._lock:
            pending = set(self._futures)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
