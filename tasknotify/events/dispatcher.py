"""Commit-gated event dispatch.

Domain events raised while a task is being mutated are held in a buffer
attached to the SQLAlchemy session. They are released to subscribers only
after the outermost transaction commits, and discarded when the
transaction (or the savepoint they were raised in) rolls back.

Event Flow:
    TaskService --raise_event--> session buffer
        commit   --> ThreadPoolExecutor --> subscribers (publisher, ...)
        rollback --> dropped

Subscribers never run on the committing thread, so broker latency never
lands on the caller's request. Events from one transaction are delivered
in emission order as a single batch; batches from different transactions
may interleave.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session, SessionTransaction

from tasknotify.events.types import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class CommitGatedDispatcher:
    """Buffers events per transaction and releases them after commit.

    Usage:
        dispatcher = CommitGatedDispatcher()
        dispatcher.subscribe(publisher.publish)

        session.add(task)
        dispatcher.raise_event(session, DomainEvent.for_task(...))
        session.commit()  # publisher.publish runs on a background thread
    """

    def __init__(
        self,
        max_workers: int = 4,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            max_workers: Size of the background pool used for delivery
            executor: Optional pre-built executor (owned by the dispatcher)
        """
        self._subscribers: list[EventHandler] = []
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="event-dispatch",
        )
        self._futures: set[Future] = set()
        self._lock = threading.Lock()
        self._buffer_key = f"tasknotify.pending_events.{id(self)}"
        self._hooked_key = f"tasknotify.dispatcher_hooked.{id(self)}"

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler invoked once per committed event."""
        self._subscribers.append(handler)

    @property
    def subscribers(self) -> list[EventHandler]:
        return list(self._subscribers)

    # ------------------------------------------------------------------
    # Transaction side
    # ------------------------------------------------------------------

    def raise_event(self, session: Session, event: DomainEvent) -> None:
        """Buffer an event on the session's current transaction."""
        self._attach(session)

        transaction = session.get_nested_transaction() or session.get_transaction()
        if transaction is None:
            transaction = session.begin()

        self._buffer(session).append((transaction, event))

        logger.debug("Domain event buffered", extra=event.log_context())

    def pending_events(self, session: Session) -> list[DomainEvent]:
        """Events raised on session that are waiting for commit."""
        return [event for _, event in session.info.get(self._buffer_key, [])]

    def _buffer(self, session: Session) -> list[tuple[SessionTransaction, DomainEvent]]:
        return session.info.setdefault(self._buffer_key, [])

    def _attach(self, session: Session) -> None:
        if session.info.get(self._hooked_key):
            return
        sa_event.listen(session, "after_commit", self._after_commit)
        sa_event.listen(session, "after_soft_rollback", self._after_soft_rollback)
        sa_event.listen(session, "after_transaction_end", self._after_transaction_end)
        session.info[self._hooked_key] = True

    def _after_commit(self, session: Session) -> None:
        # Also fired when a savepoint is released; only the outermost
        # commit makes the events durable.
        if session.in_nested_transaction():
            return
        buffered = session.info.pop(self._buffer_key, [])
        if not buffered:
            return
        self._release([event for _, event in buffered])

    def _after_soft_rollback(
        self, session: Session, previous_transaction: SessionTransaction
    ) -> None:
        buffered = session.info.get(self._buffer_key)
        if not buffered:
            return

        kept = [
            (transaction, event)
            for transaction, event in buffered
            if not _is_within(transaction, previous_transaction)
        ]
        dropped = len(buffered) - len(kept)
        session.info[self._buffer_key] = kept

        if dropped:
            logger.info(
                "Transaction rolled back, discarding buffered events",
                extra={"discarded_count": dropped},
            )

    def _after_transaction_end(
        self, session: Session, transaction: SessionTransaction
    ) -> None:
        # Root transaction ended without after_commit (e.g. session closed
        # mid-transaction): nothing buffered may survive it.
        if transaction.parent is not None:
            return
        leftover = session.info.pop(self._buffer_key, [])
        if leftover:
            logger.info(
                "Transaction ended without commit, discarding buffered events",
                extra={"discarded_count": len(leftover)},
            )

    # ------------------------------------------------------------------
    # Delivery side
    # ------------------------------------------------------------------

    def _release(self, events: list[DomainEvent]) -> None:
        # Runs inside after_commit: the commit already succeeded, so nothing
        # raised here may reach the caller.
        try:
            future = self._executor.submit(self._deliver, events)
        except RuntimeError as e:
            logger.error(
                "Dispatcher executor unavailable, committed events dropped",
                extra={
                    "event_ids": [str(event.event_id) for event in events],
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

    def _deliver(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.dispatch(event)

    def dispatch(self, event: DomainEvent) -> None:
        """Invoke every subscriber once for a committed event.

        Errors in one subscriber do not affect the others and are never
        retried.
        """
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event subscriber failed",
                    extra={
                        **event.log_context(),
                        "subscriber": _handler_name(handler),
                        "error": str(e),
                    },
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def join(self, timeout: float | None = None) -> bool:
        """Wait for in-flight batches. Returns True when none remain."""
        with self._lock:
            pending = set(self._futures)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting batches; with wait, drain those in flight."""
        self._executor.shutdown(wait=wait)


def _is_within(transaction: SessionTransaction, ancestor: SessionTransaction) -> bool:
    current: SessionTransaction | None = transaction
    while current is not None:
        if current is ancestor:
            return True
        current = current.parent
    return False


def _handler_name(handler: Any) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__name__", repr(handler))
    if owner is not None:
        return f"{owner.__class__.__name__}.{name}"
    return name
