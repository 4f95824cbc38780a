"""In-process broker used for development and tests.

Keeps an append-only log per topic and a cursor per (topic, group). Each
record is claimed by one subscription in the group; records claimed but
not committed when a subscription closes go back to the group.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from tasknotify.broker.base import (
    BrokerRecord,
    MessageProducer,
    MessageSource,
    Subscription,
)

logger = logging.getLogger(__name__)


@dataclass
class _GroupState:
    next_offset: int = 0
    redeliver: deque[int] = field(default_factory=deque)
    committed: set[int] = field(default_factory=set)


class InMemoryBroker(MessageProducer, MessageSource):
    """Thread-safe in-memory topic log with consumer groups."""

    def __init__(self) -> None:
        self._logs: dict[str, list[tuple[str | None, bytes]]] = {}
        self._groups: dict[tuple[str, str], _GroupState] = {}
        self._condition = threading.Condition()

    def append(self, topic: str, payload: bytes, key: str | None = None) -> None:
        with self._condition:
            log = self._logs.setdefault(topic, [])
            log.append((key, payload))
            self._condition.notify_all()
        logger.debug(
            "Message appended",
            extra={"topic": topic, "offset": len(log) - 1, "key": key},
        )

    def subscribe(self, topic: str, group_id: str) -> Subscription:
        with self._condition:
            self._groups.setdefault((topic, group_id), _GroupState())
        return InMemorySubscription(self, topic, group_id)

    def messages(self, topic: str) -> list[bytes]:
        """All payloads ever appended to topic."""
        with self._condition:
            return [payload for _, payload in self._logs.get(topic, [])]

    def committed_count(self, topic: str, group_id: str) -> int:
        with self._condition:
            state = self._groups.get((topic, group_id))
            return len(state.committed) if state else 0

    def _claim(self, topic: str, group_id: str, timeout: float) -> BrokerRecord | None:
        with self._condition:
            state = self._groups[(topic, group_id)]
            if not self._has_work(topic, state):
                self._condition.wait_for(lambda: self._has_work(topic, state), timeout)
            if not self._has_work(topic, state):
                return None

            if state.redeliver:
                offset = state.redeliver.popleft()
            else:
                offset = state.next_offset
                state.next_offset += 1

            key, payload = self._logs[topic][offset]
            return BrokerRecord(topic=topic, payload=payload, key=key, offset=offset)

    def _has_work(self, topic: str, state: _GroupState) -> bool:
        return bool(state.redeliver) or state.next_offset < len(self._logs.get(topic, []))

    def _commit(self, topic: str, group_id: str, offset: int) -> None:
        with self._condition:
            self._groups[(topic, group_id)].committed.add(offset)

    def _release(self, topic: str, group_id: str, offsets: list[int]) -> None:
        with self._condition:
            state = self._groups[(topic, group_id)]
            state.redeliver.extend(sorted(offsets))
            self._condition.notify_all()


class InMemorySubscription(Subscription):
    """Subscription handle returned by InMemoryBroker.subscribe."""

    def __init__(self, broker: InMemoryBroker, topic: str, group_id: str) -> None:
        self._broker = broker
        self.topic = topic
        self.group_id = group_id
        self._in_flight: set[int] = set()
        self._closed = False

    def poll(self, timeout: float = 1.0) -> BrokerRecord | None:
        if self._closed:
            return None
        record = self._broker._claim(self.topic, self.group_id, timeout)
        if record is not None:
            self._in_flight.add(record.offset)
        return record

    def commit(self, record: BrokerRecord) -> None:
        self._broker._commit(self.topic, self.group_id, record.offset)
        self._in_flight.discard(record.offset)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._in_flight:
            self._broker._release(self.topic, self.group_id, list(self._in_flight))
            self._in_flight.clear()
