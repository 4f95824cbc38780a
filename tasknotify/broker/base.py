"""Broker abstractions for the notification topic.

A broker carries serialized NotificationMessage payloads from the
publisher to the consumer. Delivery is assumed at-least-once.

- MessageProducer: append(topic, payload)
- MessageSource: subscribe(topic, group_id) -> Subscription
- Subscription: poll() / commit() / close()

Within one consumer group a record is handed to at most one subscription
at a time. The publisher side never touches group offsets.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any


class BrokerError(Exception):
    """Broker unreachable or rejected a request."""


@dataclass
class BrokerRecord:
    """A message read from a subscription."""

    topic: str
    payload: bytes
    key: str | None = None
    offset: int | None = None
    partition: int | None = None
    raw: Any = field(default=None, repr=False)


class Subscription(ABC):
    """A consumer-group membership on one topic."""

    @abstractmethod
    def poll(self, timeout: float = 1.0) -> BrokerRecord | None:
        """Return the next record, or None if nothing arrived within timeout."""

    @abstractmethod
    def commit(self, record: BrokerRecord) -> None:
        """Mark a record as completed for the consumer group."""

    @abstractmethod
    def close(self) -> None:
        """Leave the consumer group; uncommitted records are redelivered."""

    def records(self, timeout: float = 1.0) -> Iterator[BrokerRecord]:
        """Iterate records until a poll comes back empty."""
        while True:
            record = self.poll(timeout)
            if record is None:
                return
            yield record


class MessageProducer(ABC):
    """Producer side of the broker."""

    @abstractmethod
    def append(self, topic: str, payload: bytes, key: str | None = None) -> None:
        """Append a payload to topic.

        Raises:
            BrokerError: If the broker cannot accept the message
        """

    def close(self) -> None:
        """Release client resources."""


class MessageSource(ABC):
    """Consumer side of the broker."""

    @abstractmethod
    def subscribe(self, topic: str, group_id: str) -> Subscription:
        """Join group_id on topic."""
