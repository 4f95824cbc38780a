"""Event-driven notification layer.

Components:
- types.py: Domain events, task snapshots and notification messages
- dispatcher.py: Commit-gated release of domain events to subscribers
- publisher.py: Maps committed events to notification messages on the broker
"""

from tasknotify.events.dispatcher import CommitGatedDispatcher, EventHandler
from tasknotify.events.publisher import NotificationPublisher
from tasknotify.events.types import (
    DomainEvent,
    DomainEventType,
    NotificationMessage,
    NotificationType,
    TaskSnapshot,
)

__all__ = [
    # Types
    "DomainEvent",
    "DomainEventType",
    "NotificationMessage",
    "NotificationType",
    "TaskSnapshot",
    # Dispatch
    "CommitGatedDispatcher",
    "EventHandler",
    # Publisher
    "NotificationPublisher",
]
