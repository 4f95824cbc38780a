"""Notification channel abstraction.

A channel is one way of reaching a recipient (email, SMS, push, ...).
The consumer looks up the channels registered for a notification type
and hands each of them the message unchanged.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from tasknotify.events.types import NotificationMessage, NotificationType


class DeliveryStatus(str, Enum):
    """Outcome of a single channel send."""

    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DeliveryResult:
    """Result of handing a message to one channel."""

    channel: str
    status: DeliveryStatus
    detail: str | None = None


class NotificationChannel(ABC):
    """A capability to deliver a notification message."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short channel identifier used in logs and configuration."""
        pass

    @abstractmethod
    def send(self, message: NotificationMessage) -> DeliveryResult:
        """Deliver message.

        Raises:
            TransientDeliveryFailure: If the underlying transport fails
        """
        pass


class ChannelRegistry:
    """Maps notification types to the channels that deliver them."""

    def __init__(self) -> None:
        self._channels: dict[NotificationType, list[NotificationChannel]] = {}

    def register(
        self,
        channel: NotificationChannel,
        types: list[NotificationType] | None = None,
    ) -> None:
        """Register channel for types (all notification types when omitted)."""
        for notification_type in types or list(NotificationType):
            registered = self._channels.setdefault(notification_type, [])
            if channel not in registered:
                registered.append(channel)

    def channels_for(self, notification_type: NotificationType) -> list[NotificationChannel]:
        return list(self._channels.get(notification_type, []))

    def names(self) -> list[str]:
        seen: list[str] = []
        for channels in self._channels.values():
            for channel in channels:
                if channel.name not in seen:
                    seen.append(channel.name)
        return seen
