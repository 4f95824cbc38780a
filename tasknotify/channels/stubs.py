"""Placeholder channels.

These have no transport yet; they log what they would have sent so the
fan-out path can be exercised end to end.
"""

import logging

from tasknotify.channels.base import DeliveryResult, DeliveryStatus, NotificationChannel
from tasknotify.events.types import NotificationMessage

logger = logging.getLogger(__name__)


class _LoggingStubChannel(NotificationChannel):
    channel_name = "stub"

    @property
    def name(self) -> str:
        return self.channel_name

    def send(self, message: NotificationMessage) -> DeliveryResult:
        logger.info(
            f"[{self.channel_name}] would deliver notification",
            extra={**message.log_context(), "channel": self.channel_name},
        )
        return DeliveryResult(self.name, DeliveryStatus.SKIPPED, "not implemented")


class SmsChannel(_LoggingStubChannel):
    channel_name = "sms"


class PushChannel(_LoggingStubChannel):
    channel_name = "push"


class SlackChannel(_LoggingStubChannel):
    channel_name = "slack"


STUB_CHANNELS: dict[str, type[_LoggingStubChannel]] = {
    "sms": SmsChannel,
    "push": PushChannel,
    "slack": SlackChannel,
}
