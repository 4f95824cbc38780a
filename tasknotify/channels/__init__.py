"""Notification channels and the type-to-channel registry."""

import logging

from tasknotify.channels.base import (
    ChannelRegistry,
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
)
from tasknotify.channels.email import EmailChannel, SmtpEmailSender
from tasknotify.channels.stubs import STUB_CHANNELS, PushChannel, SlackChannel, SmsChannel
from tasknotify.config import Settings

logger = logging.getLogger(__name__)


def build_default_registry(
    settings: Settings,
    email_sender: SmtpEmailSender | None = None,
) -> ChannelRegistry:
    """Registry with email for every notification type plus configured stubs.

    Args:
        settings: Supplies SMTP_* and NOTIFICATION_CHANNELS
        email_sender: Overrides the sender built from settings
    """
    registry = ChannelRegistry()
    sender = email_sender or SmtpEmailSender.from_settings(settings)
    registry.register(EmailChannel(sender))

    for name in settings.NOTIFICATION_CHANNELS:
        if name == "email":
            continue
        channel_cls = STUB_CHANNELS.get(name)
        if channel_cls is None:
            logger.warning("Unknown notification channel ignored", extra={"channel": name})
            continue
        registry.register(channel_cls())

    return registry


__all__ = [
    "ChannelRegistry",
    "DeliveryResult",
    "DeliveryStatus",
    "NotificationChannel",
    "EmailChannel",
    "SmtpEmailSender",
    "SmsChannel",
    "PushChannel",
    "SlackChannel",
    "build_default_registry",
]
