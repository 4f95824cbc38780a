"""Notification consumer.

Reads NotificationMessage payloads from the notification topic as a
member of the consumer group and fans each one out to the channels
registered for its type. Every record is committed once handled, whatever
the channel outcome: failed sends are logged, not retried, and nothing is
dead-lettered.

With the Dapr backend messages arrive by push instead; the subscription
route calls handle_payload() directly and this worker has no source.
"""

import logging

from pydantic import ValidationError

from tasknotify.broker.base import BrokerRecord, MessageSource, Subscription
from tasknotify.channels.base import ChannelRegistry, DeliveryResult, DeliveryStatus
from tasknotify.config import Settings
from tasknotify.events.types import NotificationMessage
from tasknotify.workers.base import WorkerBase

logger = logging.getLogger(__name__)


class NotificationConsumer(WorkerBase[BrokerRecord]):
    """Worker that delivers notifications from the broker to channels."""

    def __init__(
        self,
        registry: ChannelRegistry,
        settings: Settings,
        source: MessageSource | None = None,
        batch_size: int | None = None,
        poll_timeout: float = 0.5,
    ) -> None:
        """Initialize the consumer.

        Args:
            registry: Channels per notification type
            settings: Supplies the topic and consumer group
            source: Broker to pull from; None for push delivery
            batch_size: Records handled per cycle
            poll_timeout: Seconds to wait for the first record of a cycle
        """
        super().__init__(batch_size=batch_size or settings.WORKER_BATCH_SIZE)
        self.registry = registry
        self.source = source
        self.topic = settings.NOTIFICATION_TOPIC
        self.group_id = settings.NOTIFICATION_CONSUMER_GROUP
        self.poll_timeout = poll_timeout
        self._subscription: Subscription | None = None

    @property
    def worker_name(self) -> str:
        return "NotificationConsumer"

    @property
    def subscription(self) -> Subscription | None:
        """Lazily join the consumer group."""
        if self._subscription is None and self.source is not None:
            self._subscription = self.source.subscribe(self.topic, self.group_id)
            self._logger.info(
                f"[{self.worker_name}] Joined consumer group",
                extra={"topic": self.topic, "group_id": self.group_id},
            )
        return self._subscription

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def fetch_pending(self) -> list[BrokerRecord]:
        subscription = self.subscription
        if subscription is None:
            return []

        records: list[BrokerRecord] = []
        timeout = self.poll_timeout
        while len(records) < self.batch_size:
            record = subscription.poll(timeout)
            if record is None:
                break
            records.append(record)
            # Only the first poll of a cycle waits
            timeout = 0.0
        return records

    def mark_processing(self, item: BrokerRecord) -> bool:
        return True

    def process_item(self, item: BrokerRecord) -> None:
        self.handle_payload(item.payload)

    def mark_completed(self, item: BrokerRecord) -> None:
        if self._subscription is not None:
            self._subscription.commit(item)

    def mark_failed(self, item: BrokerRecord, error: str) -> None:
        # No retry and no dead-letter topic: the record is completed anyway
        self._logger.warning(
            f"[{self.worker_name}] Dropping record after failure",
            extra={"topic": item.topic, "offset": item.offset, "error": error},
        )
        self.mark_completed(item)

    def get_item_id(self, item: BrokerRecord) -> str:
        return f"{item.topic}:{item.partition or 0}:{item.offset}"

    def close(self) -> None:
        """Leave the consumer group."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
            self._logger.info(f"[{self.worker_name}] Subscription closed")

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    def handle_payload(self, payload: bytes | str) -> list[DeliveryResult]:
        """Decode and deliver one serialized message. Never raises."""
        message = self.decode(payload)
        if message is None:
            return []
        return self.handle(message)

    def decode(self, payload: bytes | str) -> NotificationMessage | None:
        try:
            return NotificationMessage.from_bytes(payload)
        except (ValidationError, ValueError) as e:
            logger.error(
                "Undecodable notification payload, skipping",
                extra={"topic": self.topic, "error": str(e)},
            )
            return None

    def handle(self, message: NotificationMessage) -> list[DeliveryResult]:
        """Send message through every channel registered for its type.

        A failing channel does not stop the others. Never raises.
        """
        channels = self.registry.channels_for(message.type)
        if not channels:
            logger.warning(
                "No channel registered for notification type",
                extra=message.log_context(),
            )
            return []

        results: list[DeliveryResult] = []
        for channel in channels:
            try:
                results.append(channel.send(message))
            except Exception as e:
                logger.error(
                    "Notification delivery failed",
                    extra={**message.log_context(), "channel": channel.name, "error": str(e)},
                    exc_info=True,
                )
                results.append(DeliveryResult(channel.name, DeliveryStatus.FAILED, str(e)))

        logger.info(
            "Notification handled",
            extra={
                **message.log_context(),
                "results": {result.channel: result.status.value for result in results},
            },
        )
        return results
