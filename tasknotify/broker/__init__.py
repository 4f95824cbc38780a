"""Broker adapters for the notification topic.

Backends:
- memory: in-process log with consumer groups (development, tests)
- dapr: Dapr sidecar pub/sub over HTTP (producer; push delivery)
- kafka: confluent-kafka producer and consumer groups
"""

from tasknotify.broker.base import (
    BrokerError,
    BrokerRecord,
    MessageProducer,
    MessageSource,
    Subscription,
)
from tasknotify.broker.memory import InMemoryBroker
from tasknotify.config import Settings


def create_broker(settings: Settings) -> MessageProducer:
    """Build the broker selected by BROKER_BACKEND."""
    backend = settings.BROKER_BACKEND
    if backend == "memory":
        return InMemoryBroker()
    if backend == "dapr":
        from tasknotify.broker.dapr import DaprBroker

        return DaprBroker(
            dapr_port=settings.DAPR_HTTP_PORT,
            pubsub_name=settings.DAPR_PUBSUB_NAME,
        )
    if backend == "kafka":
        from tasknotify.broker.kafka import KafkaBroker

        return KafkaBroker(settings.KAFKA_BOOTSTRAP_SERVERS)
    raise ValueError(f"Unknown broker backend: {backend}")


__all__ = [
    "BrokerError",
    "BrokerRecord",
    "MessageProducer",
    "MessageSource",
    "Subscription",
    "InMemoryBroker",
    "create_broker",
]
