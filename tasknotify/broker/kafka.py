"""Kafka broker backed by confluent-kafka.

Producer and consumer clients are created lazily. Consumers join a
consumer group with auto-commit disabled; the notification consumer
commits each offset after the message has been handled.
"""

import logging
import threading
from typing import Any

from confluent_kafka import Consumer, KafkaError, KafkaException, Producer

from tasknotify.broker.base import (
    BrokerError,
    BrokerRecord,
    MessageProducer,
    MessageSource,
    Subscription,
)

logger = logging.getLogger(__name__)


class KafkaBroker(MessageProducer, MessageSource):
    """Producer and consumer-group factory for a Kafka cluster."""

    def __init__(self, bootstrap_servers: str, flush_timeout: float = 10.0) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._flush_timeout = flush_timeout
        self._producer: Any = None
        # Publishes arrive from the dispatcher's pool threads
        self._producer_lock = threading.Lock()

    def _get_producer(self) -> Any:
        """Get or create the Kafka producer."""
        with self._producer_lock:
            if self._producer is None:
                self._producer = Producer({
                    "bootstrap.servers": self._bootstrap_servers,
                    "acks": "all",
                    "enable.idempotence": True,
                    "message.timeout.ms": 10000,
                    "request.timeout.ms": 10000,
                    "retries": 3,
                })
            return self._producer

    def append(self, topic: str, payload: bytes, key: str | None = None) -> None:
        delivery_result: dict[str, Any] = {"error": None}

        def delivery_callback(err: Any, msg: Any) -> None:
            if err:
                delivery_result["error"] = str(err)

        try:
            producer = self._get_producer()
            producer.produce(
                topic=topic,
                key=key.encode("utf-8") if key else None,
                value=payload,
                callback=delivery_callback,
            )
            remaining = producer.flush(timeout=self._flush_timeout)
        except (KafkaException, BufferError) as e:
            raise BrokerError(f"Kafka produce failed: {e}") from e

        if remaining > 0 or delivery_result["error"]:
            raise BrokerError(delivery_result["error"] or "Kafka flush timeout")

        logger.info("Message produced to Kafka", extra={"topic": topic, "key": key})

    def subscribe(self, topic: str, group_id: str) -> Subscription:
        consumer = Consumer({
            "bootstrap.servers": self._bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": False,
            "max.poll.interval.ms": 300000,
            "session.timeout.ms": 45000,
        })
        consumer.subscribe([topic])
        logger.info("Consumer subscribed", extra={"topic": topic, "group_id": group_id})
        return KafkaSubscription(consumer, topic)

    def close(self) -> None:
        with self._producer_lock:
            producer, self._producer = self._producer, None
        if producer is not None:
            producer.flush(timeout=self._flush_timeout)


class KafkaSubscription(Subscription):
    """Wraps a confluent-kafka Consumer."""

    def __init__(self, consumer: Any, topic: str) -> None:
        self._consumer = consumer
        self.topic = topic
        self._closed = False

    def poll(self, timeout: float = 1.0) -> BrokerRecord | None:
        if self._closed:
            return None

        message = self._consumer.poll(timeout)
        if message is None:
            return None

        error = message.error()
        if error is not None:
            if error.code() == KafkaError._PARTITION_EOF:
                return None
            raise BrokerError(f"Kafka consume failed: {error}")

        key = message.key()
        return BrokerRecord(
            topic=message.topic(),
            payload=message.value(),
            key=key.decode("utf-8") if key else None,
            offset=message.offset(),
            partition=message.partition(),
            raw=message,
        )

    def commit(self, record: BrokerRecord) -> None:
        self._consumer.commit(message=record.raw, asynchronous=False)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._consumer.close()
