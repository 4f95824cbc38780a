"""Dapr pub/sub producer.

Messages are posted to the Dapr sidecar's HTTP publish API as
CloudEvents. Dapr delivers to consumers by push, so there is no
subscribe() here: the consumer side is the FastAPI subscription route in
tasknotify.api.subscriptions, and the consumer group is the Dapr app-id.
"""

import json
import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

import httpx

from tasknotify.broker.base import BrokerError, MessageProducer

logger = logging.getLogger(__name__)

DAPR_HTTP_PORT = 3500
DAPR_PUBSUB_NAME = "taskpubsub"


class DaprBroker(MessageProducer):
    """Producer that publishes through the Dapr sidecar."""

    def __init__(
        self,
        dapr_port: int = DAPR_HTTP_PORT,
        pubsub_name: str = DAPR_PUBSUB_NAME,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the Dapr producer.

        Args:
            dapr_port: Dapr sidecar HTTP port (default: 3500)
            pubsub_name: Name of the Dapr pub/sub component
            client: Optional pre-configured HTTP client
        """
        self.dapr_port = dapr_port
        self.pubsub_name = pubsub_name
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=5.0)
        return self._client

    def publish_url(self, topic: str) -> str:
        return f"http://localhost:{self.dapr_port}/v1.0/publish/{self.pubsub_name}/{topic}"

    def append(self, topic: str, payload: bytes, key: str | None = None) -> None:
        """Publish one JSON payload wrapped in a CloudEvents envelope."""
        params = {"metadata.partitionKey": key} if key else None

        try:
            response = self.client.post(
                self.publish_url(topic),
                json=wrap_cloudevent(topic, payload),
                params=params,
                headers={"Content-Type": "application/cloudevents+json"},
            )
            response.raise_for_status()
        except httpx.ConnectError as e:
            raise BrokerError(f"Dapr sidecar not reachable on port {self.dapr_port}") from e
        except httpx.HTTPStatusError as e:
            raise BrokerError(
                f"Dapr publish failed with HTTP {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise BrokerError(f"Dapr publish failed: {e}") from e

        logger.info(
            "Message published to Dapr",
            extra={"topic": topic, "pubsub": self.pubsub_name, "key": key},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None


def unwrap_cloudevent(body: bytes | str) -> bytes:
    """Extract the data payload from a pushed CloudEvent as JSON bytes."""
    envelope = json.loads(body)
    data = envelope.get("data", envelope)
    if isinstance(data, str):
        return data.encode("utf-8")
    return json.dumps(data).encode("utf-8")


def wrap_cloudevent(topic: str, payload: bytes) -> dict[str, Any]:
    """Convert a JSON payload to CloudEvents format."""
    return {
        "specversion": "1.0",
        "type": f"{topic}.v1",
        "source": "/tasknotify/publisher",
        "id": str(uuid4()),
        "time": datetime.utcnow().isoformat() + "Z",
        "datacontenttype": "application/json",
        "data": json.loads(payload),
    }
