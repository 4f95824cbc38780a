"""Dapr push subscription endpoints.

Dapr reads GET /dapr/subscribe at startup and then POSTs each message on
the notification topic to the declared route, wrapped in a CloudEvent.
The consumer group is the Dapr app-id of this service.

Every delivered message is acknowledged with SUCCESS once handled, even
when a channel failed, so Dapr never redelivers it. Payloads that cannot
be decoded are answered with DROP.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from tasknotify.api.deps import PipelineDep
from tasknotify.broker.dapr import unwrap_cloudevent

logger = logging.getLogger(__name__)

NOTIFICATION_ROUTE = "/events/notifications"

router = APIRouter(tags=["Subscriptions"])


@router.get("/dapr/subscribe")
def dapr_subscribe(pipeline: PipelineDep) -> list[dict[str, Any]]:
    """Declare the notification topic subscription to Dapr."""
    settings = pipeline.settings
    return [
        {
            "pubsubname": settings.DAPR_PUBSUB_NAME,
            "topic": settings.NOTIFICATION_TOPIC,
            "route": NOTIFICATION_ROUTE,
        }
    ]


@router.post(NOTIFICATION_ROUTE)
async def receive_notification(request: Request, pipeline: PipelineDep) -> dict[str, str]:
    """Handle one pushed notification message.

    Channel delivery blocks on network I/O, so it runs in the threadpool.
    """
    body = await request.body()

    try:
        payload = unwrap_cloudevent(body)
    except (ValueError, TypeError, AttributeError) as e:
        logger.error("Malformed CloudEvent received", extra={"error": str(e)})
        return {"status": "DROP"}

    message = pipeline.consumer.decode(payload)
    if message is None:
        return {"status": "DROP"}

    await run_in_threadpool(pipeline.consumer.handle, message)
    return {"status": "SUCCESS"}
