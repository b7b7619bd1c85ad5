import logging
from typing import Optional

from shared.config import settings
from shared.messages import StatusChangeMessage
from shared.models import EventStatus

logger = logging.getLogger(__name__)


def build_status_message(
        event_id: int,
        from_status: Optional[EventStatus],
        to_status: EventStatus,
        actor_id: Optional[int],
        notes: Optional[str] = None,
) -> StatusChangeMessage:
    return StatusChangeMessage(
        event_id=event_id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        notes=notes,
    )


async def publish_status_change(
        nats_client,
        event_id: int,
        from_status: Optional[EventStatus],
        to_status: EventStatus,
        actor_id: Optional[int],
        notes: Optional[str] = None,
) -> bool:
    """Publish a workflow transition for the audit worker.

    Best effort: the HTTP request that caused the transition has already
    committed, so a missing or failing broker is only logged.
    """
    if not nats_client or not getattr(nats_client, "is_connected", False):
        logger.warning(f"NATS unavailable, status change of event {event_id} not published")
        return False

    message = build_status_message(event_id, from_status, to_status, actor_id, notes)

    try:
        await nats_client.publish(settings.STATUS_SUBJECT, message.model_dump_json().encode())
    except Exception as exc:
        logger.error(f"Failed to publish status change of event {event_id}: {exc}")
        return False

    logger.info(f"Published status change {message.message_id} for event {event_id}")
    return True
