import asyncio
import logging
from typing import Dict

import nats
from nats.aio.msg import Msg
from pydantic import ValidationError
from sqlalchemy.orm import Session

from shared.config import settings
from shared.database import Base, SessionLocal, engine
from shared.messages import StatusChangeMessage
from shared.models import EventStatusChange, utcnow

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_DELAY_BASE = 3
DLQ_SUBJECT = f"{settings.STATUS_SUBJECT}.dlq"
RETRY_HEADER = "X-Retry-Count"


def get_retry_count(msg: Msg) -> int:
    try:
        return int((msg.header or {}).get(RETRY_HEADER, 0))
    except (ValueError, TypeError):
        return 0


def retry_delay(attempt: int) -> int:
    return RETRY_DELAY_BASE ** attempt


async def requeue(nc: nats.NATS, msg: Msg, attempt: int):
    delay = retry_delay(attempt)
    logger.info(f"Retrying message in {delay}s (retry {attempt}/{MAX_RETRIES})")
    await asyncio.sleep(delay)

    headers: Dict[str, str] = dict(msg.header or {})
    headers[RETRY_HEADER] = str(attempt)
    await nc.publish(msg.subject, msg.data, headers=headers)


async def send_to_dlq(nc: nats.NATS, original_msg: Msg, reason: str):
    headers = {
        "X-Original-Subject": original_msg.subject,
        "X-Error-Message": reason[:500],
        "X-Failed-At": utcnow().isoformat(),
        RETRY_HEADER: str(get_retry_count(original_msg)),
    }
    try:
        await nc.publish(DLQ_SUBJECT, original_msg.data, headers=headers)
    except Exception as e:
        logger.error(f"Failed to send message to DLQ: {e}")
        return
    logger.warning(f"Message moved to {DLQ_SUBJECT}: {reason}")


def record_status_change(db: Session, message: StatusChangeMessage) -> bool:
    """Insert the audit row for one notification. Returns False for an already recorded message."""
    seen = db.query(EventStatusChange.id).filter(
        EventStatusChange.message_id == message.message_id
    ).first()
    if seen:
        return False

    db.add(EventStatusChange(
        message_id=message.message_id,
        event_id=message.event_id,
        from_status=message.from_status.value if message.from_status else None,
        to_status=message.to_status.value,
        actor_id=message.actor_id,
        notes=message.notes,
        occurred_at=message.occurred_at,
    ))
    return True


async def process_status_message(msg: Msg, nc: nats.NATS):
    """Store one status notification.

    Payloads that do not parse can never succeed and go straight to the DLQ.
    Storage failures are republished with a growing delay until MAX_RETRIES
    is reached.
    """
    try:
        message = StatusChangeMessage.model_validate_json(msg.data)
    except ValidationError as e:
        logger.error(f"Discarding malformed status message: {e.error_count()} validation errors")
        await send_to_dlq(nc, msg, str(e))
        return

    retry_count = get_retry_count(msg)
    transition = f"{message.from_status.value if message.from_status else 'new'} -> {message.to_status.value}"

    db = SessionLocal()
    try:
        recorded = record_status_change(db, message)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Could not store {transition} for event {message.event_id}: {e}")
        if retry_count < MAX_RETRIES:
            await requeue(nc, msg, retry_count + 1)
        else:
            await send_to_dlq(nc, msg, str(e))
        return
    finally:
        db.close()

    if recorded:
        logger.info(f"Event {message.event_id}: {transition} by user {message.actor_id}")
    else:
        logger.info(f"Skipping duplicate message {message.message_id}")


async def watch_dlq(nc: nats.NATS):
    sub = await nc.subscribe(DLQ_SUBJECT)
    async for msg in sub.messages:
        logger.error(
            f"Dead letter from {msg.header.get('X-Original-Subject') if msg.header else '?'}: "
            f"{msg.header.get('X-Error-Message') if msg.header else msg.data[:200]}"
        )


async def main():
    if not settings.NATS_URL:
        raise SystemExit("NATS_URL is not configured")

    Base.metadata.create_all(bind=engine)

    nc = await nats.connect(settings.NATS_URL)
    sub = await nc.subscribe(settings.STATUS_SUBJECT)
    dlq_task = asyncio.create_task(watch_dlq(nc))
    logger.info(f"Status change worker listening on {settings.STATUS_SUBJECT}")

    try:
        async for msg in sub.messages:
            await process_status_message(msg, nc)
    finally:
        dlq_task.cancel()
        await nc.drain()


if __name__ == "__main__":
    asyncio.run(main())
