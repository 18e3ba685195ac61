"""
Webhook Event Repository - message-id idempotency for the WhatsApp webhook
"""
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.logging import get_logger
from conditions.db.models.webhook_event import WebhookEvent
from conditions.domain.models import Platform

logger = get_logger(__name__)

# a message still processing after this long is taken to be abandoned
STALE_PROCESSING_SECONDS = 120

PROCESSING = "processing"
COMPLETED = "completed"


class WebhookEventRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def try_acquire(self, message_id: str, platform: Platform = Platform.WHATSAPP) -> bool:
        """
        Claim a message for handling.

        True for a new message (or a stale one being retried), False for a
        duplicate. The claim is committed at once so a redelivery arriving
        while the first copy is still being handled is refused.
        """
        if not message_id:
            return True

        result = await self.db.execute(
            select(WebhookEvent.status, WebhookEvent.created_at)
            .where(WebhookEvent.message_id == message_id)
        )
        row = result.one_or_none()

        if row is None:
            self.db.add(WebhookEvent(
                message_id=message_id,
                platform=platform.value,
                status=PROCESSING,
                created_at=datetime.utcnow(),
            ))
            try:
                await self.db.commit()
            except IntegrityError:
                # another request claimed it between the select and the insert
                await self.db.rollback()
                return False
            return True

        if row.status == COMPLETED:
            logger.info("Skipping completed duplicate message", extra_data={"message_id": message_id})
            return False

        now = datetime.utcnow()
        retried = await self.db.execute(
            update(WebhookEvent)
            .where(
                WebhookEvent.message_id == message_id,
                WebhookEvent.status == PROCESSING,
                WebhookEvent.created_at < now - timedelta(seconds=STALE_PROCESSING_SECONDS),
            )
            .values(created_at=now)
        )
        if retried.rowcount > 0:
            await self.db.commit()
            logger.warning("Retrying stale processing message", extra_data={"message_id": message_id})
            return True

        logger.info("Skipping in-progress message", extra_data={"message_id": message_id})
        return False

    async def mark_completed(self, message_id: str) -> None:
        if not message_id:
            return
        await self.db.execute(
            update(WebhookEvent)
            .where(WebhookEvent.message_id == message_id)
            .values(status=COMPLETED)
        )
        await self.db.commit()
