"""
Delivery Repository - which recipient already has which bulletin version
"""
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.logging import get_logger
from conditions.db.models.delivery_record import DeliveryRecord
from conditions.domain.models import Platform

logger = get_logger(__name__)


class DeliveryRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_undelivered_recipients(
        self,
        recipients: Iterable[str],
        massif: int,
        valid_from: datetime,
        platform: Platform
    ) -> list[str]:
        """
        Filter recipients down to those without a record for this version.

        One query for the whole list; input order is preserved.
        """
        candidates = list(dict.fromkeys(recipients))
        if not candidates:
            return []
        result = await self.db.execute(
            select(DeliveryRecord.recipient).where(
                DeliveryRecord.massif == massif,
                DeliveryRecord.valid_from == valid_from,
                DeliveryRecord.platform == platform.value,
                DeliveryRecord.recipient.in_(candidates),
            )
        )
        delivered = set(result.scalars().all())
        return [r for r in candidates if r not in delivered]

    async def has_been_delivered(
        self,
        recipient: str,
        massif: int,
        valid_from: datetime,
        platform: Platform
    ) -> bool:
        return not await self.get_undelivered_recipients([recipient], massif, valid_from, platform)

    async def record(
        self,
        recipient: str,
        massif: int,
        valid_from: datetime,
        platform: Platform
    ) -> bool:
        """
        Record a delivery.

        Returns False when the same version was already recorded for the
        recipient (the unique constraint fired); other errors propagate.
        """
        self.db.add(DeliveryRecord(
            recipient=recipient,
            massif=massif,
            valid_from=valid_from,
            platform=platform.value,
            delivery_timestamp=datetime.utcnow(),
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Delivery already recorded",
                extra_data={"massif": massif, "valid_from": valid_from.isoformat(), "platform": platform.value}
            )
            return False
        return True
