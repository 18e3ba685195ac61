"""
Subscription Repository

Subscriptions are keyed by (recipient, massif, platform). Content flags are
resolved into ContentPreferences here so callers never see partial flags.
"""
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.logging import get_logger
from conditions.db.models.recipient import Recipient
from conditions.db.models.subscription import Subscription
from conditions.domain.models import ContentPreferences, ContentType, Platform, Subscriber

logger = get_logger(__name__)


def _preferences(row: Subscription) -> ContentPreferences:
    return ContentPreferences.from_flags({ct.value: getattr(row, ct.value) for ct in ContentType})


class SubscriptionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_massifs_with_subscribers(self) -> list[int]:
        """Massif codes with at least one subscriber on any platform"""
        result = await self.db.execute(
            select(Subscription.massif).distinct().order_by(Subscription.massif)
        )
        return list(result.scalars().all())

    async def count_subscribers(self) -> int:
        """Distinct (recipient, platform) pairs with at least one subscription"""
        pairs = select(Subscription.recipient, Subscription.platform).distinct().subquery()
        result = await self.db.execute(select(func.count()).select_from(pairs))
        return int(result.scalar_one())

    async def get_subscribers_by_massif(
        self,
        platform: Platform,
        massifs: Optional[Iterable[int]] = None
    ) -> dict[int, list[Subscriber]]:
        """Subscribers and their content selection, grouped by massif"""
        query = select(Subscription).where(Subscription.platform == platform.value)
        if massifs is not None:
            query = query.where(Subscription.massif.in_(list(massifs)))
        result = await self.db.execute(query.order_by(Subscription.massif, Subscription.id))

        grouped: dict[int, list[Subscriber]] = {}
        for row in result.scalars().all():
            grouped.setdefault(row.massif, []).append(
                Subscriber(recipient=row.recipient, preferences=_preferences(row))
            )
        return grouped

    async def get_subscription(
        self,
        recipient: str,
        massif: int,
        platform: Platform
    ) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.recipient == recipient,
                Subscription.massif == massif,
                Subscription.platform == platform.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_preferences(
        self,
        recipient: str,
        massif: int,
        platform: Platform
    ) -> Optional[ContentPreferences]:
        row = await self.get_subscription(recipient, massif, platform)
        return _preferences(row) if row else None

    async def is_subscribed(self, recipient: str, massif: int, platform: Platform) -> bool:
        return await self.get_subscription(recipient, massif, platform) is not None

    async def get_statuses(
        self,
        recipient: str,
        massifs: Iterable[int],
        platform: Platform
    ) -> dict[int, bool]:
        """Subscribed flag for each requested massif, in one query"""
        codes = list(massifs)
        if not codes:
            return {}
        result = await self.db.execute(
            select(Subscription.massif).where(
                Subscription.recipient == recipient,
                Subscription.platform == platform.value,
                Subscription.massif.in_(codes),
            )
        )
        subscribed = set(result.scalars().all())
        return {code: code in subscribed for code in codes}

    async def list_for_recipient(self, recipient: str, platform: Platform) -> list[int]:
        result = await self.db.execute(
            select(Subscription.massif)
            .where(Subscription.recipient == recipient, Subscription.platform == platform.value)
            .order_by(Subscription.massif)
        )
        return list(result.scalars().all())

    async def subscribe(
        self,
        recipient: str,
        massif: int,
        platform: Platform,
        preferences: ContentPreferences | None = None
    ) -> Subscription:
        """Create the subscription or overwrite its content selection"""
        preferences = preferences or ContentPreferences()
        await self._ensure_recipient(recipient, platform)

        row = await self.get_subscription(recipient, massif, platform)
        if row is None:
            row = Subscription(recipient=recipient, massif=massif, platform=platform.value)
            self.db.add(row)
        for key, value in preferences.as_dict().items():
            setattr(row, key, value)

        await self.db.commit()
        logger.info(
            "Subscription saved",
            extra_data={"massif": massif, "platform": platform.value, "content": preferences.as_dict()}
        )
        return row

    async def update_content_types(
        self,
        recipient: str,
        massif: int,
        platform: Platform,
        preferences: ContentPreferences
    ) -> bool:
        row = await self.get_subscription(recipient, massif, platform)
        if row is None:
            return False
        for key, value in preferences.as_dict().items():
            setattr(row, key, value)
        await self.db.commit()
        return True

    async def unsubscribe(self, recipient: str, massif: int, platform: Platform) -> bool:
        result = await self.db.execute(
            delete(Subscription).where(
                Subscription.recipient == recipient,
                Subscription.massif == massif,
                Subscription.platform == platform.value,
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def unsubscribe_all(self, recipient: str, platform: Platform) -> int:
        result = await self.db.execute(
            delete(Subscription).where(
                Subscription.recipient == recipient,
                Subscription.platform == platform.value,
            )
        )
        await self.db.commit()
        return result.rowcount

    async def _ensure_recipient(self, recipient: str, platform: Platform) -> None:
        result = await self.db.execute(
            select(Recipient.id).where(
                Recipient.number == recipient,
                Recipient.platform == platform.value,
            )
        )
        if result.scalar_one_or_none() is None:
            self.db.add(Recipient(number=recipient, platform=platform.value))
