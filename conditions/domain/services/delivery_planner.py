"""
Delivery Planner

Turns newly stored bulletins into destinations: for each massif, the
subscribers that have not yet received that exact version on the platform.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from conditions.core.logging import get_logger
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.models import BulletinRecord, Massif, Platform, Subscriber

logger = get_logger(__name__)


class SubscriberSource(Protocol):
    async def get_subscribers_by_massif(
        self, platform: Platform, massifs: Iterable[int] | None = None
    ) -> dict[int, list[Subscriber]]: ...


class DeliveryLedger(Protocol):
    async def get_undelivered_recipients(
        self, recipients: Iterable[str], massif: int, valid_from: datetime, platform: Platform
    ) -> list[str]: ...


@dataclass(frozen=True)
class Destination:
    """One massif's new bulletin and the subscribers still waiting for it"""
    massif: Massif
    bulletin: BulletinRecord
    subscribers: tuple[Subscriber, ...]

    @property
    def recipients(self) -> list[str]:
        return [s.recipient for s in self.subscribers]


class DeliveryPlanner:
    def __init__(
        self,
        directory: MassifDirectory,
        subscriptions: SubscriberSource,
        deliveries: DeliveryLedger,
    ):
        self.directory = directory
        self.subscriptions = subscriptions
        self.deliveries = deliveries

    async def plan(self, bulletins: list[BulletinRecord], platform: Platform) -> list[Destination]:
        if not bulletins:
            return []

        by_massif = await self.subscriptions.get_subscribers_by_massif(
            platform, [b.massif for b in bulletins]
        )

        destinations: list[Destination] = []
        for bulletin in bulletins:
            subscribers = by_massif.get(bulletin.massif, [])
            if not subscribers:
                continue

            massif = self.directory.by_code(bulletin.massif)
            if massif is None:
                logger.warning(
                    "Bulletin for unknown massif skipped",
                    extra_data={"massif": bulletin.massif}
                )
                continue

            undelivered = set(await self.deliveries.get_undelivered_recipients(
                [s.recipient for s in subscribers],
                bulletin.massif,
                bulletin.valid_from,
                platform,
            ))
            pending = tuple(s for s in subscribers if s.recipient in undelivered)
            if not pending:
                continue

            destinations.append(Destination(massif=massif, bulletin=bulletin, subscribers=pending))

        logger.info(
            "Deliveries planned",
            extra_data={
                "platform": platform.value,
                "destinations": len(destinations),
                "recipients": sum(len(d.subscribers) for d in destinations),
            }
        )
        return destinations
