"""
Delivery Dispatcher

Fans planned destinations out to recipients in fixed-size batches with a
fixed pause between batches. Each item moves through

    pending -> sent -> recorded
    pending -> sent -> record_failed
    pending -> send_failed

Nothing is retried within a run: an item without a delivery record is picked
up again by the next cron cycle.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.domain.models import BulletinRecord, ContentPreferences, Massif, Platform
from conditions.domain.services.delivery_planner import Destination
from conditions.domain.services.notification_service import AdminNotifier

logger = get_logger(__name__)

MAX_LISTED_FAILURES = 20


class DeliveryItemStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    RECORDED = "recorded"
    SEND_FAILED = "send_failed"
    RECORD_FAILED = "record_failed"


@dataclass
class DeliveryItem:
    recipient: str
    massif: Massif
    bulletin: BulletinRecord
    preferences: ContentPreferences
    status: DeliveryItemStatus = DeliveryItemStatus.PENDING
    error: Optional[str] = None


class DeliveryChannel(Protocol):
    platform: Platform
    batch_size: int

    async def send(self, item: DeliveryItem) -> None:
        """Deliver one item; raise on failure."""

    async def send_follow_up(self, recipient: str, massifs: Sequence[Massif]) -> None:
        """Message sent once per recipient after all batches (no-op where unsupported)."""


class DeliveryRecorder(Protocol):
    async def record(
        self, recipient: str, massif: int, valid_from: datetime, platform: Platform
    ) -> bool: ...


@dataclass
class DispatchReport:
    platform: Platform
    items: list[DeliveryItem] = field(default_factory=list)
    follow_ups_failed: list[str] = field(default_factory=list)

    def _with_status(self, *statuses: DeliveryItemStatus) -> list[DeliveryItem]:
        return [i for i in self.items if i.status in statuses]

    @property
    def sent(self) -> list[DeliveryItem]:
        """Items the recipient received, recorded or not"""
        return self._with_status(DeliveryItemStatus.RECORDED, DeliveryItemStatus.RECORD_FAILED)

    @property
    def send_failed(self) -> list[DeliveryItem]:
        return self._with_status(DeliveryItemStatus.SEND_FAILED)

    @property
    def record_failed(self) -> list[DeliveryItem]:
        return self._with_status(DeliveryItemStatus.RECORD_FAILED)

    @property
    def sent_count(self) -> int:
        return len(self.sent)

    @property
    def has_failures(self) -> bool:
        return bool(self.send_failed or self.record_failed)


def flatten(destinations: Sequence[Destination]) -> list[DeliveryItem]:
    return [
        DeliveryItem(
            recipient=subscriber.recipient,
            massif=destination.massif,
            bulletin=destination.bulletin,
            preferences=subscriber.preferences,
        )
        for destination in destinations
        for subscriber in destination.subscribers
    ]


class DeliveryDispatcher:
    def __init__(
        self,
        channel: DeliveryChannel,
        deliveries: DeliveryRecorder,
        notifier: AdminNotifier,
        batch_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.channel = channel
        self.deliveries = deliveries
        self.notifier = notifier
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep
        # one AsyncSession behind the recorder: writes must not interleave
        self._record_lock = asyncio.Lock()

    async def _deliver(self, item: DeliveryItem) -> None:
        try:
            await self.channel.send(item)
        except Exception as e:
            item.status = DeliveryItemStatus.SEND_FAILED
            item.error = str(e) or type(e).__name__
            logger.warning(
                "Delivery send failed",
                extra_data={
                    "platform": self.channel.platform.value,
                    "recipient": mask_recipient(item.recipient),
                    "massif": item.massif.code,
                    "error": item.error,
                }
            )
            return

        item.status = DeliveryItemStatus.SENT
        try:
            async with self._record_lock:
                await self.deliveries.record(
                    item.recipient,
                    item.massif.code,
                    item.bulletin.valid_from,
                    self.channel.platform,
                )
        except Exception as e:
            item.status = DeliveryItemStatus.RECORD_FAILED
            item.error = str(e) or type(e).__name__
            logger.error(
                "Delivery sent but not recorded",
                extra_data={
                    "platform": self.channel.platform.value,
                    "recipient": mask_recipient(item.recipient),
                    "massif": item.massif.code,
                    "valid_from": item.bulletin.valid_from.isoformat(),
                    "error": item.error,
                }
            )
            return

        item.status = DeliveryItemStatus.RECORDED

    async def dispatch(self, destinations: Sequence[Destination]) -> DispatchReport:
        report = DispatchReport(platform=self.channel.platform, items=flatten(destinations))
        if not report.items:
            return report

        batch_size = max(1, self.channel.batch_size)
        batches = [
            report.items[i:i + batch_size]
            for i in range(0, len(report.items), batch_size)
        ]

        for index, batch in enumerate(batches):
            logger.info(
                "Sending delivery batch",
                extra_data={
                    "platform": self.channel.platform.value,
                    "batch": index + 1,
                    "batches": len(batches),
                    "size": len(batch),
                }
            )
            await asyncio.gather(*(self._deliver(item) for item in batch))
            if index < len(batches) - 1:
                await self._sleep(self.batch_delay_seconds)

        await self._send_follow_ups(report)

        logger.info(
            "Dispatch complete",
            extra_data={
                "platform": self.channel.platform.value,
                "sent": report.sent_count,
                "send_failed": len(report.send_failed),
                "record_failed": len(report.record_failed),
            }
        )
        await self._report_failures(report)
        return report

    async def _send_follow_ups(self, report: DispatchReport) -> None:
        delivered: dict[str, list[Massif]] = {}
        for item in report.sent:
            delivered.setdefault(item.recipient, []).append(item.massif)

        for recipient, massifs in delivered.items():
            try:
                await self.channel.send_follow_up(recipient, massifs)
            except Exception as e:
                report.follow_ups_failed.append(recipient)
                logger.warning(
                    "Follow-up message failed",
                    extra_data={
                        "platform": self.channel.platform.value,
                        "recipient": mask_recipient(recipient),
                        "error": str(e),
                    }
                )

    async def _report_failures(self, report: DispatchReport) -> None:
        platform = self.channel.platform.value

        if report.send_failed:
            lines = [
                f"• {item.recipient} ({item.massif.name}): {item.error}"
                for item in report.send_failed[:MAX_LISTED_FAILURES]
            ]
            await self.notifier.notify(
                f"🚨 {platform} delivery failures\n\n"
                f"{len(report.send_failed)}/{len(report.items)} notifications failed:\n"
                + "\n".join(lines)
            )

        if report.record_failed:
            # the recipients did get the bulletin; without a record the next
            # run will send it again
            await self.notifier.notify(
                f"⚠️ {platform}: {len(report.record_failed)} delivery record(s) not written after a successful send",
                {
                    "recipients": ", ".join(i.recipient for i in report.record_failed[:MAX_LISTED_FAILURES]),
                    "massifs": ", ".join(sorted({i.massif.name for i in report.record_failed})),
                },
            )
