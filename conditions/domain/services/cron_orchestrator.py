"""
Cron Orchestrator - one bulletin notification run

    freshness_check -> fetch_and_store -> plan -> dispatch (per platform)

Stages run strictly in order. Unit failures inside a stage (one massif, one
recipient) make the run `partial`; an exception escaping a stage makes it
`failed`. Either way one cron_executions row is written at the end.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.config import settings
from conditions.core.logging import get_logger, log_async_operation, set_cron_stage
from conditions.db.repositories import (
    BulletinRepository,
    CronExecutionRepository,
    DeliveryRepository,
    MassifRepository,
    SubscriptionRepository,
)
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.services.bulletin_fetcher import BulletinFetcher, FetchReport
from conditions.domain.services.delivery_dispatcher import DeliveryDispatcher, DispatchReport
from conditions.domain.services.delivery_planner import DeliveryPlanner
from conditions.domain.services.freshness_checker import BulletinFreshnessChecker, FreshnessReport
from conditions.domain.services.image_service import ImageCache, ImageService
from conditions.domain.services.meteofrance_client import MeteoFranceClient
from conditions.domain.services.notification_service import AdminNotifier, get_admin_notifier
from conditions.domain.services.object_storage import ObjectStorage
from conditions.domain.services.telegram_channel import TelegramChannel
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider
from conditions.domain.services.whatsapp.provider_factory import get_whatsapp_provider
from conditions.domain.services.whatsapp_channel import WhatsAppChannel

logger = get_logger(__name__)


class CronStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        return {CronStatus.SUCCESS: 0, CronStatus.PARTIAL: 2, CronStatus.FAILED: 1}[self]


@dataclass
class CronResult:
    status: CronStatus = CronStatus.SUCCESS
    summary: str = ""
    subscriber_count: int = 0
    massifs_with_subscribers_count: int = 0
    updated_bulletins_count: int = 0
    bulletins_delivered_count: int = 0
    error_message: Optional[str] = None
    failed_stage: Optional[str] = None
    duration_ms: int = 0
    freshness: Optional[FreshnessReport] = None
    fetch: Optional[FetchReport] = None
    dispatches: list[DispatchReport] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    @property
    def has_unit_failures(self) -> bool:
        return (
            (self.freshness is not None and self.freshness.has_failures)
            or (self.fetch is not None and bool(self.fetch.failed))
            or any(d.has_failures for d in self.dispatches)
        )


def summarize(result: CronResult) -> str:
    if result.updated_bulletins_count == 0:
        return (
            "No new bulletins found. "
            f"Checked {result.massifs_with_subscribers_count} massifs with active subscriptions."
        )
    if result.bulletins_delivered_count == 0:
        failed = sum(len(report.send_failed) for report in result.dispatches)
        if failed:
            return f"Found {result.updated_bulletins_count} new bulletins but all {failed} deliveries failed."
        return f"Found {result.updated_bulletins_count} new bulletins but no subscribers to notify."

    massifs = {item.massif.code for report in result.dispatches for item in report.sent}
    return (
        f"Successfully processed {result.updated_bulletins_count} new bulletins and delivered "
        f"to {result.bulletins_delivered_count} subscribers across {len(massifs)} massifs."
    )


class CronOrchestrator:
    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        checker: BulletinFreshnessChecker,
        fetcher: BulletinFetcher,
        planner: DeliveryPlanner,
        dispatchers: Sequence[DeliveryDispatcher],
        executions: CronExecutionRepository,
        notifier: AdminNotifier,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.subscriptions = subscriptions
        self.checker = checker
        self.fetcher = fetcher
        self.planner = planner
        self.dispatchers = list(dispatchers)
        self.executions = executions
        self.notifier = notifier
        self._clock = clock
        self._stage: Optional[str] = None

    def _enter(self, stage: str) -> None:
        self._stage = stage
        set_cron_stage(stage)

    async def _run_stages(self, result: CronResult) -> None:
        self._enter("freshness_check")
        result.subscriber_count = await self.subscriptions.count_subscribers()
        result.freshness = await self.checker.check()
        result.massifs_with_subscribers_count = len(result.freshness.checked)

        self._enter("fetch_and_store")
        result.fetch = await self.fetcher.fetch_and_store(result.freshness.to_fetch)
        result.updated_bulletins_count = len(result.fetch.bulletins)

        for dispatcher in self.dispatchers:
            platform = dispatcher.channel.platform
            self._enter("plan")
            destinations = await self.planner.plan(result.fetch.bulletins, platform)

            self._enter("dispatch")
            report = await dispatcher.dispatch(destinations)
            result.dispatches.append(report)
            result.bulletins_delivered_count += report.sent_count

    @log_async_operation("bulletin cron run")
    async def run(self) -> CronResult:
        result = CronResult()
        started = self._clock()
        try:
            await self._run_stages(result)
            result.summary = summarize(result)
            if result.has_unit_failures or (
                result.updated_bulletins_count and not result.bulletins_delivered_count
            ):
                result.status = CronStatus.PARTIAL
        except Exception as e:
            result.status = CronStatus.FAILED
            result.error_message = str(e) or type(e).__name__
            result.failed_stage = self._stage
            result.summary = f"Cron job failed: {result.error_message}"
            logger.error(
                "Cron run failed",
                extra_data={"stage": self._stage, "error": result.error_message},
                exc_info=True
            )
            await self.notifier.notify_error(e, f"Cron run failed in stage {self._stage}")
        finally:
            result.duration_ms = int((self._clock() - started) * 1000)
            await self._write_audit(result)
            set_cron_stage("")

        logger.info(
            "Cron run finished",
            extra_data={
                "status": result.status.value,
                "summary": result.summary,
                "duration_ms": result.duration_ms,
            }
        )
        return result

    async def _write_audit(self, result: CronResult) -> None:
        """Audit failures are reported but never change the run's outcome"""
        try:
            await self.executions.record(
                status=result.status.value,
                subscriber_count=result.subscriber_count,
                massifs_with_subscribers_count=result.massifs_with_subscribers_count,
                updated_bulletins_count=result.updated_bulletins_count,
                bulletins_delivered_count=result.bulletins_delivered_count,
                summary=result.summary,
                error_message=result.error_message,
                failed_stage=result.failed_stage,
                duration_ms=result.duration_ms,
            )
        except Exception as e:
            logger.error(
                "Could not write cron execution record",
                extra_data={"status": result.status.value, "error": str(e)},
                exc_info=True
            )
            await self.notifier.notify_error(e, "Cron execution record not written")


async def build_cron_orchestrator(
    db: AsyncSession,
    directory: Optional[MassifDirectory] = None,
    notifier: Optional[AdminNotifier] = None,
    whatsapp_provider: Optional[BaseWhatsAppProvider] = None,
) -> CronOrchestrator:
    """Wire a production orchestrator on one session"""
    if directory is None:
        directory = MassifDirectory()
        await directory.initialize(MassifRepository(db))
    notifier = notifier or get_admin_notifier()

    client = MeteoFranceClient()
    subscriptions = SubscriptionRepository(db)
    bulletins = BulletinRepository(db)
    deliveries = DeliveryRepository(db)
    images = ImageCache(ImageService(client))

    channels = [
        TelegramChannel(images),
        WhatsAppChannel(whatsapp_provider or get_whatsapp_provider(), images),
    ]
    return CronOrchestrator(
        subscriptions=subscriptions,
        checker=BulletinFreshnessChecker(subscriptions, bulletins, client, notifier),
        fetcher=BulletinFetcher(directory, client, ObjectStorage(), bulletins),
        planner=DeliveryPlanner(directory, subscriptions, deliveries),
        dispatchers=[
            DeliveryDispatcher(
                channel,
                deliveries,
                notifier,
                batch_delay_seconds=settings.DELIVERY_BATCH_DELAY_SECONDS,
            )
            for channel in channels
        ],
        executions=CronExecutionRepository(db),
        notifier=notifier,
    )
