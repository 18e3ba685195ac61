"""
Tests for the cron orchestration run

The end-to-end cases use the real repositories on the SQLite test database;
only Météo-France, object storage and the chat platforms are faked.
"""
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.exceptions import BulletinSourceError
from conditions.core.logging import cron_stage_var
from conditions.db.models import CronExecution
from conditions.db.repositories import (
    BulletinRepository,
    CronExecutionRepository,
    DeliveryRepository,
    SubscriptionRepository,
)
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.models import ContentPreferences, Platform
from conditions.domain.services.bulletin_fetcher import BulletinFetcher, FetchReport
from conditions.domain.services.cron_orchestrator import (
    CronOrchestrator,
    CronResult,
    CronStatus,
    summarize,
)
from conditions.domain.services.delivery_dispatcher import (
    DeliveryDispatcher,
    DeliveryItem,
    DeliveryItemStatus,
    DispatchReport,
)
from conditions.domain.services.delivery_planner import DeliveryPlanner
from conditions.domain.services.freshness_checker import BulletinFreshnessChecker, FreshnessReport
from tests.factories import JAN_1, JAN_2, VANOISE, make_bulletin, make_metadata

ALICE = "33611111111"
BOB = "33622222222"


class RecordingChannel:
    def __init__(self, platform: Platform):
        self.platform = platform
        self.batch_size = 10
        self.sent: list[tuple[str, int]] = []

    async def send(self, item) -> None:
        self.sent.append((item.recipient, item.massif.code))

    async def send_follow_up(self, recipient, massifs) -> None:
        return None


def _source(*failing: int) -> AsyncMock:
    async def fetch_metadata(massif: int):
        if massif in failing:
            raise BulletinSourceError("metadata returned status 503", massif=massif)
        return make_metadata(massif=massif, valid_from=JAN_2)

    source = AsyncMock()
    source.fetch_metadata.side_effect = fetch_metadata
    source.fetch_pdf.return_value = b"%PDF-1.4"
    return source


def _storage() -> AsyncMock:
    storage = AsyncMock()
    storage.upload_file.side_effect = lambda path, key, content_type="application/pdf": f"https://cdn.example/{key}"
    return storage


def _orchestrator(
    db: AsyncSession,
    directory: MassifDirectory,
    notifier: AsyncMock,
    tmp_path: Path,
    source: AsyncMock,
    channels: list[RecordingChannel],
) -> CronOrchestrator:
    subscriptions = SubscriptionRepository(db)
    bulletins = BulletinRepository(db)
    deliveries = DeliveryRepository(db)
    return CronOrchestrator(
        subscriptions=subscriptions,
        checker=BulletinFreshnessChecker(subscriptions, bulletins, source, notifier),
        fetcher=BulletinFetcher(directory, source, _storage(), bulletins, scratch_dir=str(tmp_path)),
        planner=DeliveryPlanner(directory, subscriptions, deliveries),
        dispatchers=[
            DeliveryDispatcher(channel, deliveries, notifier, sleep=AsyncMock()) for channel in channels
        ],
        executions=CronExecutionRepository(db),
        notifier=notifier,
    )


async def _executions(db: AsyncSession) -> list[CronExecution]:
    result = await db.execute(select(CronExecution).order_by(CronExecution.id))
    return list(result.scalars().all())


class TestCronRunEndToEnd:
    """A full run on the database"""

    @pytest.mark.integration
    async def test_vanoise_update_reaches_the_one_pending_subscriber(
        self,
        db_session: AsyncSession,
        directory: MassifDirectory,
        mock_notifier: AsyncMock,
        tmp_path: Path,
    ) -> None:
        subscriptions = SubscriptionRepository(db_session)
        await subscriptions.subscribe(ALICE, 18, Platform.WHATSAPP)
        await subscriptions.subscribe(BOB, 18, Platform.WHATSAPP)
        await BulletinRepository(db_session).insert_many([make_bulletin(massif=18, valid_from=JAN_1)])
        # Bob already has the new version
        await DeliveryRepository(db_session).record(BOB, 18, JAN_2, Platform.WHATSAPP)

        whatsapp = RecordingChannel(Platform.WHATSAPP)
        telegram = RecordingChannel(Platform.TELEGRAM)
        orchestrator = _orchestrator(
            db_session, directory, mock_notifier, tmp_path, _source(), [telegram, whatsapp]
        )

        result = await orchestrator.run()

        assert result.status == CronStatus.SUCCESS
        assert result.exit_code == 0
        assert result.subscriber_count == 2
        assert result.massifs_with_subscribers_count == 1
        assert result.updated_bulletins_count == 1
        assert result.bulletins_delivered_count == 1
        assert whatsapp.sent == [(ALICE, 18)]
        assert telegram.sent == []
        assert result.summary == (
            "Successfully processed 1 new bulletins and delivered to 1 subscribers across 1 massifs."
        )

        latest = await BulletinRepository(db_session).get_latest(18)
        assert latest.valid_from == JAN_2
        assert not await DeliveryRepository(db_session).get_undelivered_recipients(
            [ALICE, BOB], 18, JAN_2, Platform.WHATSAPP
        )

        executions = await _executions(db_session)
        assert len(executions) == 1
        assert executions[0].status == "success"
        assert executions[0].bulletins_delivered_count == 1
        assert executions[0].failed_stage is None

    @pytest.mark.integration
    async def test_second_run_finds_nothing_new(
        self,
        db_session: AsyncSession,
        directory: MassifDirectory,
        mock_notifier: AsyncMock,
        tmp_path: Path,
    ) -> None:
        await SubscriptionRepository(db_session).subscribe(ALICE, 18, Platform.WHATSAPP)
        whatsapp = RecordingChannel(Platform.WHATSAPP)

        first = await _orchestrator(
            db_session, directory, mock_notifier, tmp_path, _source(), [whatsapp]
        ).run()
        second = await _orchestrator(
            db_session, directory, mock_notifier, tmp_path, _source(), [whatsapp]
        ).run()

        assert first.bulletins_delivered_count == 1
        assert second.status == CronStatus.SUCCESS
        assert second.updated_bulletins_count == 0
        assert second.summary == "No new bulletins found. Checked 1 massifs with active subscriptions."
        assert whatsapp.sent == [(ALICE, 18)]
        assert len(await _executions(db_session)) == 2

    @pytest.mark.integration
    async def test_metadata_failure_makes_the_run_partial(
        self,
        db_session: AsyncSession,
        directory: MassifDirectory,
        mock_notifier: AsyncMock,
        tmp_path: Path,
    ) -> None:
        subscriptions = SubscriptionRepository(db_session)
        await subscriptions.subscribe(ALICE, 18, Platform.WHATSAPP)
        await subscriptions.subscribe(ALICE, 3, Platform.TELEGRAM)
        whatsapp = RecordingChannel(Platform.WHATSAPP)
        telegram = RecordingChannel(Platform.TELEGRAM)

        result = await _orchestrator(
            db_session, directory, mock_notifier, tmp_path, _source(3), [telegram, whatsapp]
        ).run()

        assert result.status == CronStatus.PARTIAL
        assert result.exit_code == 2
        assert result.freshness.failed.keys() == {3}
        assert whatsapp.sent == [(ALICE, 18)]
        assert telegram.sent == []
        assert (await _executions(db_session))[0].status == "partial"


def _mocked_orchestrator(notifier: AsyncMock, clock=None) -> CronOrchestrator:
    subscriptions = AsyncMock()
    subscriptions.count_subscribers.return_value = 2
    checker = AsyncMock()
    checker.check.return_value = FreshnessReport(
        checked=[18], new=[18], to_fetch=[make_metadata(massif=18)]
    )
    fetcher = AsyncMock()
    fetcher.fetch_and_store.return_value = FetchReport(bulletins=[make_bulletin(massif=18)])
    planner = AsyncMock()
    planner.plan.return_value = []
    dispatcher = AsyncMock()
    dispatcher.channel = RecordingChannel(Platform.WHATSAPP)
    dispatcher.dispatch.return_value = DispatchReport(platform=Platform.WHATSAPP)
    kwargs = {"clock": clock} if clock else {}
    return CronOrchestrator(
        subscriptions=subscriptions,
        checker=checker,
        fetcher=fetcher,
        planner=planner,
        dispatchers=[dispatcher],
        executions=AsyncMock(),
        notifier=notifier,
        **kwargs,
    )


class TestCronRunOutcomes:
    """Status, failed stage and audit handling"""

    @pytest.mark.unit
    async def test_new_bulletin_without_delivery_is_partial(self, mock_notifier: AsyncMock) -> None:
        orchestrator = _mocked_orchestrator(mock_notifier)

        result = await orchestrator.run()

        assert result.status == CronStatus.PARTIAL
        assert result.summary == "Found 1 new bulletins but no subscribers to notify."

    @pytest.mark.unit
    async def test_failure_records_the_stage(self, mock_notifier: AsyncMock) -> None:
        orchestrator = _mocked_orchestrator(mock_notifier)
        orchestrator.fetcher.fetch_and_store.side_effect = RuntimeError("insert failed")

        result = await orchestrator.run()

        assert result.status == CronStatus.FAILED
        assert result.exit_code == 1
        assert result.failed_stage == "fetch_and_store"
        assert result.error_message == "insert failed"
        assert result.summary == "Cron job failed: insert failed"
        mock_notifier.notify_error.assert_awaited_once()
        audit = orchestrator.executions.record.call_args.kwargs
        assert audit["status"] == "failed"
        assert audit["failed_stage"] == "fetch_and_store"
        orchestrator.planner.plan.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "attribute,stage",
        [
            ("subscriptions.count_subscribers", "freshness_check"),
            ("checker.check", "freshness_check"),
            ("planner.plan", "plan"),
        ],
    )
    async def test_each_stage_is_named(
        self, mock_notifier: AsyncMock, attribute: str, stage: str
    ) -> None:
        orchestrator = _mocked_orchestrator(mock_notifier)
        owner, method = attribute.split(".")
        getattr(getattr(orchestrator, owner), method).side_effect = RuntimeError("boom")

        result = await orchestrator.run()

        assert result.failed_stage == stage

    @pytest.mark.unit
    async def test_dispatch_stage(self, mock_notifier: AsyncMock) -> None:
        orchestrator = _mocked_orchestrator(mock_notifier)
        orchestrator.dispatchers[0].dispatch.side_effect = RuntimeError("boom")

        result = await orchestrator.run()

        assert result.failed_stage == "dispatch"

    @pytest.mark.unit
    async def test_audit_failure_does_not_change_the_outcome(self, mock_notifier: AsyncMock) -> None:
        orchestrator = _mocked_orchestrator(mock_notifier)
        orchestrator.executions.record.side_effect = RuntimeError("audit table missing")

        result = await orchestrator.run()

        assert result.status == CronStatus.PARTIAL
        mock_notifier.notify_error.assert_awaited_once()
        assert mock_notifier.notify_error.call_args[0][1] == "Cron execution record not written"

    @pytest.mark.unit
    async def test_duration_and_stage_reset(self, mock_notifier: AsyncMock) -> None:
        ticks = iter([100.0, 100.25])
        orchestrator = _mocked_orchestrator(mock_notifier, clock=lambda: next(ticks))

        result = await orchestrator.run()

        assert result.duration_ms == 250
        assert orchestrator.executions.record.call_args.kwargs["duration_ms"] == 250
        assert cron_stage_var.get() == ""


class TestSummarize:
    @pytest.mark.unit
    def test_nothing_new(self) -> None:
        result = CronResult(massifs_with_subscribers_count=4)
        assert summarize(result) == "No new bulletins found. Checked 4 massifs with active subscriptions."

    @pytest.mark.unit
    def test_exit_codes(self) -> None:
        assert [s.exit_code for s in CronStatus] == [0, 2, 1]

    @pytest.mark.unit
    def test_every_send_failed(self) -> None:
        failed = DeliveryItem(
            recipient=ALICE,
            massif=VANOISE,
            bulletin=make_bulletin(),
            preferences=ContentPreferences(),
            status=DeliveryItemStatus.SEND_FAILED,
        )
        result = CronResult(
            updated_bulletins_count=1,
            dispatches=[DispatchReport(platform=Platform.WHATSAPP, items=[failed, failed])],
        )

        assert summarize(result) == "Found 1 new bulletins but all 2 deliveries failed."
