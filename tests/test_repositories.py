"""
Repository tests against in-memory SQLite

Covers:
- bulletin versions per massif (latest valid_from, bulk insert)
- delivery records and the at-most-once constraint
- subscriptions and content preferences
- geocode cache (first writer wins)
- cron execution audit rows
- webhook message-id claims
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.db.models import MassifRow, Recipient, WebhookEvent
from conditions.db.repositories import (
    BulletinRepository,
    CronExecutionRepository,
    DeliveryRepository,
    GeocodeCacheRepository,
    MassifRepository,
    SubscriptionRepository,
    WebhookEventRepository,
)
from conditions.db.repositories.webhook_event_repository import STALE_PROCESSING_SECONDS
from conditions.domain.models import ContentPreferences, ContentType, Platform
from tests.factories import JAN_1, JAN_2, make_bulletin


class TestBulletinRepository:
    @pytest.mark.unit
    async def test_latest_valid_from_by_massif(self, db_session: AsyncSession) -> None:
        repo = BulletinRepository(db_session)
        await repo.insert_many([
            make_bulletin(massif=18, valid_from=JAN_1),
            make_bulletin(massif=18, valid_from=JAN_2),
            make_bulletin(massif=3, valid_from=JAN_1),
        ])

        latest = await repo.get_latest_valid_from_by_massif([18, 3, 21])

        assert latest == {18: JAN_2, 3: JAN_1}

    @pytest.mark.unit
    async def test_no_massifs_no_query(self, db_session: AsyncSession) -> None:
        assert await BulletinRepository(db_session).get_latest_valid_from_by_massif([]) == {}

    @pytest.mark.unit
    async def test_get_latest(self, db_session: AsyncSession) -> None:
        repo = BulletinRepository(db_session)
        await repo.insert_many([
            make_bulletin(massif=18, valid_from=JAN_2, risk_level=4),
            make_bulletin(massif=18, valid_from=JAN_1, risk_level=2),
        ])

        latest = await repo.get_latest(18)

        assert latest.valid_from == JAN_2
        assert latest.risk_level == 4
        assert await repo.get_latest(21) is None

    @pytest.mark.unit
    async def test_insert_many_empty(self, db_session: AsyncSession) -> None:
        assert await BulletinRepository(db_session).insert_many([]) == 0

    @pytest.mark.unit
    async def test_same_version_twice_is_rejected(self, db_session: AsyncSession) -> None:
        repo = BulletinRepository(db_session)
        await repo.insert_many([make_bulletin(massif=18, valid_from=JAN_2)])

        with pytest.raises(IntegrityError):
            await repo.insert_many([make_bulletin(massif=18, valid_from=JAN_2)])


class TestDeliveryRepository:
    @pytest.mark.unit
    async def test_undelivered_recipients_keep_order(self, db_session: AsyncSession) -> None:
        repo = DeliveryRepository(db_session)
        await repo.record("33600000002", 18, JAN_2, Platform.WHATSAPP)

        pending = await repo.get_undelivered_recipients(
            ["33600000003", "33600000002", "33600000001", "33600000003"], 18, JAN_2, Platform.WHATSAPP
        )

        assert pending == ["33600000003", "33600000001"]

    @pytest.mark.unit
    async def test_version_and_platform_are_part_of_the_key(self, db_session: AsyncSession) -> None:
        repo = DeliveryRepository(db_session)
        await repo.record("42", 18, JAN_1, Platform.TELEGRAM)

        assert await repo.has_been_delivered("42", 18, JAN_1, Platform.TELEGRAM)
        assert not await repo.has_been_delivered("42", 18, JAN_2, Platform.TELEGRAM)
        assert not await repo.has_been_delivered("42", 18, JAN_1, Platform.WHATSAPP)
        assert not await repo.has_been_delivered("42", 3, JAN_1, Platform.TELEGRAM)

    @pytest.mark.unit
    async def test_duplicate_record_returns_false(self, db_session: AsyncSession) -> None:
        repo = DeliveryRepository(db_session)

        assert await repo.record("42", 18, JAN_2, Platform.TELEGRAM) is True
        assert await repo.record("42", 18, JAN_2, Platform.TELEGRAM) is False

        # the session stays usable after the rollback
        assert await repo.get_undelivered_recipients(["42", "43"], 18, JAN_2, Platform.TELEGRAM) == ["43"]

    @pytest.mark.unit
    async def test_empty_recipients(self, db_session: AsyncSession) -> None:
        assert await DeliveryRepository(db_session).get_undelivered_recipients(
            [], 18, JAN_2, Platform.TELEGRAM
        ) == []


class TestSubscriptionRepository:
    @pytest.mark.unit
    async def test_subscribe_defaults_to_bulletin_only(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)

        await repo.subscribe("33611111111", 18, Platform.WHATSAPP)

        assert await repo.get_preferences("33611111111", 18, Platform.WHATSAPP) == ContentPreferences()
        assert await repo.is_subscribed("33611111111", 18, Platform.WHATSAPP)
        assert not await repo.is_subscribed("33611111111", 18, Platform.TELEGRAM)

    @pytest.mark.unit
    async def test_subscribe_twice_overwrites_preferences(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("33611111111", 18, Platform.WHATSAPP)

        await repo.subscribe("33611111111", 18, Platform.WHATSAPP, ContentPreferences.everything())

        assert await repo.get_preferences("33611111111", 18, Platform.WHATSAPP) == ContentPreferences.everything()
        count = await db_session.execute(select(func.count()).select_from(Recipient))
        assert count.scalar_one() == 1

    @pytest.mark.unit
    async def test_subscribers_grouped_by_massif(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("a", 18, Platform.WHATSAPP)
        await repo.subscribe("b", 18, Platform.WHATSAPP, ContentPreferences.only(ContentType.WEATHER))
        await repo.subscribe("a", 3, Platform.WHATSAPP)
        await repo.subscribe("c", 18, Platform.TELEGRAM)

        grouped = await repo.get_subscribers_by_massif(Platform.WHATSAPP)

        assert sorted(grouped) == [3, 18]
        assert [s.recipient for s in grouped[18]] == ["a", "b"]
        assert grouped[18][1].preferences.weather is True
        assert grouped[18][1].preferences.bulletin is False

        only_vanoise = await repo.get_subscribers_by_massif(Platform.WHATSAPP, [18])
        assert list(only_vanoise) == [18]

    @pytest.mark.unit
    async def test_massifs_and_subscriber_count(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("a", 18, Platform.WHATSAPP)
        await repo.subscribe("a", 3, Platform.WHATSAPP)
        await repo.subscribe("a", 18, Platform.TELEGRAM)
        await repo.subscribe("b", 21, Platform.TELEGRAM)

        assert await repo.get_massifs_with_subscribers() == [3, 18, 21]
        # ("a", whatsapp), ("a", telegram), ("b", telegram)
        assert await repo.count_subscribers() == 3

    @pytest.mark.unit
    async def test_statuses_and_listing(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("a", 19, Platform.WHATSAPP)
        await repo.subscribe("a", 3, Platform.WHATSAPP)

        assert await repo.get_statuses("a", [3, 18, 19], Platform.WHATSAPP) == {3: True, 18: False, 19: True}
        assert await repo.get_statuses("a", [], Platform.WHATSAPP) == {}
        assert await repo.list_for_recipient("a", Platform.WHATSAPP) == [3, 19]

    @pytest.mark.unit
    async def test_update_content_types(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("a", 18, Platform.WHATSAPP)
        preferences = ContentPreferences().toggled(ContentType.SNOW_REPORT)

        assert await repo.update_content_types("a", 18, Platform.WHATSAPP, preferences)
        assert (await repo.get_preferences("a", 18, Platform.WHATSAPP)).snow_report is True
        assert not await repo.update_content_types("a", 3, Platform.WHATSAPP, preferences)

    @pytest.mark.unit
    async def test_unsubscribe(self, db_session: AsyncSession) -> None:
        repo = SubscriptionRepository(db_session)
        await repo.subscribe("a", 18, Platform.WHATSAPP)
        await repo.subscribe("a", 3, Platform.WHATSAPP)
        await repo.subscribe("a", 21, Platform.WHATSAPP)

        assert await repo.unsubscribe("a", 18, Platform.WHATSAPP) is True
        assert await repo.unsubscribe("a", 18, Platform.WHATSAPP) is False
        assert await repo.unsubscribe_all("a", Platform.WHATSAPP) == 2
        assert await repo.list_for_recipient("a", Platform.WHATSAPP) == []


class TestGeocodeCacheRepository:
    @pytest.mark.unit
    async def test_lookup_uses_normalized_query(self, db_session: AsyncSession) -> None:
        repo = GeocodeCacheRepository(db_session)
        await repo.store("Pralognan-la-Vanoise", 18, "Pralognan-la-Vanoise, France", 45.38, 6.72)

        entry = await repo.get("  PRALOGNAN-LA-VANOISE ")

        assert entry is not None
        assert entry.massif_code == 18
        assert entry.lat == pytest.approx(45.38)

    @pytest.mark.unit
    async def test_first_writer_wins(self, db_session: AsyncSession) -> None:
        repo = GeocodeCacheRepository(db_session)
        await repo.store("Val d'Isère", 19)
        await repo.store("Val d'Isère", 18)

        assert (await repo.get("Val d'Isère")).massif_code == 19

    @pytest.mark.unit
    async def test_miss(self, db_session: AsyncSession) -> None:
        assert await GeocodeCacheRepository(db_session).get("Chamonix") is None


class TestMassifRepository:
    @pytest.mark.unit
    async def test_list_all_ordered_by_code(self, db_session: AsyncSession) -> None:
        db_session.add_all([
            MassifRow(code=18, name="Vanoise", mountain="Alpes du Nord", geometry=None),
            MassifRow(code=3, name="Mont-Blanc", mountain="Alpes du Nord", geometry={"type": "Polygon"}),
        ])
        await db_session.commit()

        massifs = await MassifRepository(db_session).list_all()

        assert [m.code for m in massifs] == [3, 18]
        assert massifs[0].geometry == {"type": "Polygon"}
        assert massifs[1].name == "Vanoise"


class TestCronExecutionRepository:
    @pytest.mark.unit
    async def test_record_and_latest(self, db_session: AsyncSession) -> None:
        repo = CronExecutionRepository(db_session)
        for status in ("success", "partial", "failed"):
            await repo.record(
                status=status,
                subscriber_count=4,
                massifs_with_subscribers_count=2,
                updated_bulletins_count=1,
                bulletins_delivered_count=3,
                summary=None,
                error_message="boom" if status == "failed" else None,
                failed_stage="plan" if status == "failed" else None,
                duration_ms=120,
            )

        latest = await repo.latest(2)

        assert [e.status for e in latest] == ["failed", "partial"]
        assert latest[0].failed_stage == "plan"
        assert isinstance(latest[0].executed_at, datetime)


class TestWebhookEventRepository:
    @pytest.mark.unit
    async def test_first_delivery_is_claimed_once(self, db_session: AsyncSession) -> None:
        repo = WebhookEventRepository(db_session)

        assert await repo.try_acquire("wamid.1") is True
        # redelivered while the first copy is still being handled
        assert await repo.try_acquire("wamid.1") is False

    @pytest.mark.unit
    async def test_completed_message_is_never_handled_again(self, db_session: AsyncSession) -> None:
        repo = WebhookEventRepository(db_session)
        await repo.try_acquire("wamid.1")
        await repo.mark_completed("wamid.1")
        await db_session.execute(
            update(WebhookEvent).values(created_at=datetime.utcnow() - timedelta(hours=1))
        )
        await db_session.commit()

        assert await repo.try_acquire("wamid.1") is False

    @pytest.mark.unit
    async def test_stale_processing_message_is_retried(self, db_session: AsyncSession) -> None:
        repo = WebhookEventRepository(db_session)
        await repo.try_acquire("wamid.1")
        await db_session.execute(
            update(WebhookEvent).values(
                created_at=datetime.utcnow() - timedelta(seconds=STALE_PROCESSING_SECONDS + 10)
            )
        )
        await db_session.commit()

        assert await repo.try_acquire("wamid.1") is True
        assert await repo.try_acquire("wamid.1") is False

    @pytest.mark.unit
    async def test_message_without_id_is_always_handled(self, db_session: AsyncSession) -> None:
        repo = WebhookEventRepository(db_session)

        assert await repo.try_acquire("") is True
        assert await repo.try_acquire("") is True
