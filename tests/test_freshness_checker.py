"""
Tests for the bulletin freshness check
"""
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from conditions.core.exceptions import BulletinSourceError
from conditions.domain.services.freshness_checker import BulletinFreshnessChecker, classify
from tests.factories import JAN_1, JAN_2, make_metadata


def _checker(massifs, stored, source, notifier) -> BulletinFreshnessChecker:
    subscriptions = AsyncMock()
    subscriptions.get_massifs_with_subscribers.return_value = massifs
    bulletins = AsyncMock()
    bulletins.get_latest_valid_from_by_massif.return_value = stored
    return BulletinFreshnessChecker(subscriptions, bulletins, source, notifier)


class TestClassify:
    """new / updated / unchanged"""

    @pytest.mark.unit
    def test_nothing_stored_is_new(self) -> None:
        assert classify(make_metadata(), None) == "new"

    @pytest.mark.unit
    def test_strictly_later_is_updated(self) -> None:
        assert classify(make_metadata(valid_from=JAN_2), JAN_1) == "updated"

    @pytest.mark.unit
    def test_equal_is_unchanged(self) -> None:
        assert classify(make_metadata(valid_from=JAN_2), JAN_2) == "unchanged"

    @pytest.mark.unit
    def test_older_is_unchanged(self) -> None:
        assert classify(make_metadata(valid_from=JAN_1), JAN_2) == "unchanged"


class TestBulletinFreshnessChecker:
    """Per-massif classification with failure isolation"""

    @pytest.mark.unit
    async def test_no_subscribed_massifs(self, mock_notifier: AsyncMock) -> None:
        source = AsyncMock()
        checker = _checker([], {}, source, mock_notifier)

        report = await checker.check()

        assert report.checked == []
        assert report.to_fetch == []
        source.fetch_metadata.assert_not_called()
        checker.bulletins.get_latest_valid_from_by_massif.assert_not_called()

    @pytest.mark.unit
    async def test_classifies_each_massif(self, mock_notifier: AsyncMock) -> None:
        metadata = {
            3: make_metadata(massif=3, valid_from=JAN_2),
            18: make_metadata(massif=18, valid_from=JAN_2),
            21: make_metadata(massif=21, valid_from=JAN_2),
        }
        source = AsyncMock()
        source.fetch_metadata.side_effect = lambda code: metadata[code]
        checker = _checker([3, 18, 21], {18: JAN_1, 21: JAN_2}, source, mock_notifier)

        report = await checker.check()

        assert report.new == [3]
        assert report.updated == [18]
        assert report.unchanged == [21]
        assert [m.massif for m in report.to_fetch] == [3, 18]
        assert not report.has_failures
        mock_notifier.notify.assert_not_called()

    @pytest.mark.unit
    async def test_one_failure_does_not_stop_the_others(self, mock_notifier: AsyncMock) -> None:
        async def fetch(code: int):
            if code == 18:
                raise BulletinSourceError("metadata returned status 500", massif=18)
            return make_metadata(massif=code)

        source = AsyncMock()
        source.fetch_metadata.side_effect = fetch
        checker = _checker([3, 18, 21], {}, source, mock_notifier)

        report = await checker.check()

        assert report.new == [3, 21]
        assert list(report.failed) == [18]
        assert "500" in report.failed[18]
        assert report.has_failures
        mock_notifier.notify.assert_awaited_once()
        message, metadata = mock_notifier.notify.call_args[0]
        assert "1 of 3" in message
        assert "18" in metadata

    @pytest.mark.unit
    async def test_failure_without_message_uses_type_name(self, mock_notifier: AsyncMock) -> None:
        source = AsyncMock()
        source.fetch_metadata.side_effect = TimeoutError()
        checker = _checker([18], {}, source, mock_notifier)

        report = await checker.check()

        assert report.failed == {18: "TimeoutError"}

    @pytest.mark.unit
    async def test_store_failure_propagates(self, mock_notifier: AsyncMock) -> None:
        source = AsyncMock()
        checker = _checker([18], {}, source, mock_notifier)
        checker.bulletins.get_latest_valid_from_by_massif.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await checker.check()

    @pytest.mark.unit
    async def test_each_massif_lands_in_exactly_one_bucket(self, mock_notifier: AsyncMock) -> None:
        async def fetch(code: int):
            if code % 2:
                raise BulletinSourceError("boom", massif=code)
            return make_metadata(massif=code, valid_from=datetime(2024, 1, code % 5 + 1))

        codes = list(range(1, 13))
        stored = {code: datetime(2024, 1, 3) for code in codes[::3]}
        source = AsyncMock()
        source.fetch_metadata.side_effect = fetch
        checker = _checker(codes, stored, source, mock_notifier)

        report = await checker.check()

        buckets = report.new + report.updated + report.unchanged + list(report.failed)
        assert sorted(buckets) == codes
