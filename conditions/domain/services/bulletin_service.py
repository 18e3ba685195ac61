"""
Bulletin Service - current bulletin for interactive requests

Serves the latest stored version, refetching through the BulletinFetcher when
nothing is stored yet or the stored version has expired.
"""
from datetime import datetime
from typing import Callable, Optional, Protocol

from conditions.core.logging import get_logger
from conditions.domain.models import BulletinRecord
from conditions.domain.services.bulletin_fetcher import BulletinFetcher
from conditions.domain.services.freshness_checker import MetadataSource

logger = get_logger(__name__)


class LatestBulletins(Protocol):
    async def get_latest(self, massif: int) -> Optional[BulletinRecord]: ...


class BulletinService:
    def __init__(
        self,
        bulletins: LatestBulletins,
        source: MetadataSource,
        fetcher: BulletinFetcher,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.bulletins = bulletins
        self.source = source
        self.fetcher = fetcher
        self.clock = clock

    async def get_current(self, massif: int) -> Optional[BulletinRecord]:
        """
        Latest bulletin for a massif, or None when none can be obtained.

        An expired bulletin is still returned when the refetch fails or
        upstream has nothing newer.
        """
        latest = await self.bulletins.get_latest(massif)
        if latest is not None and not latest.is_expired(self.clock()):
            return latest

        try:
            metadata = await self.source.fetch_metadata(massif)
        except Exception as e:
            logger.warning(
                "On-demand bulletin metadata fetch failed",
                extra_data={"massif": massif, "error": str(e)}
            )
            return latest

        if latest is not None and metadata.valid_from <= latest.valid_from:
            return latest

        fetched = await self.fetcher.fetch_one(metadata)
        return fetched or latest
