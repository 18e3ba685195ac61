"""
Geocode Cache Repository - keyed by the normalized query text
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.db.models.geocode_cache import GeocodeCacheEntry
from conditions.domain.text import normalize_text


class GeocodeCacheRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, query: str) -> Optional[GeocodeCacheEntry]:
        result = await self.db.execute(
            select(GeocodeCacheEntry).where(GeocodeCacheEntry.query == normalize_text(query))
        )
        return result.scalar_one_or_none()

    async def store(
        self,
        query: str,
        massif_code: int,
        place_name: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None
    ) -> None:
        """First writer wins; a concurrent insert of the same key is ignored"""
        key = normalize_text(query)
        if await self.get(key) is not None:
            return
        self.db.add(GeocodeCacheEntry(
            query=key,
            massif_code=massif_code,
            place_name=place_name,
            lat=lat,
            lng=lng,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
