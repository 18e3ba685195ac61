"""
Bulletin Repository
"""
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.logging import get_logger
from conditions.db.models.bulletin import Bulletin
from conditions.domain.models import BulletinRecord

logger = get_logger(__name__)


def _to_record(row: Bulletin) -> BulletinRecord:
    return BulletinRecord(
        massif=row.massif,
        valid_from=row.valid_from,
        valid_to=row.valid_to,
        filename=row.filename,
        public_url=row.public_url,
        risk_level=row.risk_level,
    )


class BulletinRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_latest_valid_from_by_massif(self, massifs: Iterable[int]) -> dict[int, datetime]:
        """Stored maximum valid_from per massif; massifs without bulletins are absent"""
        codes = list(massifs)
        if not codes:
            return {}
        result = await self.db.execute(
            select(Bulletin.massif, func.max(Bulletin.valid_from))
            .where(Bulletin.massif.in_(codes))
            .group_by(Bulletin.massif)
        )
        return {massif: valid_from for massif, valid_from in result.all()}

    async def get_latest(self, massif: int) -> Optional[BulletinRecord]:
        result = await self.db.execute(
            select(Bulletin)
            .where(Bulletin.massif == massif)
            .order_by(Bulletin.valid_from.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def insert_many(self, records: list[BulletinRecord]) -> int:
        """Insert every record in one statement; returns the row count"""
        if not records:
            return 0
        await self.db.execute(
            insert(Bulletin).values([
                {
                    "massif": r.massif,
                    "filename": r.filename,
                    "public_url": r.public_url,
                    "valid_from": r.valid_from,
                    "valid_to": r.valid_to,
                    "risk_level": r.risk_level,
                    "created_at": datetime.utcnow(),
                }
                for r in records
            ])
        )
        await self.db.commit()
        logger.info("Bulletins stored", extra_data={"count": len(records)})
        return len(records)
