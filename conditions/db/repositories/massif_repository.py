"""
Massif Repository
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.db.models.massif import MassifRow
from conditions.domain.models import Massif


class MassifRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_all(self) -> list[Massif]:
        """Every massif, ordered by code (the directory's load order)"""
        result = await self.db.execute(select(MassifRow).order_by(MassifRow.code))
        return [
            Massif(code=row.code, name=row.name, mountain=row.mountain, geometry=row.geometry)
            for row in result.scalars().all()
        ]
