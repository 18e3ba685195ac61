"""
Cron Execution Repository
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.db.models.cron_execution import CronExecution


class CronExecutionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        *,
        status: str,
        subscriber_count: int,
        massifs_with_subscribers_count: int,
        updated_bulletins_count: int,
        bulletins_delivered_count: int,
        summary: Optional[str],
        error_message: Optional[str],
        failed_stage: Optional[str],
        duration_ms: int,
    ) -> CronExecution:
        # a stage failure may have left the session mid-transaction
        await self.db.rollback()
        execution = CronExecution(
            status=status,
            subscriber_count=subscriber_count,
            massifs_with_subscribers_count=massifs_with_subscribers_count,
            updated_bulletins_count=updated_bulletins_count,
            bulletins_delivered_count=bulletins_delivered_count,
            summary=summary,
            error_message=error_message,
            failed_stage=failed_stage,
            duration_ms=duration_ms,
        )
        self.db.add(execution)
        await self.db.commit()
        return execution

    async def latest(self, limit: int = 10) -> list[CronExecution]:
        result = await self.db.execute(
            select(CronExecution).order_by(CronExecution.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
