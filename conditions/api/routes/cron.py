"""
Manual trigger for the bulletin cron run
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.api.dependencies.admin_auth import require_admin_api_key
from conditions.api.dependencies.app_state import get_massif_directory
from conditions.core.exceptions import ValidationException
from conditions.core.logging import get_logger
from conditions.db.database import get_db
from conditions.db.repositories import CronExecutionRepository
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.services.cron_orchestrator import build_cron_orchestrator

logger = get_logger(__name__)

router = APIRouter()


class CronRunResponse(BaseModel):
    status: str
    summary: str
    subscriber_count: int
    massifs_with_subscribers_count: int
    updated_bulletins_count: int
    bulletins_delivered_count: int
    failed_stage: str | None = None
    duration_ms: int


class CronExecutionResponse(BaseModel):
    id: int
    status: str
    summary: str | None = None
    error_message: str | None = None
    failed_stage: str | None = None
    bulletins_delivered_count: int
    duration_ms: int

    class Config:
        from_attributes = True


@router.post(
    "/run",
    response_model=CronRunResponse,
    summary="Run the bulletin cron now",
)
async def run_cron(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
    directory: MassifDirectory = Depends(get_massif_directory),
) -> CronRunResponse:
    logger.info("Manual cron run requested")
    orchestrator = await build_cron_orchestrator(db, directory=directory)
    result = await orchestrator.run()
    return CronRunResponse(
        status=result.status.value,
        summary=result.summary,
        subscriber_count=result.subscriber_count,
        massifs_with_subscribers_count=result.massifs_with_subscribers_count,
        updated_bulletins_count=result.updated_bulletins_count,
        bulletins_delivered_count=result.bulletins_delivered_count,
        failed_stage=result.failed_stage,
        duration_ms=result.duration_ms,
    )


@router.get(
    "/executions",
    response_model=list[CronExecutionResponse],
    summary="Most recent cron runs",
)
async def list_executions(
    limit: int = 10,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> list[CronExecutionResponse]:
    if not 1 <= limit <= 100:
        raise ValidationException("limit must be between 1 and 100", field="limit")
    executions = await CronExecutionRepository(db).latest(limit)
    return [CronExecutionResponse.model_validate(e) for e in executions]
