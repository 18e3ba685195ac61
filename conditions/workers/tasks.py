"""
Celery Tasks

The periodic bulletin cron run. Each task gets its own event loop, its own
database engine and a fresh WhatsApp provider.
"""
from __future__ import annotations

import asyncio
from contextlib import contextmanager

from conditions.core.logging import get_logger, set_correlation_id
from conditions.db.database import get_task_session
from conditions.domain.services.cron_orchestrator import build_cron_orchestrator
from conditions.domain.services.whatsapp.provider_factory import reset_providers
from conditions.workers.celery_app import celery_app

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    New event loop for one task, with pending tasks cancelled on exit.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        # the provider's HTTP client is bound to this loop
        reset_providers()
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


async def _run_cron() -> dict:
    async with get_task_session() as db:
        orchestrator = await build_cron_orchestrator(db)
        result = await orchestrator.run()
    return {
        "status": result.status.value,
        "summary": result.summary,
        "updated_bulletins": result.updated_bulletins_count,
        "delivered": result.bulletins_delivered_count,
        "failed_stage": result.failed_stage,
        "duration_ms": result.duration_ms,
    }


@celery_app.task(name="conditions.workers.tasks.run_bulletin_cron")
def run_bulletin_cron():
    """
    Check for new bulletins and deliver them.

    The outcome (including failures) is in the cron_executions table; the
    task itself only raises when the run could not even be set up.
    """
    outcome = run_async(_run_cron())
    logger.info("Bulletin cron task finished", extra_data=outcome)
    return outcome
