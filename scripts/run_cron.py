#!/usr/bin/env python3
"""
Run one bulletin cron cycle from the command line.

Exit status: 0 success, 2 partial (some massifs or recipients failed),
1 failed (the run aborted, or could not start).

Usage:
    python scripts/run_cron.py
"""
import asyncio
import sys
from pathlib import Path

# allow running from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conditions.core.config import settings  # noqa: E402
from conditions.core.logging import get_logger, set_correlation_id, setup_logging  # noqa: E402
from conditions.db.database import get_task_session  # noqa: E402
from conditions.domain.services.cron_orchestrator import build_cron_orchestrator  # noqa: E402

logger = get_logger("scripts.run_cron")


async def main() -> int:
    set_correlation_id()
    async with get_task_session() as db:
        orchestrator = await build_cron_orchestrator(db)
        result = await orchestrator.run()
    print(f"[{result.status.value}] {result.summary}")
    return result.exit_code


if __name__ == "__main__":
    setup_logging(
        level="DEBUG" if settings.DEBUG else "INFO",
        json_format=not settings.DEBUG,
        app_name=settings.APP_NAME,
    )
    try:
        exit_code = asyncio.run(main())
    except Exception as e:
        logger.error("Cron run could not start", extra_data={"error": str(e)}, exc_info=True)
        exit_code = 1
    sys.exit(exit_code)
