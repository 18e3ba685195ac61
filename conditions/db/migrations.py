"""
Database migrations - single source of truth for schema changes that
create_all cannot express on an existing database.

Used by the startup hook (main.py) and by scripts/run_migrations.py.
Every statement is idempotent (safe to run repeatedly). PostgreSQL only.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from conditions.core.logging import get_logger

logger = get_logger(__name__)


async def run_migration_001(conn: AsyncConnection) -> None:
    """Migration 001 - lookup indexes for the cron hot paths."""
    # latest bulletin per massif
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_bras_massif_valid_from_desc
            ON bras(massif, valid_from DESC);
    """))

    # undelivered-recipient check, one query per massif
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_deliveries_bras_massif_version_platform
            ON deliveries_bras(massif, valid_from, platform);
    """))

    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_bra_subscriptions_recipient_platform
            ON bra_subscriptions(recipient, platform);
    """))


async def run_migration_002(conn: AsyncConnection) -> None:
    """Migration 002 - failed_stage column on cron_executions."""
    await conn.execute(text("""
        ALTER TABLE cron_executions
            ADD COLUMN IF NOT EXISTS failed_stage VARCHAR(50);
    """))


async def run_migration_003(conn: AsyncConnection) -> None:
    """Migration 003 - geocode cache place name and coordinates."""
    await conn.execute(text("""
        ALTER TABLE geocode_cache
            ADD COLUMN IF NOT EXISTS place_name VARCHAR(255),
            ADD COLUMN IF NOT EXISTS lat DOUBLE PRECISION,
            ADD COLUMN IF NOT EXISTS lng DOUBLE PRECISION;
    """))


async def run_all_migrations(conn: AsyncConnection) -> None:
    """Run every migration in order."""
    logger.info("Running migration 001...")
    await run_migration_001(conn)
    logger.info("Running migration 002...")
    await run_migration_002(conn)
    logger.info("Running migration 003...")
    await run_migration_003(conn)
    logger.info("All migrations applied")
