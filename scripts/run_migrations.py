#!/usr/bin/env python3
"""
Database Migration Runner

Creates any missing tables, then applies the idempotent PostgreSQL
migrations from conditions.db.migrations against DATABASE_URL.
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conditions.db import models  # noqa: E402,F401  (registers the tables)
from conditions.db.database import Base, engine  # noqa: E402
from conditions.db.migrations import run_all_migrations  # noqa: E402


async def main() -> int:
    print(f"Database dialect: {engine.dialect.name}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created")

    if engine.dialect.name != "postgresql":
        print("Not PostgreSQL: migrations skipped")
    else:
        async with engine.begin() as conn:
            await run_all_migrations(conn)
        print("Migrations applied")

    await engine.dispose()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except Exception as e:
        print(f"ERROR: migration failed: {e}")
        sys.exit(1)
