"""Apply SQL migrations from backend/migrations.

Usage:
    python scripts/apply_migration.py                  # every file, in name order
    python scripts/apply_migration.py 0001_communities_core.sql
"""

import asyncio
import os
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = BACKEND_DIR / "migrations"

# Ensure backend path is in sys.path
sys.path.append(str(BACKEND_DIR))
os.chdir(BACKEND_DIR)

from nexus.infra.postgres import close_pool, get_pool


async def apply_migration(filenames: list[str]) -> int:
    if not filenames:
        filenames = sorted(path.name for path in MIGRATIONS_DIR.glob("*.sql"))

    pool = await get_pool()
    try:
        for filename in filenames:
            migration_path = MIGRATIONS_DIR / filename
            if not migration_path.exists():
                print(f"Migration file not found: {migration_path}")
                return 1

            print(f"Applying migration: {filename}")
            sql = migration_path.read_text(encoding="utf-8")
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(sql)
    finally:
        await close_pool()
    print("Migrations applied successfully.")
    return 0


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    sys.exit(asyncio.run(apply_migration(sys.argv[1:])))
