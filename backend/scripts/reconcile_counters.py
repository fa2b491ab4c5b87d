"""Recompute member_count/subclub_count once and print how many rows drifted."""

import asyncio
import os
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent.parent

# Ensure backend path is in sys.path
sys.path.append(str(BACKEND_DIR))
os.chdir(BACKEND_DIR)

from nexus.communities.jobs.counter_reconcile import CounterReconcileJob
from nexus.infra.postgres import close_pool
from nexus.obs.logging import configure_logging


async def main() -> None:
    configure_logging()
    try:
        fixed = await CounterReconcileJob().run_once()
    finally:
        await close_pool()
    print(f"Counters corrected on {fixed} row(s).")


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
