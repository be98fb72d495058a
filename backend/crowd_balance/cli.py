"""Management CLI for activity log maintenance.

Usage:
    python -m crowd_balance.cli sweep            # Run one retention sweep now
    python -m crowd_balance.cli list-locations   # Show locations with scores
"""

import asyncio
import sys

from crowd_balance.database import async_session, engine
from crowd_balance.services.locations import list_active_locations
from crowd_balance.services.scheduler import build_sweeper
from crowd_balance.utils.redis_client import close_redis


async def sweep():
    sweeper = await build_sweeper()
    report = await sweeper.run_once()
    if report is None:
        print("Sweep skipped: another sweep holds the lock.")
        return

    print(f"  Cutoff: {report.cutoff.isoformat()}")
    print(f"  Scanned {report.locations_scanned} location(s)")
    print(f"  Removed {report.entries_removed} entr(ies) from {report.locations_pruned} location(s)")
    for failure in report.failures:
        print(f"  FAILED {failure.location_name}: {failure.error}")
    if report.aborted:
        print("  Sweep aborted early, see logs.")


async def list_locations():
    async with async_session() as db:
        items = await list_active_locations(db)
    for loc in items:
        print(
            f"  {loc.name:<30} cap={loc.capacity:<6} "
            f"min={loc.min_crowd_score} moderate={loc.moderate_crowd_score} "
            f"max={loc.max_crowd_score} total={loc.total_score}"
        )
    print(f"\n{len(items)} location(s)")


async def _run(command):
    try:
        await command()
    finally:
        await close_redis()
        await engine.dispose()


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "sweep":
        asyncio.run(_run(sweep))
    elif cmd == "list-locations":
        asyncio.run(_run(list_locations))
    else:
        print("Usage: python -m crowd_balance.cli [sweep|list-locations]")
