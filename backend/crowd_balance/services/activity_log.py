"""Activity log store: the per-location sequence of crowd observations.

The log is the only persisted crowd state. Writers:

  - crowd reports append one row (`append_activity`)
  - the retention sweeper removes expired rows (`prune_log`)
  - a panel user clears the whole log (`clear_log`)
  - administrative restores rewrite it (`replace_log`)

Appends are plain INSERTs and removals are predicated DELETEs, so no writer
ever reads the log, filters it in Python and writes it back. A report that
lands while a sweep or clear is in flight therefore cannot be lost. Every
mutation also bumps `Location.last_updated` with a single-column UPDATE and
leaves the location's other attributes untouched.

None of these functions commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crowd_balance.config import settings
from crowd_balance.middleware.exceptions import (
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from crowd_balance.models.activity import ActivityEntry
from crowd_balance.models.location import Location
from crowd_balance.services.scores import CrowdLevel
from crowd_balance.utils.clock import utcnow

logger = logging.getLogger("crowd_balance.activity_log")


def parse_crowd_level(value: Any) -> CrowdLevel:
    """Validate a reported crowd level."""
    try:
        return CrowdLevel(value)
    except ValueError:
        raise ValidationError(
            "Invalid crowd level. Use: min, moderate, or max",
            error_code="INVALID_CROWD_LEVEL",
        )


async def _get_location(db: AsyncSession, location_id: str) -> Location:
    location = await db.get(Location, location_id)
    if location is None:
        raise NotFoundError("Location", location_id)
    return location


async def load_entries(db: AsyncSession, location_id: str) -> list[ActivityEntry]:
    """Return a location's log in insertion (chronological) order."""
    result = await db.execute(
        select(ActivityEntry)
        .where(ActivityEntry.location_id == location_id)
        .order_by(ActivityEntry.id)
    )
    return list(result.scalars().all())


async def append_activity(
    db: AsyncSession,
    location_id: str,
    crowd_level: str | CrowdLevel,
    organizer_id: str | None = None,
    *,
    now: datetime | None = None,
) -> Location:
    """Append one crowd report to a location's log.

    Soft-deleted locations accept reports too; only a missing id is an error.
    """
    level = parse_crowd_level(crowd_level)
    location = await _get_location(db, location_id)
    now = now or utcnow()

    db.add(
        ActivityEntry(
            location_id=location.id,
            crowd_level=level.value,
            timestamp=now,
            organizer_id=organizer_id or settings.default_organizer_id,
        )
    )
    location.last_updated = now
    await db.flush()

    logger.info("Recorded %s report for location %s", level.value, location.name)
    return location


async def replace_log(
    db: AsyncSession,
    location_id: str,
    new_log: Iterable[Any],
    *,
    now: datetime | None = None,
) -> Location:
    """Rewrite a location's log with `new_log`.

    Entries may be ActivityEntry rows or dicts with ``crowd_level``,
    ``timestamp`` and ``organizer_id`` keys. Only the log rows and
    `last_updated` are written.
    """
    location = await _get_location(db, location_id)
    now = now or utcnow()

    rows = []
    for entry in new_log:
        if isinstance(entry, dict):
            level = entry.get("crowd_level", entry.get("crowdLevel"))
            timestamp = entry.get("timestamp")
            organizer_id = entry.get("organizer_id", entry.get("organizerId"))
        else:
            level = entry.crowd_level
            timestamp = entry.timestamp
            organizer_id = entry.organizer_id
        rows.append(
            ActivityEntry(
                location_id=location.id,
                crowd_level=parse_crowd_level(level).value,
                timestamp=timestamp or now,
                organizer_id=organizer_id or settings.default_organizer_id,
            )
        )

    await db.execute(
        delete(ActivityEntry)
        .where(ActivityEntry.location_id == location.id)
        .execution_options(synchronize_session=False)
    )
    db.add_all(rows)
    location.last_updated = now
    await db.flush()

    logger.info("Replaced log of location %s with %d entries", location.name, len(rows))
    return location


async def clear_log(
    db: AsyncSession,
    location_id: str,
    *,
    now: datetime | None = None,
) -> tuple[Location, int]:
    """Remove every entry currently in the log and return how many went.

    Only entries up to the newest id seen here are deleted, so a report
    appended concurrently survives the clear.
    """
    location = await _get_location(db, location_id)

    result = await db.execute(
        select(func.count(ActivityEntry.id), func.max(ActivityEntry.id)).where(
            ActivityEntry.location_id == location.id
        )
    )
    count, newest_id = result.one()
    if not count:
        raise InvalidOperationError("No activities to clear", error_code="NOTHING_TO_CLEAR")

    deleted = await db.execute(
        delete(ActivityEntry)
        .where(
            ActivityEntry.location_id == location.id,
            ActivityEntry.id <= newest_id,
        )
        .execution_options(synchronize_session=False)
    )
    location.last_updated = now or utcnow()
    await db.flush()

    cleared = deleted.rowcount
    logger.info("Cleared %d activities from location %s", cleared, location.name)
    return location, cleared


async def prune_log(
    db: AsyncSession,
    location_id: str,
    cutoff: datetime,
    *,
    now: datetime | None = None,
) -> int:
    """Delete entries with timestamp <= cutoff; return the number removed.

    Issues no write at all when nothing is old enough to drop.
    """
    stale = await db.scalar(
        select(func.count(ActivityEntry.id)).where(
            ActivityEntry.location_id == location_id,
            ActivityEntry.timestamp <= cutoff,
        )
    )
    if not stale:
        return 0

    result = await db.execute(
        delete(ActivityEntry)
        .where(
            ActivityEntry.location_id == location_id,
            ActivityEntry.timestamp <= cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    removed = result.rowcount
    if removed:
        await db.execute(
            update(Location)
            .where(Location.id == location_id)
            .values(last_updated=now or utcnow())
            .execution_options(synchronize_session=False)
        )
    return removed
