"""Location service: CRUD plus the composed read view clients consume.

Every read path (list, get, activity feed, and the responses to a crowd
report or a clear) goes through `to_location_out`, which loads the log and
runs the score aggregator over it. Nothing here ever stores a score.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crowd_balance.middleware.exceptions import ConflictError, NotFoundError
from crowd_balance.models.activity import ActivityEntry
from crowd_balance.models.location import Location
from crowd_balance.models.user import User, UserType
from crowd_balance.schemas.location import (
    ActivityEntryOut,
    ActivityFeedOut,
    ClearActivitiesOut,
    LocationCreate,
    LocationOut,
    LocationUpdate,
    LocationWithOrganizers,
    OrganizerOut,
    ScoresOut,
)
from crowd_balance.services import activity_log
from crowd_balance.services.scores import aggregate
from crowd_balance.utils.clock import utcnow

logger = logging.getLogger(__name__)

DUPLICATE_NAME_MESSAGE = "Location name already exists"


# ── Composition ──────────────────────────────────────────────

def to_location_out(location: Location, entries: Sequence[ActivityEntry]) -> LocationOut:
    """Attach derived crowd scores to a location."""
    scores = aggregate(entries)
    return LocationOut(
        id=location.id,
        name=location.name,
        capacity=location.capacity,
        is_active=location.is_active,
        last_updated=location.last_updated,
        created_at=location.created_at,
        updated_at=location.updated_at,
        activity_log=[ActivityEntryOut.model_validate(e) for e in entries],
        min_crowd_score=scores.min_count,
        moderate_crowd_score=scores.moderate_count,
        max_crowd_score=scores.max_count,
        total_score=scores.total,
    )


async def get_location(db: AsyncSession, location_id: str) -> Location:
    """Look up a location by id regardless of its is_active flag."""
    location = await db.get(Location, location_id)
    if location is None:
        raise NotFoundError("Location", location_id)
    return location


async def _compose(db: AsyncSession, location: Location) -> LocationOut:
    entries = await activity_log.load_entries(db, location.id)
    return to_location_out(location, entries)


# ── Reads ────────────────────────────────────────────────────

async def list_active_locations(db: AsyncSession) -> list[LocationOut]:
    """All active locations with scores, logs fetched in one query."""
    result = await db.execute(
        select(Location)
        .where(Location.is_active == True)  # noqa: E712
        .order_by(Location.name)
    )
    locations = result.scalars().all()
    if not locations:
        return []

    entries_result = await db.execute(
        select(ActivityEntry)
        .where(ActivityEntry.location_id.in_([loc.id for loc in locations]))
        .order_by(ActivityEntry.id)
    )
    by_location: dict[str, list[ActivityEntry]] = defaultdict(list)
    for entry in entries_result.scalars().all():
        by_location[entry.location_id].append(entry)

    return [to_location_out(loc, by_location[loc.id]) for loc in locations]


async def read_location(db: AsyncSession, location_id: str) -> LocationOut:
    location = await get_location(db, location_id)
    return await _compose(db, location)


async def activity_feed(db: AsyncSession, location_id: str) -> ActivityFeedOut:
    """Raw log plus its aggregate, for the recent-activity view."""
    location = await get_location(db, location_id)
    entries = await activity_log.load_entries(db, location.id)
    scores = aggregate(entries)
    return ActivityFeedOut(
        location_name=location.name,
        activities=[ActivityEntryOut.model_validate(e) for e in entries],
        calculated_scores=ScoresOut(**scores.as_dict()),
        last_updated=location.last_updated,
    )


# ── Organizer boundary ───────────────────────────────────────

async def find_organizers_for_location(db: AsyncSession, name: str) -> list[User]:
    """Organizers whose `assigned_hall` equals the location's name.

    The join is by name, not id: renaming a location orphans every
    organizer still assigned under the old name.
    """
    result = await db.execute(
        select(User)
        .where(
            User.user_type == UserType.ORGANIZER.value,
            User.assigned_hall == name,
        )
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def read_location_with_organizers(
    db: AsyncSession, location_id: str
) -> LocationWithOrganizers:
    location = await get_location(db, location_id)
    base = await _compose(db, location)
    organizers = await find_organizers_for_location(db, location.name)
    return LocationWithOrganizers(
        **base.model_dump(),
        organizers=[OrganizerOut.model_validate(o) for o in organizers],
    )


# ── Writes ───────────────────────────────────────────────────

async def _ensure_name_free(
    db: AsyncSession, name: str, exclude_id: str | None = None
) -> None:
    query = select(Location.id).where(Location.name == name)
    if exclude_id:
        query = query.where(Location.id != exclude_id)
    if await db.scalar(query):
        raise ConflictError(DUPLICATE_NAME_MESSAGE)


async def _flush_unique(db: AsyncSession) -> None:
    # A concurrent create can still win the race past _ensure_name_free
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError(DUPLICATE_NAME_MESSAGE)


async def create_location(db: AsyncSession, body: LocationCreate) -> LocationOut:
    await _ensure_name_free(db, body.name)

    now = utcnow()
    location = Location(
        name=body.name,
        capacity=body.capacity,
        is_active=True,
        last_updated=now,
    )
    db.add(location)
    await _flush_unique(db)

    logger.info("Created location %s (capacity %d)", location.name, location.capacity)
    return to_location_out(location, [])


async def update_location(
    db: AsyncSession, location_id: str, body: LocationUpdate
) -> LocationOut:
    location = await get_location(db, location_id)

    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in updates and updates["name"] != location.name:
        await _ensure_name_free(db, updates["name"], exclude_id=location.id)
        logger.warning(
            "Renaming location %s to %s; organizers assigned by name are not moved",
            location.name,
            updates["name"],
        )

    for key, value in updates.items():
        setattr(location, key, value)
    if updates:
        location.last_updated = utcnow()
    await _flush_unique(db)

    return await _compose(db, location)


async def record_crowd_report(
    db: AsyncSession,
    location_id: str,
    crowd_level: str,
    organizer_id: str | None = None,
) -> LocationOut:
    location = await activity_log.append_activity(
        db, location_id, crowd_level, organizer_id
    )
    return await _compose(db, location)


async def clear_activities(db: AsyncSession, location_id: str) -> ClearActivitiesOut:
    location, cleared = await activity_log.clear_log(db, location_id)
    remaining = await activity_log.load_entries(db, location.id)
    return ClearActivitiesOut(
        location_id=location.id,
        location_name=location.name,
        cleared_activities=cleared,
        last_updated=location.last_updated,
        calculated_scores=ScoresOut(**aggregate(remaining).as_dict()),
    )


async def soft_delete_location(db: AsyncSession, location_id: str) -> Location:
    """Hide a location from listings; it stays reachable by id."""
    location = await get_location(db, location_id)
    location.is_active = False
    location.last_updated = utcnow()
    await db.flush()
    logger.info("Deactivated location %s", location.name)
    return location


async def hard_delete_location(db: AsyncSession, location_id: str) -> str:
    """Remove a location and its whole log. Returns the removed name."""
    location = await get_location(db, location_id)
    name = location.name

    await db.execute(
        delete(ActivityEntry)
        .where(ActivityEntry.location_id == location.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(location)
    await db.flush()
    logger.info("Purged location %s", name)
    return name
