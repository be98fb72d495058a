"""Activity log store tests (service level)."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from crowd_balance.middleware.exceptions import (
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from crowd_balance.models.activity import ActivityEntry
from crowd_balance.models.location import Location
from crowd_balance.services import activity_log
from crowd_balance.services.scores import aggregate

NOW = datetime(2026, 3, 14, 12, 0, 0)


def _append_before_delete(monkeypatch, db, session_factory, location_id, level="max"):
    """Commit a report from another session right before `db` issues its DELETE.

    By then `db` has already read the log (the count, or the newest id), so
    the new row is one it never saw.
    """
    real_execute = db.execute
    appended = []

    async def execute(statement, *args, **kwargs):
        if getattr(statement, "is_delete", False) and not appended:
            async with session_factory() as organizer:
                await activity_log.append_activity(organizer, location_id, level, now=NOW)
                await organizer.commit()
            appended.append(level)
        return await real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    return appended


@pytest.mark.asyncio
class TestAppend:

    async def test_append_adds_entry_and_bumps_last_updated(self, db_session, hall_a):
        location = await activity_log.append_activity(db_session, hall_a.id, "min", now=NOW)
        await db_session.commit()

        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.crowd_level for e in entries] == ["min"]
        assert entries[0].timestamp == NOW
        assert entries[0].organizer_id == "organizer"
        assert location.last_updated == NOW

    async def test_append_keeps_insertion_order(self, db_session, hall_a):
        for level in ("max", "min", "moderate"):
            await activity_log.append_activity(db_session, hall_a.id, level, now=NOW)
        await db_session.commit()

        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.crowd_level for e in entries] == ["max", "min", "moderate"]

    async def test_append_records_organizer(self, db_session, hall_a):
        await activity_log.append_activity(db_session, hall_a.id, "max", "org-42")
        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert entries[0].organizer_id == "org-42"

    async def test_append_increments_score_by_one(self, db_session, hall_a):
        for level in ("min", "moderate", "max"):
            await activity_log.append_activity(db_session, hall_a.id, level)
        before = aggregate(await activity_log.load_entries(db_session, hall_a.id))

        await activity_log.append_activity(db_session, hall_a.id, "moderate")
        after = aggregate(await activity_log.load_entries(db_session, hall_a.id))

        assert after.moderate_count == before.moderate_count + 1
        assert after.min_count == before.min_count
        assert after.max_count == before.max_count
        assert after.total == before.total + 1

    @pytest.mark.parametrize("level", ["", "MIN", "busy", None, 3])
    async def test_invalid_level_rejected(self, db_session, hall_a, level):
        with pytest.raises(ValidationError) as exc:
            await activity_log.append_activity(db_session, hall_a.id, level)
        assert "min, moderate, or max" in exc.value.message

    async def test_unknown_location(self, db_session):
        with pytest.raises(NotFoundError):
            await activity_log.append_activity(db_session, "missing-id", "min")

    async def test_soft_deleted_location_accepts_reports(self, db_session, hall_a):
        location = await db_session.get(Location, hall_a.id)
        location.is_active = False
        await db_session.commit()

        await activity_log.append_activity(db_session, hall_a.id, "max")
        assert len(await activity_log.load_entries(db_session, hall_a.id)) == 1

    async def test_append_leaves_other_attributes_alone(self, db_session, session_factory, hall_a):
        # Another writer edits the hall while this session already holds it
        location = await db_session.get(Location, hall_a.id)
        async with session_factory() as other:
            row = await other.get(Location, hall_a.id)
            row.capacity = 500
            await other.commit()

        await activity_log.append_activity(db_session, location.id, "min")
        await db_session.commit()

        async with session_factory() as check:
            assert (await check.get(Location, hall_a.id)).capacity == 500


@pytest.mark.asyncio
class TestClear:

    async def test_clear_removes_everything(self, db_session, hall_a):
        for level in ("min", "min", "max"):
            await activity_log.append_activity(db_session, hall_a.id, level)

        location, cleared = await activity_log.clear_log(db_session, hall_a.id, now=NOW)
        await db_session.commit()

        assert cleared == 3
        assert location.last_updated == NOW
        assert await activity_log.load_entries(db_session, hall_a.id) == []

    async def test_clear_empty_log_is_invalid(self, db_session, hall_a):
        with pytest.raises(InvalidOperationError):
            await activity_log.clear_log(db_session, hall_a.id)

    async def test_clear_unknown_location(self, db_session):
        with pytest.raises(NotFoundError):
            await activity_log.clear_log(db_session, "missing-id")

    async def test_clear_keeps_report_landing_mid_clear(
        self, db_session, session_factory, hall_a, monkeypatch
    ):
        for level in ("min", "moderate"):
            await activity_log.append_activity(db_session, hall_a.id, level)
        await db_session.commit()
        appended = _append_before_delete(monkeypatch, db_session, session_factory, hall_a.id)

        _, cleared = await activity_log.clear_log(db_session, hall_a.id, now=NOW)
        await db_session.commit()

        assert appended == ["max"]
        assert cleared == 2
        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.crowd_level for e in entries] == ["max"]

    async def test_clear_only_touches_its_location(self, db_session, hall_a, hall_b):
        await activity_log.append_activity(db_session, hall_a.id, "min")
        await activity_log.append_activity(db_session, hall_b.id, "max")

        await activity_log.clear_log(db_session, hall_a.id)

        assert await activity_log.load_entries(db_session, hall_a.id) == []
        assert len(await activity_log.load_entries(db_session, hall_b.id)) == 1


@pytest.mark.asyncio
class TestPrune:

    async def test_prune_drops_entries_at_or_before_cutoff(self, db_session, hall_a):
        cutoff = NOW - timedelta(minutes=60)
        for minutes in (200, 60, 59, 1):
            await activity_log.append_activity(
                db_session, hall_a.id, "min", now=NOW - timedelta(minutes=minutes)
            )

        removed = await activity_log.prune_log(db_session, hall_a.id, cutoff, now=NOW)
        await db_session.commit()

        assert removed == 2
        remaining = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.timestamp for e in remaining] == [
            NOW - timedelta(minutes=59),
            NOW - timedelta(minutes=1),
        ]

    async def test_prune_without_expired_entries_writes_nothing(
        self, db_session, session_factory, hall_a
    ):
        await activity_log.append_activity(
            db_session, hall_a.id, "max", now=NOW - timedelta(minutes=5)
        )
        await db_session.commit()

        removed = await activity_log.prune_log(
            db_session, hall_a.id, NOW - timedelta(minutes=60), now=NOW + timedelta(hours=1)
        )
        await db_session.commit()

        assert removed == 0
        async with session_factory() as check:
            location = await check.get(Location, hall_a.id)
            assert location.last_updated == NOW - timedelta(minutes=5)

    async def test_prune_keeps_report_landing_mid_prune(
        self, db_session, session_factory, hall_a, monkeypatch
    ):
        await activity_log.append_activity(
            db_session, hall_a.id, "min", now=NOW - timedelta(hours=3)
        )
        await db_session.commit()
        appended = _append_before_delete(monkeypatch, db_session, session_factory, hall_a.id)

        removed = await activity_log.prune_log(
            db_session, hall_a.id, NOW - timedelta(hours=1), now=NOW
        )
        await db_session.commit()

        assert appended == ["max"]
        assert removed == 1
        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.crowd_level for e in entries] == ["max"]


@pytest.mark.asyncio
class TestReplace:

    async def test_replace_rewrites_log(self, db_session, hall_a):
        await activity_log.append_activity(db_session, hall_a.id, "min")

        new_log = [
            {"crowd_level": "max", "timestamp": NOW - timedelta(minutes=2)},
            {"crowdLevel": "moderate", "timestamp": NOW - timedelta(minutes=1), "organizerId": "o-1"},
        ]
        location = await activity_log.replace_log(db_session, hall_a.id, new_log, now=NOW)
        await db_session.commit()

        entries = await activity_log.load_entries(db_session, hall_a.id)
        assert [e.crowd_level for e in entries] == ["max", "moderate"]
        assert entries[1].organizer_id == "o-1"
        assert location.last_updated == NOW

    async def test_replace_with_empty_log(self, db_session, hall_a):
        await activity_log.append_activity(db_session, hall_a.id, "min")
        await activity_log.replace_log(db_session, hall_a.id, [])

        result = await db_session.execute(
            select(ActivityEntry).where(ActivityEntry.location_id == hall_a.id)
        )
        assert result.scalars().all() == []

    async def test_replace_validates_levels(self, db_session, hall_a):
        with pytest.raises(ValidationError):
            await activity_log.replace_log(db_session, hall_a.id, [{"crowd_level": "huge"}])
