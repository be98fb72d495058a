"""Retention sweeper: keeps every location's activity log inside the horizon.

On a fixed interval the sweeper lists every location (active or not) and
deletes log entries older than `now - horizon`. Each location is pruned in
its own session and transaction, so one failing location is logged and
skipped while the rest of the cycle carries on; it is retried on the next
tick. If the locations cannot even be listed the cycle is abandoned and the
failure only goes to the log.

The prune itself is a predicated DELETE (see activity_log.prune_log), so a
crowd report that arrives mid-sweep is never overwritten.

Lifecycle is explicit: `start()` spawns the ticker task and `stop()` cancels
it; nothing runs on import. A tick that finds the previous cycle still
running is skipped instead of queued. Tests call `run_once()` directly with
a fake clock.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crowd_balance.models.location import Location
from crowd_balance.services.activity_log import prune_log
from crowd_balance.utils.clock import utcnow

logger = logging.getLogger("crowd_balance.retention")


class SweeperState(str, enum.Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"


class SweepLock(Protocol):
    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...


@dataclass
class SweepFailure:
    location_id: str
    location_name: str
    error: str


@dataclass
class SweepReport:
    started_at: datetime
    cutoff: datetime
    finished_at: datetime | None = None
    locations_scanned: int = 0
    locations_pruned: int = 0
    entries_removed: int = 0
    failures: list[SweepFailure] = field(default_factory=list)
    aborted: bool = False


class RetentionSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        horizon: timedelta,
        interval: float,
        clock: Callable[[], datetime] = utcnow,
        per_location_timeout: float | None = None,
        cycle_timeout: float | None = None,
        lock: SweepLock | None = None,
    ):
        self._session_factory = session_factory
        self.horizon = horizon
        self.interval = interval
        self._clock = clock
        self._per_location_timeout = per_location_timeout
        self._cycle_timeout = cycle_timeout
        self._lock = lock

        self._sweeping = False
        self._ticker: asyncio.Task | None = None
        self._cycle: asyncio.Task | None = None

    @property
    def state(self) -> SweeperState:
        return SweeperState.SWEEPING if self._sweeping else SweeperState.IDLE

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    # ── One cycle ────────────────────────────────────────────

    async def run_once(self) -> SweepReport | None:
        """Run a single sweep cycle.

        Returns None when the cycle was skipped because another one is in
        progress (in this process, or in another worker holding the lock).
        """
        if self._sweeping:
            logger.warning("Sweep already in progress, skipping")
            return None

        self._sweeping = True
        try:
            if self._lock is not None and not await self._lock.acquire():
                logger.info("Sweep lock held by another worker, skipping")
                return None
            try:
                return await self._bounded_sweep()
            finally:
                if self._lock is not None:
                    await self._lock.release()
        finally:
            self._sweeping = False

    async def _bounded_sweep(self) -> SweepReport:
        now = self._clock()
        report = SweepReport(started_at=now, cutoff=now - self.horizon)
        logger.info("Starting activity log sweep (cutoff %s)", report.cutoff.isoformat())

        try:
            if self._cycle_timeout:
                await asyncio.wait_for(self._sweep(report), self._cycle_timeout)
            else:
                await self._sweep(report)
        except asyncio.TimeoutError:
            report.aborted = True
            logger.error(
                "Sweep exceeded %.0fs, stopped after %d locations",
                self._cycle_timeout,
                report.locations_scanned,
            )

        report.finished_at = self._clock()
        logger.info(
            "Activity log sweep complete: %d locations, %d pruned, %d entries removed, %d failed",
            report.locations_scanned,
            report.locations_pruned,
            report.entries_removed,
            len(report.failures),
        )
        return report

    async def _sweep(self, report: SweepReport) -> None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Location.id, Location.name).order_by(Location.created_at)
                )
                targets = [(row[0], row[1]) for row in result.all()]
        except Exception:
            logger.exception("Could not list locations, abandoning sweep")
            report.aborted = True
            return

        for location_id, name in targets:
            report.locations_scanned += 1
            cutoff = self._clock() - self.horizon
            try:
                if self._per_location_timeout:
                    removed = await asyncio.wait_for(
                        self._prune_location(location_id, cutoff),
                        self._per_location_timeout,
                    )
                else:
                    removed = await self._prune_location(location_id, cutoff)
            except asyncio.TimeoutError:
                logger.error("Timed out pruning location %s", name)
                report.failures.append(SweepFailure(location_id, name, "timeout"))
                continue
            except Exception as e:
                logger.exception("Failed to prune location %s", name)
                report.failures.append(SweepFailure(location_id, name, str(e)[:200]))
                continue

            if removed:
                report.locations_pruned += 1
                report.entries_removed += removed
                logger.info('Location "%s": removed %d expired entries', name, removed)
            else:
                logger.debug('Location "%s": nothing to prune', name)

    async def _prune_location(self, location_id: str, cutoff: datetime) -> int:
        async with self._session_factory() as db:
            try:
                removed = await prune_log(db, location_id, cutoff, now=self._clock())
                await db.commit()
                return removed
            except Exception:
                await db.rollback()
                raise

    # ── Background lifecycle ─────────────────────────────────

    def start(self) -> None:
        if self.is_running:
            return
        self._ticker = asyncio.create_task(self._tick_loop(), name="retention-sweeper")
        logger.info(
            "Retention sweeper started (every %ss, horizon %s)", self.interval, self.horizon
        )

    async def stop(self) -> None:
        for task in (self._ticker, self._cycle):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ticker = None
        self._cycle = None
        logger.info("Retention sweeper stopped")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._cycle is not None and not self._cycle.done():
                logger.warning("Previous sweep still running, skipping this tick")
                continue
            self._cycle = asyncio.create_task(self._guarded_run())

    async def _guarded_run(self) -> None:
        try:
            await self.run_once()
        except Exception:
            logger.exception("Unhandled error in activity log sweep")
