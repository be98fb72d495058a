"""Background task wiring: owns the retention sweeper's lifecycle.

Uses FastAPI's lifespan context to start the sweeper on startup and stop it
on shutdown. The sweeper is a plain asyncio task; nothing is scheduled as a
side effect of importing a module.

Usage:
    from crowd_balance.services.scheduler import lifespan
    app = FastAPI(lifespan=lifespan, ...)

Configuration (.env):
    RETENTION_HORIZON_MINUTES=60
    SWEEP_INTERVAL_SECONDS=300
    SWEEPER_ENABLED=true
    SWEEP_LOCK_ENABLED=false   (true when running several workers)
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from crowd_balance.config import settings
from crowd_balance.database import async_session
from crowd_balance.services.retention import RetentionSweeper
from crowd_balance.utils.locks import RedisSweepLock
from crowd_balance.utils.redis_client import close_redis, get_redis

logger = logging.getLogger("crowd_balance.scheduler")


async def build_sweeper() -> RetentionSweeper:
    """Create a sweeper configured from settings."""
    lock = None
    if settings.sweep_lock_enabled:
        lock = RedisSweepLock(await get_redis(), ttl_seconds=settings.sweep_lock_ttl_seconds)

    return RetentionSweeper(
        async_session,
        horizon=timedelta(minutes=settings.retention_horizon_minutes),
        interval=settings.sweep_interval_seconds,
        per_location_timeout=settings.sweep_location_timeout_seconds,
        cycle_timeout=settings.sweep_cycle_timeout_seconds,
        lock=lock,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the sweeper on startup, stop it on shutdown."""
    sweeper = await build_sweeper()
    app.state.sweeper = sweeper

    if settings.sweeper_enabled:
        sweeper.start()
    else:
        logger.info("Retention sweeper disabled by configuration")

    try:
        yield
    finally:
        await sweeper.stop()
        await close_redis()
