"""Health check endpoints for load balancers and monitoring."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from crowd_balance.config import settings
from crowd_balance.database import engine
from crowd_balance.utils.clock import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight liveness check (no DB/Redis access)."""
    return {
        "status": "ok",
        "service": "crowd-balance",
        "timestamp": utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: database, Redis (when the sweep lock uses it) and
    the retention sweeper task."""
    checks = {
        "service": "ok",
        "database": "unknown",
    }
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if settings.sweep_lock_enabled:
        try:
            from crowd_balance.utils.redis_client import get_redis

            redis_client = await get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is None:
        checks["sweeper"] = "not started"
    else:
        checks["sweeper"] = sweeper.state.value if sweeper.is_running else "stopped"

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "crowd-balance",
            "checks": checks,
            "timestamp": utcnow().isoformat(),
        },
    )
