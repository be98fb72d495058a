import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crowd_balance.config import settings
from crowd_balance.middleware.exceptions import register_exception_handlers
from crowd_balance.routers import health, locations
from crowd_balance.services.scheduler import lifespan

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="Crowd Balance",
    description="Venue crowd-level reporting and activity history",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
# The mobile client polls from Expo dev servers and device builds
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(locations.router, prefix="/locations", tags=["locations"])
