"""Database engine, session factory, and declarative base.

All tables live in a single schema. Request handlers get a session through
the `get_db()` dependency; background work (the retention sweeper, the CLI)
opens its own sessions from `async_session`.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase

from crowd_balance.config import settings
from crowd_balance.middleware.exceptions import StoreError

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


# ── Session dependency ──────────────────────────────────────

async def get_db() -> AsyncSession:
    """Yield a session that commits on success and rolls back on error.

    Connection-level failures leave as StoreError so the client gets the
    generic storage message instead of a driver error.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except OperationalError as e:
            await session.rollback()
            raise StoreError() from e
        except Exception:
            await session.rollback()
            raise
