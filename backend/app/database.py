from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.core.metrics import db_pool_checked_in, db_pool_checked_out, db_pool_overflow, db_pool_size

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=30,
    pool_recycle=1800,
    pool_pre_ping=True,
)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _record_pool_state(*_args) -> None:
    """Mirror the connection pool counters into the db_pool_* gauges."""
    pool = engine.sync_engine.pool
    db_pool_size.set(pool.size())
    db_pool_checked_in.set(pool.checkedin())
    db_pool_checked_out.set(pool.checkedout())
    db_pool_overflow.set(pool.overflow())


for _event_name in ("checkout", "checkin"):
    event.listen(engine.sync_engine, _event_name, _record_pool_state)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """One session per request; services commit their own unit of work."""
    async with async_session() as session:
        yield session
