import time
from typing import AsyncGenerator

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.shared.core.config import Settings, get_settings

logger = structlog.get_logger()

SLOW_QUERY_THRESHOLD_SECONDS = 0.2


def engine_options(settings: Settings) -> dict:
    """
    Keyword arguments for create_async_engine.

    Postgres runs behind a transaction pooler, so asyncpg's statement cache is
    off and pooled connections are pinged and recycled. SQLite (local runs and
    tests) gets no pool at all.
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        return {"poolclass": NullPool, "connect_args": {"check_same_thread": False}}

    options = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {"statement_cache_size": 0} if "asyncpg" in url else {},
    }
    if settings.TESTING:
        options["poolclass"] = NullPool
    else:
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


settings = get_settings()
engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, **engine_options(settings))


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _start_query_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _log_slow_query(conn, _cursor, statement, _parameters, _context, _executemany):
    elapsed = time.perf_counter() - conn.info["query_start_time"].pop(-1)
    if elapsed > SLOW_QUERY_THRESHOLD_SECONDS:
        logger.warning("slow_query_detected", duration_seconds=round(elapsed, 3), statement=statement[:200])


async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Services commit explicitly; anything left
    uncommitted when the request fails is rolled back here.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
