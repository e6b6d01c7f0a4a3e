# backend/aihub/database.py

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from aihub.core.config import settings

# SQLAlchemy Base
Base = declarative_base()


def make_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Async engine. On SQLite:

    * foreign keys are switched on so chat deletes cascade
    * transactions start with ``BEGIN IMMEDIATE``; concurrent writers then
      queue on the busy timeout instead of failing a lock upgrade
    """
    engine = create_async_engine(url, future=True, echo=echo)
    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            # driver-level BEGIN off, emitted below instead
            dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url, echo=settings.debug_sql)

# Session factory
AsyncSessionLocal = make_session_factory(engine)


# FastAPI dependency for per-request DB sessions
async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


# Orchestrator and background jobs open their own short-lived sessions
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


async def create_all(bind: AsyncEngine = engine) -> None:
    from aihub import models  # noqa: F401  (registers tables)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
