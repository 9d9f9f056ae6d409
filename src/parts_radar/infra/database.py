"""Async database engine and session management.

The app shares one engine between request sessions and the audit trail,
which opens its own short sessions.  On SQLite that means two writers on
one file, so the engine waits for the write lock instead of failing and the
journal runs in WAL mode.
"""

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from parts_radar.app.config import get_settings

# Seconds a SQLite connection waits for the write lock
SQLITE_LOCK_TIMEOUT = 30


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for *database_url*.

    SQLite connections enforce foreign keys, so quotes can only point at
    stored requests and partners.  Other backends get a small pool checked
    with a ping before use.
    """
    if not _is_sqlite(database_url):
        return create_async_engine(
            database_url, pool_size=5, max_overflow=10, pool_pre_ping=True,
        )

    engine = create_async_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": SQLITE_LOCK_TIMEOUT},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


async def prepare_schema(bind: AsyncEngine) -> None:
    """Create missing tables; on SQLite also switch the journal to WAL."""
    # Register every model with Base.metadata
    import parts_radar.domain.models  # noqa: F401

    async with bind.begin() as conn:
        if bind.dialect.name == "sqlite":
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text(f"PRAGMA busy_timeout={SQLITE_LOCK_TIMEOUT * 1000}"))
        await conn.run_sync(Base.metadata.create_all)


settings = get_settings()

engine = build_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create all tables at startup. No migrations are run."""
    await prepare_schema(engine)
