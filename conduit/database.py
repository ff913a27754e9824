from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.exceptions import conflict_from_integrity_error
from conduit.middleware import install_query_counter


def _engine_options(url: str) -> dict:
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )
    if url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT}
    return options


def enable_sqlite_foreign_keys(engine) -> None:
    """
    Turn on ``PRAGMA foreign_keys`` for every new SQLite connection so that
    ``ON DELETE CASCADE`` behaves the same as on PostgreSQL.  No-op for
    other dialects.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Module-level engine variable allows tests to override with a test engine.
# It owns the connection pool shared by every request.
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

install_query_counter(engine)
enable_sqlite_foreign_keys(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def flush_or_conflict(db: AsyncSession) -> None:
    """Flush pending writes, re-raising constraint violations as domain errors."""
    try:
        await db.flush()
    except IntegrityError as exc:
        raise conflict_from_integrity_error(exc) from exc


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Return the session factory used for work that needs its own sessions,
    such as the concurrent count/data queries of a listing.
    """
    return async_session
