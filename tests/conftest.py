"""
Test infrastructure for the Conduit API.

Strategy
--------
- SQLite via aiosqlite eliminates the need for a running Postgres instance
  in CI, keeping the suite fast and self-contained.
- The database lives in a temporary file and the engine uses NullPool, so
  every session gets its own connection.  Listings run their count and data
  queries concurrently on separate sessions; a shared in-memory connection
  would hide that.
- Foreign keys are switched on per connection so ON DELETE CASCADE behaves
  like PostgreSQL.
- The app's get_db and get_session_factory dependencies are overridden so
  every test-time request uses the test engine.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state.
- bcrypt runs with the minimum cost factor; hashing speed is irrelevant here.
"""
import os
import tempfile
from pathlib import Path

os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import conduit.models  # noqa: F401  (registers tables on Base.metadata)
from conduit.database import Base, enable_sqlite_foreign_keys, get_db, get_session_factory
from conduit.main import app
from conduit.middleware import install_query_counter

# ---------------------------------------------------------------------------
# Test database engine: SQLite file with aiosqlite
# ---------------------------------------------------------------------------

TEST_DB_PATH = Path(tempfile.gettempdir()) / f"conduit-test-{os.getpid()}.db"
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

engine_test = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

install_query_counter(engine_test)
enable_sqlite_foreign_keys(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency overrides
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def override_get_session_factory():
    return async_session_test


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = override_get_session_factory


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call services directly.

    Listing services open their own sessions, so tests must commit what
    they seed before listing it.
    """
    async with async_session_test() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """The test session factory, for service calls that open their own sessions."""
    return async_session_test


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def small_pool():
    """
    Point the app at an engine whose pool holds two connections and gives up
    after two seconds, so a request that holds one connection while waiting
    for more starves under concurrency.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL, pool_size=2, max_overflow=0, pool_timeout=2
    )
    enable_sqlite_foreign_keys(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def small_pool_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = small_pool_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    yield engine
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    await engine.dispose()


@pytest.fixture
def sql_log():
    """Record every SQL statement sent through the test engine."""
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine_test.sync_engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine_test.sync_engine, "before_cursor_execute", _record)


@pytest.fixture
def register_user(async_client: AsyncClient):
    """
    Return a coroutine that registers *username* through the API and yields
    the user view plus ready-made auth headers.
    """
    async def _register(username: str) -> dict:
        resp = await async_client.post("/users", json={"user": {
            "username": username,
            "email": f"{username}@example.com",
            "password": "password123",
        }})
        assert resp.status_code == 201, resp.text
        user = resp.json()["user"]
        user["headers"] = {"Authorization": f"Token {user['token']}"}
        return user

    return _register


@pytest.fixture
def create_article(async_client: AsyncClient):
    """Return a coroutine that creates an article as *author* through the API."""
    async def _create(author: dict, title: str, tags: list[str] | None = None, body: str = "Body text") -> dict:
        resp = await async_client.post(
            "/articles",
            json={"article": {
                "title": title,
                "description": f"About {title}",
                "body": body,
                "tagList": tags or [],
            }},
            headers=author["headers"],
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["article"]

    return _create
