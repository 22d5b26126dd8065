import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bug_tracker.config import Settings
from bug_tracker.models.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and session factory for the lifetime of the app.

    Built once by the lifespan handler and disposed on shutdown. Raises
    ConfigurationError when DB_URL / DB_NAME are not set.
    """

    def __init__(self, settings: Settings):
        db_url, db_name = settings.require_database()
        url = make_url(db_url).set(database=db_name)
        self.name = db_name
        engine_kwargs: dict = {}
        if url.get_backend_name() == "sqlite" and db_name == ":memory:":
            # One shared connection, otherwise every checkout sees an empty database.
            engine_kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    async def ping(self) -> None:
        """Connectivity self-check run at startup."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Ping failed for database %s", self.name)
            raise
        logger.info("Connected to database: %s", self.name)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Closed database connections for %s", self.name)
