from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from typing import Optional
import os

from schoolnews.config import DEFAULT_DATABASE_URL


class Base(DeclarativeBase):
    pass


class Database:
    """Owns the async engine and session factory for one database URL."""

    def __init__(self, database_url: Optional[str] = None):
        if database_url is None:
            database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

        # Convert sync sqlite URL to async
        if database_url.startswith("sqlite:///"):
            database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker] = None

    async def init(self) -> None:
        # Ensure database directory exists
        if self.database_url.startswith("sqlite+aiosqlite:///") and not self.database_url.endswith(":memory:"):
            db_path = self.database_url.replace("sqlite+aiosqlite:///", "")
            db_dir = os.path.dirname(db_path)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)

        engine_kwargs = {}
        if self.database_url.startswith("sqlite"):
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }

        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Import models to register them with Base.metadata
        from schoolnews import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def session(self) -> AsyncSession:
        if self.session_maker is None:
            raise RuntimeError("Database.init() has not been called")
        return self.session_maker()

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_maker = None
