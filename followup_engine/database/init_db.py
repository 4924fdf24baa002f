"""
Lead store engine setup and session scope
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from .models import Base

logger = structlog.get_logger("followup.database")


class DatabaseManager:
    """Owns the async engine for the lead store; one session per unit of work"""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.echo = settings.debug if echo is None else echo
        self.engine = None
        self.session_factory = None

    async def init_database(self):
        """Create the engine and any missing tables"""
        is_sqlite = self.database_url.startswith("sqlite")
        engine_kwargs = {"echo": self.echo, "pool_pre_ping": True}

        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
            if ":memory:" in self.database_url or self.database_url.endswith("sqlite+aiosqlite://"):
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        if is_sqlite:
            @event.listens_for(self.engine.sync_engine, "connect")
            def _sqlite_pragmas(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.close()

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized", url=self.database_url.split("@")[-1])

    @asynccontextmanager
    async def get_session(self):
        """Session that commits on success and rolls back on any error"""
        if not self.session_factory:
            await self.init_database()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self):
        """Dispose of the engine; a later get_session() re-initialises it"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
