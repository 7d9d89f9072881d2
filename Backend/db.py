"""Base SQL Engine"""

import asyncio
import logging
from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from country_exchange.schema import SystemStatus


logger = logging.getLogger(__name__)


class Database:
    """Connection pool shared by every request of the process.

    Created and disposed by the application lifespan and handed to whatever
    needs storage; nothing reaches it through a module global.
    """

    def __init__(self, url: str, echo: bool = False):
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.url = url
        self.engine = create_async_engine(
            url, echo=echo, pool_pre_ping=True, connect_args=connect_args
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        # SQLite takes one writer at a time; read-then-write transactions queue here
        self.write_lock = asyncio.Lock()

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def init(self) -> None:
        """Create tables and the singleton status row."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, checkfirst=True)
        async with self.session() as session:
            if await session.get(SystemStatus, 1) is None:
                session.add(SystemStatus(id=1, total_countries=0))
                await session.commit()
        logger.info("Database ready")

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    """Database handle owned by the running application."""
    return request.app.state.database
