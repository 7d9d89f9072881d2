"""System status singleton (row id 1)"""

import logging
from sqlalchemy import case, func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from db import Database
from .schema import Country, SystemStatus


logger = logging.getLogger(__name__)

STATUS_ID = 1


class StatusTracker:
    def __init__(self, database: Database):
        self.database = database

    async def _row(self, session: AsyncSession) -> SystemStatus:
        status = await session.get(SystemStatus, STATUS_ID)
        if status is None:
            status = SystemStatus(id=STATUS_ID, total_countries=0)
            session.add(status)
        return status

    async def get_status(self) -> SystemStatus:
        async with self.database.session() as session:
            async with session.begin():
                return await self._row(session)

    async def recompute_from_storage(self) -> SystemStatus:
        """Overwrite the aggregate with the row count and newest refresh time
        actually stored, regardless of what any cycle believes it wrote."""
        async with self.database.write_lock, self.database.session() as session:
            async with session.begin():
                total = (
                    await session.exec(select(func.count()).select_from(Country))
                ).one()
                last_refresh = (
                    await session.exec(select(func.max(Country.last_refreshed_at)))
                ).one()
                status = await self._row(session)
                status.total_countries = total
                status.last_refreshed_at = last_refresh
        logger.info(
            f"Status recomputed: {status.total_countries} countries, "
            f"last refreshed {status.last_refreshed_at}"
        )
        return status

    async def _adjust(self, new_total) -> SystemStatus:
        async with self.database.write_lock, self.database.session() as session:
            async with session.begin():
                await self._row(session)
                await session.flush()
                await session.exec(
                    update(SystemStatus)
                    .where(SystemStatus.id == STATUS_ID)
                    .values(total_countries=new_total)
                )
            async with session.begin():
                status = await session.get(
                    SystemStatus, STATUS_ID, populate_existing=True
                )
        return status

    async def increment_on_insert(self) -> SystemStatus:
        return await self._adjust(SystemStatus.total_countries + 1)

    async def decrement_on_delete(self) -> SystemStatus:
        return await self._adjust(
            case(
                (SystemStatus.total_countries > 0, SystemStatus.total_countries - 1),
                else_=0,
            )
        )
