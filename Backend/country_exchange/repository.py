import logging
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from db import Database
from .enums import SortMode
from .schema import Country, CountryCreate, CountryFilters


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CountryRepository:
    """Countries keyed by case-insensitive name."""

    def __init__(self, database: Database, model=Country):
        self.database = database
        self.model = model

    def _by_name(self, name: str):
        return select(self.model).where(func.lower(self.model.name) == name.lower())

    async def _write(self, session: AsyncSession, data: CountryCreate) -> Country:
        async with session.begin():
            result = await session.exec(self._by_name(data.name).with_for_update())
            country = result.first()
            if country is None:
                country = self.model(**data.model_dump())
                session.add(country)
            else:
                for field, value in data.model_dump().items():
                    setattr(country, field, value)
            country.last_refreshed_at = utc_now()
        return country

    async def upsert(self, data: CountryCreate) -> Country:
        """Insert, or overwrite every field of the row whose name matches.

        Lookup and write share one transaction. Losing an insert race to a
        concurrent upsert of the same name (another process) retries once
        as an update.
        """
        async with self.database.write_lock:
            async with self.database.session() as session:
                try:
                    return await self._write(session, data)
                except IntegrityError:
                    logger.info(f"Concurrent insert of {data.name}, retrying as update")
            async with self.database.session() as session:
                return await self._write(session, data)

    async def find_many(self, filters: Optional[CountryFilters] = None) -> List[Country]:
        filters = filters or CountryFilters()
        statement = select(self.model)
        if filters.region:
            statement = statement.where(
                func.lower(self.model.region) == filters.region.lower()
            )
        if filters.currency:
            statement = statement.where(
                func.lower(self.model.currency_code) == filters.currency.lower()
            )
        if filters.sort == SortMode.GDP_DESC:
            statement = statement.order_by(
                self.model.estimated_gdp.is_(None), self.model.estimated_gdp.desc()
            )
        elif filters.sort == SortMode.NAME_ASC:
            statement = statement.order_by(self.model.name.asc())

        async with self.database.session() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def top_by_gdp(self, limit: int = 5) -> List[Country]:
        countries = await self.find_many(CountryFilters(sort=SortMode.GDP_DESC))
        return countries[:limit]

    async def find_by_name(self, name: str) -> Optional[Country]:
        async with self.database.session() as session:
            result = await session.exec(self._by_name(name))
            return result.first()

    async def delete_by_name(self, name: str) -> bool:
        """True when a row was actually removed."""
        async with self.database.write_lock, self.database.session() as session:
            async with session.begin():
                result = await session.exec(
                    delete(self.model).where(
                        func.lower(self.model.name) == name.lower()
                    )
                )
            return result.rowcount > 0

    async def count(self) -> int:
        async with self.database.session() as session:
            result = await session.exec(select(func.count()).select_from(self.model))
            return result.one()

    async def last_refreshed_at(self) -> Optional[datetime]:
        async with self.database.session() as session:
            result = await session.exec(select(func.max(self.model.last_refreshed_at)))
            return result.one()
