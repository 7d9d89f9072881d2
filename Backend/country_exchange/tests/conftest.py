from typing import Callable, List, Optional, Sequence
import httpx
import pytest

from db import Database
from country_exchange.errors import ExternalSourceFailure
from country_exchange.repository import CountryRepository
from country_exchange.schema import (
    CurrencyEntry,
    ExchangeRateSnapshot,
    RawExternalCountry,
)
from country_exchange.status import StatusTracker


class FixedRandom:
    """random() always returns ``value``; the GDP multiplier becomes 1000 + value * 1000."""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class SequenceRandom:
    def __init__(self, values: Sequence[float]):
        self.values = list(values)

    def random(self) -> float:
        return self.values.pop(0)


class FakeCountriesSource:
    source_name = "Fake Countries"

    def __init__(
        self,
        countries: Optional[List[RawExternalCountry]] = None,
        error: Optional[Exception] = None,
    ):
        self.countries = countries or []
        self.error = error
        self.calls = 0

    async def fetch_countries(self) -> List[RawExternalCountry]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.countries)


class FakeRatesSource:
    source_name = "Fake Rates"

    def __init__(
        self,
        rates: Optional[dict] = None,
        error: Optional[Exception] = None,
    ):
        self.rates = rates or {}
        self.error = error
        self.calls = 0

    async def fetch_exchange_rates(self) -> ExchangeRateSnapshot:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ExchangeRateSnapshot(base="USD", rates=self.rates)


def make_country(
    name: str,
    population: int = 1000,
    codes: Sequence[str] = ("ABC",),
    region: Optional[str] = "Testregion",
) -> RawExternalCountry:
    currencies = [CurrencyEntry(code=code, name=code, symbol=code) for code in codes]
    return RawExternalCountry(
        name=name,
        capital=f"{name} City",
        region=region,
        population=population,
        flag=f"https://flags.example/{name.lower()}.png",
        currencies=currencies or None,
    )


def source_down(name: str = "Fake Countries") -> ExternalSourceFailure:
    return ExternalSourceFailure(name, "HTTP 500: Internal Server Error", status_code=500)


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def database(database_url):
    db = Database(database_url)
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database) -> CountryRepository:
    return CountryRepository(database)


@pytest.fixture
def tracker(database) -> StatusTracker:
    return StatusTracker(database)
