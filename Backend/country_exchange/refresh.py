"""Refresh cycle: fetch both upstreams, derive currency/rate/GDP per country,
upsert every record, then reconcile the status aggregate from storage.

Failure policy:
  * country source fails (or returns nothing) -> ExternalSourceFailure, no writes
  * rate source fails -> every rate and GDP is None, the cycle carries on
  * one record fails for any reason -> reported in ``errors``, siblings continue
"""

import logging
from typing import List, NamedTuple, Optional
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .currency import distinct_currency_codes, lookup_rate, resolve_currency
from .enums import RefreshState
from .errors import ExternalSourceFailure, RecordValidationError
from .estimator import RandomSource, estimate_gdp
from .fetch import CountriesSource, ExchangeRateSource
from .repository import CountryRepository
from .schema import (
    Country,
    CountryCreate,
    ExchangeRateSnapshot,
    RawExternalCountry,
    RefreshResult,
)
from .status import StatusTracker


logger = logging.getLogger(__name__)


class RecordOutcome(NamedTuple):
    name: str
    country: Optional[Country] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_record(
    raw: RawExternalCountry,
    currency_code: Optional[str],
    exchange_rate: Optional[float],
    estimated_gdp: Optional[float],
) -> CountryCreate:
    try:
        return CountryCreate(
            name=raw.name,
            capital=raw.capital,
            region=raw.region,
            population=raw.population,
            currency_code=currency_code,
            exchange_rate=exchange_rate,
            estimated_gdp=estimated_gdp,
            flag_url=raw.flag,
        )
    except ValidationError as exc:
        details = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "record"
            details[field] = error["msg"]
        raise RecordValidationError(details) from exc


class RefreshCycle:
    """One run of the pipeline. The rate snapshot lives only as long as the cycle."""

    def __init__(
        self,
        countries_source: CountriesSource,
        rates_source: ExchangeRateSource,
        repository: CountryRepository,
        tracker: StatusTracker,
        rng: Optional[RandomSource] = None,
    ):
        self.countries_source = countries_source
        self.rates_source = rates_source
        self.repository = repository
        self.tracker = tracker
        self.rng = rng
        self.state = RefreshState.IDLE
        self.snapshot: Optional[ExchangeRateSnapshot] = None
        self.outcomes: List[RecordOutcome] = []

    def _enter(self, state: RefreshState) -> None:
        logger.debug(f"Refresh {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> RefreshResult:
        countries = await self.fetch_countries()
        try:
            self.snapshot = await self.fetch_rates(countries)

            self._enter(RefreshState.PROCESSING)
            for raw in countries:
                self.outcomes.append(await self.process_record(raw))

            return await self.finalize()
        finally:
            self.snapshot = None

    async def fetch_countries(self) -> List[RawExternalCountry]:
        self._enter(RefreshState.FETCHING_COUNTRIES)
        try:
            countries = await self.countries_source.fetch_countries()
        except ExternalSourceFailure as exc:
            logger.warning(f"Refresh aborted, country source failed: {exc}")
            self._enter(RefreshState.FAILED)
            raise

        if not countries:
            self._enter(RefreshState.FAILED)
            raise ExternalSourceFailure(
                self.countries_source.source_name, "No countries data received"
            )
        return countries

    async def fetch_rates(
        self, countries: List[RawExternalCountry]
    ) -> ExchangeRateSnapshot:
        self._enter(RefreshState.FETCHING_RATES)
        codes = distinct_currency_codes(countries)
        if not codes:
            return ExchangeRateSnapshot()
        try:
            snapshot = await self.rates_source.fetch_exchange_rates()
        except Exception as exc:
            logger.warning(
                f"Exchange rates unavailable, proceeding with null rates for "
                f"{len(codes)} currencies: {exc}"
            )
            return ExchangeRateSnapshot()
        missing = [code for code in codes if code not in snapshot.rates]
        if missing:
            logger.info(f"No rate for {len(missing)} currencies: {', '.join(missing)}")
        return snapshot

    async def process_record(self, raw: RawExternalCountry) -> RecordOutcome:
        try:
            code = resolve_currency(raw)
            rate = lookup_rate(code, self.snapshot or ExchangeRateSnapshot())
            gdp = estimate_gdp(raw.population, rate, self.rng)
            country = await self.repository.upsert(build_record(raw, code, rate, gdp))
        except (RecordValidationError, SQLAlchemyError) as exc:
            message = f"Failed to process country {raw.name}: {exc}"
            logger.warning(message)
            return RecordOutcome(raw.name, error=message)
        except Exception as exc:
            message = f"Failed to process country {raw.name}: {exc}"
            logger.exception(message)
            return RecordOutcome(raw.name, error=message)
        return RecordOutcome(raw.name, country=country)

    async def finalize(self) -> RefreshResult:
        self._enter(RefreshState.FINALIZING)
        processed = sum(1 for outcome in self.outcomes if outcome.ok)
        errors = [outcome.error for outcome in self.outcomes if not outcome.ok]

        if processed > 0:
            try:
                await self.tracker.recompute_from_storage()
            except SQLAlchemyError as exc:
                message = f"Failed to update system status: {exc}"
                logger.error(message)
                errors.append(message)

        result = RefreshResult(success=processed > 0, processed=processed, errors=errors)
        logger.info(
            f"Refresh finished: {processed} processed, {len(errors)} errors"
        )
        self._enter(RefreshState.IDLE)
        return result


class RefreshService:
    """Builds a fresh RefreshCycle for every refresh request."""

    def __init__(
        self,
        countries_source: CountriesSource,
        rates_source: ExchangeRateSource,
        repository: CountryRepository,
        tracker: StatusTracker,
        rng: Optional[RandomSource] = None,
    ):
        self.countries_source = countries_source
        self.rates_source = rates_source
        self.repository = repository
        self.tracker = tracker
        self.rng = rng

    def new_cycle(self) -> RefreshCycle:
        return RefreshCycle(
            self.countries_source,
            self.rates_source,
            self.repository,
            self.tracker,
            self.rng,
        )

    async def refresh(self) -> RefreshResult:
        return await self.new_cycle().run()
