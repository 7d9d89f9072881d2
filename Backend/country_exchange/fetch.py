"""Fetch data from external API"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional
import httpx

from . import config
from .errors import ExternalSourceFailure
from .schema import CurrencyEntry, ExchangeRateSnapshot, RawExternalCountry


logger = logging.getLogger(__name__)

HEADERS = {"Accept": "application/json", "User-Agent": "Country-Currency-API/1.0"}


class JSONSource:
    """GET a JSON document from one upstream with a bounded wait.

    A shared ``httpx.AsyncClient`` may be passed in; otherwise a client is
    opened for the single call.
    """

    source_name = "External API"

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = config.API_TIMEOUT if timeout is None else timeout
        self.client = client

    async def get_json(self) -> Any:
        logger.info(f"Fetching {self.source_name}: {self.url}")
        try:
            if self.client is not None:
                response = await asyncio.wait_for(
                    self.client.get(self.url, headers=HEADERS), self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await asyncio.wait_for(
                        client.get(self.url, headers=HEADERS), self.timeout
                    )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ExternalSourceFailure(
                self.source_name, "Request timeout", cause=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalSourceFailure(
                self.source_name, f"Network error: {exc}", cause=exc
            ) from exc

        if not response.is_success:
            raise ExternalSourceFailure(
                self.source_name,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalSourceFailure(
                self.source_name,
                "Invalid response format: body is not JSON",
                status_code=response.status_code,
                cause=exc,
            ) from exc


def normalize_name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("common") or value.get("official")
    if not isinstance(value, str):
        return None
    return value.strip() or None


def normalize_capital(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str) and value:
        return value
    return None


def normalize_population(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0


def normalize_flag(item: Dict[str, Any]) -> Optional[str]:
    flags = item.get("flags")
    if isinstance(flags, dict):
        flag = flags.get("png") or flags.get("svg")
        if flag:
            return flag
    flag = item.get("flag")
    return flag if isinstance(flag, str) and flag else None


def normalize_currencies(value: Any) -> Optional[List[CurrencyEntry]]:
    """Currencies arrive keyed by code (v3) or as a list of entries (v2)."""
    entries = []
    if isinstance(value, dict):
        for code, details in value.items():
            details = details if isinstance(details, dict) else {}
            entries.append(
                CurrencyEntry(
                    code=str(code),
                    name=details.get("name") or str(code),
                    symbol=details.get("symbol") or str(code),
                )
            )
    elif isinstance(value, list):
        for entry in value:
            entry = entry if isinstance(entry, dict) else {}
            entries.append(
                CurrencyEntry(
                    code=entry.get("code") or "",
                    name=entry.get("name"),
                    symbol=entry.get("symbol"),
                )
            )
    return entries or None


def normalize_country(item: Any) -> Optional[RawExternalCountry]:
    """Canonical shape of one upstream entry, or None when it is unusable."""
    if not isinstance(item, dict):
        return None
    name = normalize_name(item.get("name"))
    if name is None:
        return None
    population = normalize_population(item.get("population"))
    if population < 0:
        return None
    region = item.get("region")
    return RawExternalCountry(
        name=name,
        capital=normalize_capital(item.get("capital")),
        region=region if isinstance(region, str) and region else None,
        population=population,
        flag=normalize_flag(item),
        currencies=normalize_currencies(item.get("currencies")),
    )


class CountriesSource(JSONSource):
    source_name = "REST Countries API"

    def __init__(self, url: Optional[str] = None, **kwargs):
        super().__init__(url or config.COUNTRIES_API_URL, **kwargs)

    async def fetch_countries(self) -> List[RawExternalCountry]:
        data = await self.get_json()
        if not isinstance(data, list):
            raise ExternalSourceFailure(
                self.source_name, "Invalid response format: expected array"
            )
        countries = []
        for item in data:
            country = normalize_country(item)
            if country is not None:
                countries.append(country)
        logger.info(
            f"{self.source_name} returned {len(data)} entries, {len(countries)} usable"
        )
        return countries


class ExchangeRateSource(JSONSource):
    source_name = "Exchange Rates API"

    def __init__(self, url: Optional[str] = None, **kwargs):
        super().__init__(url or config.EXCHANGE_API_URL, **kwargs)

    async def fetch_exchange_rates(self) -> ExchangeRateSnapshot:
        data = await self.get_json()
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise ExternalSourceFailure(
                self.source_name, "Invalid response format: missing or invalid rates object"
            )

        usable = {}
        for code, rate in rates.items():
            if isinstance(rate, bool) or not isinstance(rate, (int, float)):
                continue
            if rate > 0:
                usable[str(code).upper()] = float(rate)

        base = data.get("base_code") or data.get("base") or "USD"
        logger.info(f"{self.source_name} returned {len(usable)} rates (base {base})")
        return ExchangeRateSnapshot(base=str(base).upper(), rates=usable)
