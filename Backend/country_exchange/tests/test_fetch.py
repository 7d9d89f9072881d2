import asyncio
import httpx
import pytest

from country_exchange.errors import ExternalSourceFailure
from country_exchange.fetch import (
    CountriesSource,
    ExchangeRateSource,
    normalize_country,
)
from conftest import mock_client


V2_PAYLOAD = [
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139587,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Antarctica",
        "region": "Polar",
        "population": 1000,
        "flag": "https://flagcdn.com/aq.svg",
    },
    {"name": "", "population": 5},
    {"name": "Negativeland", "population": -1},
]

V3_PAYLOAD = [
    {
        "name": {"common": "Japan", "official": "Japan"},
        "capital": ["Tokyo"],
        "region": "Asia",
        "population": 125836021,
        "flags": {"png": "https://flagcdn.com/w320/jp.png", "svg": "x.svg"},
        "flag": "🇯🇵",
        "currencies": {"JPY": {"name": "Japanese yen", "symbol": "¥"}},
    }
]


def json_handler(payload, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return handler


async def test_fetch_countries_normalizes_v2_shape():
    source = CountriesSource("https://countries.test/all", client=mock_client(json_handler(V2_PAYLOAD)))

    countries = await source.fetch_countries()

    assert [c.name for c in countries] == ["Nigeria", "Antarctica"]
    nigeria = countries[0]
    assert nigeria.capital == "Abuja"
    assert nigeria.flag == "https://flagcdn.com/ng.svg"
    assert nigeria.currencies[0].code == "NGN"
    assert countries[1].currencies is None


async def test_fetch_countries_normalizes_v3_shape():
    source = CountriesSource("https://countries.test/all", client=mock_client(json_handler(V3_PAYLOAD)))

    [japan] = await source.fetch_countries()

    assert japan.name == "Japan"
    assert japan.capital == "Tokyo"
    assert japan.flag == "https://flagcdn.com/w320/jp.png"
    assert [c.code for c in japan.currencies] == ["JPY"]
    assert japan.currencies[0].symbol == "¥"


def test_normalize_country_edge_cases():
    assert normalize_country("not a dict") is None
    assert normalize_country({"name": {"official": "Only Official"}, "population": 1}).name == "Only Official"
    assert normalize_country({"name": {}, "population": 1}) is None
    assert normalize_country({"name": "Textpop", "population": "oops"}).population == 0
    assert normalize_country({"name": "Strpop", "population": "42"}).population == 42
    assert normalize_country({"name": "Nocap", "population": 1, "capital": []}).capital is None
    assert normalize_country({"name": "Emptycur", "population": 1, "currencies": {}}).currencies is None


async def test_non_success_status_is_external_failure():
    source = CountriesSource("https://countries.test/all", client=mock_client(json_handler({"message": "down"}, 502)))

    with pytest.raises(ExternalSourceFailure) as excinfo:
        await source.fetch_countries()

    assert excinfo.value.status_code == 502
    assert excinfo.value.source_name == "REST Countries API"


async def test_non_list_body_is_external_failure():
    source = CountriesSource("https://countries.test/all", client=mock_client(json_handler({"status": 404})))

    with pytest.raises(ExternalSourceFailure, match="expected array"):
        await source.fetch_countries()


async def test_non_json_body_is_external_failure():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    source = CountriesSource("https://countries.test/all", client=mock_client(handler))

    with pytest.raises(ExternalSourceFailure, match="not JSON"):
        await source.fetch_countries()


async def test_slow_source_times_out():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    source = CountriesSource("https://countries.test/all", timeout=0.05, client=mock_client(handler))

    with pytest.raises(ExternalSourceFailure, match="timeout"):
        await source.fetch_countries()


async def test_network_error_is_external_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    source = ExchangeRateSource("https://rates.test/latest/USD", client=mock_client(handler))

    with pytest.raises(ExternalSourceFailure) as excinfo:
        await source.fetch_exchange_rates()

    assert excinfo.value.source_name == "Exchange Rates API"
    assert isinstance(excinfo.value.cause, httpx.ConnectError)


async def test_fetch_exchange_rates_builds_snapshot():
    payload = {
        "result": "success",
        "base_code": "USD",
        "rates": {"USD": 1, "ngn": 1600.25, "BAD": "x", "ZERO": 0, "NEG": -2},
    }
    source = ExchangeRateSource("https://rates.test/latest/USD", client=mock_client(json_handler(payload)))

    snapshot = await source.fetch_exchange_rates()

    assert snapshot.base == "USD"
    assert snapshot.rates == {"USD": 1.0, "NGN": 1600.25}


async def test_missing_rates_is_external_failure():
    source = ExchangeRateSource("https://rates.test/latest/USD", client=mock_client(json_handler({"result": "error"})))

    with pytest.raises(ExternalSourceFailure, match="rates"):
        await source.fetch_exchange_rates()


async def test_non_finite_population_is_coerced_to_zero():
    def handler(request):
        return httpx.Response(
            200,
            text='[{"name": "Infland", "population": Infinity}, {"name": "Nanland", "population": NaN}]',
            headers={"content-type": "application/json"},
        )

    source = CountriesSource("https://countries.test/all", client=mock_client(handler))

    countries = await source.fetch_countries()

    assert [(c.name, c.population) for c in countries] == [("Infland", 0), ("Nanland", 0)]
