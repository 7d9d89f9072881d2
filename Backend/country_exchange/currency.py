"""Currency code resolution and rate lookup"""

from typing import Iterable, List, Optional
from .schema import ExchangeRateSnapshot, RawExternalCountry


def resolve_currency(country: RawExternalCountry) -> Optional[str]:
    """Canonical currency code of a country: the first listed entry, upper-cased.

    Later entries are never consulted, even when the first one carries an
    empty code.
    """
    if not country.currencies:
        return None
    return country.currencies[0].code.upper()


def lookup_rate(code: Optional[str], snapshot: ExchangeRateSnapshot) -> Optional[float]:
    if code is None:
        return None
    return snapshot.rates.get(code.upper())


def distinct_currency_codes(countries: Iterable[RawExternalCountry]) -> List[str]:
    codes = []
    for country in countries:
        code = resolve_currency(country)
        if code and code not in codes:
            codes.append(code)
    return codes
