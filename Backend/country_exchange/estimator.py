"""Estimated GDP.

estimated_gdp = population x random(1000, 2000) / exchange_rate

The multiplier is drawn fresh for every record of every refresh, so two refreshes
over unchanged upstream data produce different estimates for any country with a
usable rate. Records without a rate always estimate to None.
"""

import random
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol


MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


class RandomSource(Protocol):
    def random(self) -> float: ...


_system_random = random.SystemRandom()


def draw_multiplier(rng: RandomSource) -> float:
    """Uniform draw from [MULTIPLIER_MIN, MULTIPLIER_MAX)."""
    return MULTIPLIER_MIN + rng.random() * (MULTIPLIER_MAX - MULTIPLIER_MIN)


def round2(value: float) -> float:
    quantized = Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(quantized)


def estimate_gdp(
    population: int,
    exchange_rate: Optional[float],
    rng: Optional[RandomSource] = None,
) -> Optional[float]:
    if exchange_rate is None or exchange_rate <= 0:
        return None
    if population <= 0:
        return 0.0
    multiplier = draw_multiplier(rng or _system_random)
    return round2(population * multiplier / exchange_rate)
