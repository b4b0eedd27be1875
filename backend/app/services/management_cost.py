from __future__ import annotations

from dataclasses import dataclass

from app.utils.decimal_math import finite_or_zero, money


@dataclass(frozen=True)
class FeeBand:
    min_spend: float
    max_spend: float
    fee: float

    def contains(self, spend: float) -> bool:
        return self.min_spend <= spend <= self.max_spend


MANAGEMENT_FEE_BANDS: tuple[FeeBand, ...] = (
    FeeBand(2500, 5000, 2000),
    FeeBand(5001, 10000, 2500),
    FeeBand(10001, 15000, 3000),
    FeeBand(15001, 20000, 3500),
    FeeBand(20001, 25000, 4000),
    FeeBand(25001, 30000, 4500),
    FeeBand(30001, 35000, 5000),
    FeeBand(35001, 40000, 5500),
    FeeBand(40001, 45000, 6000),
    FeeBand(45001, 50000, 6500),
    FeeBand(50001, 55000, 7000),
    FeeBand(55001, 60000, 7500),
    FeeBand(60001, 65000, 8000),
    FeeBand(65001, 70000, 8500),
)


def management_cost(spend: float, bands: tuple[FeeBand, ...] = MANAGEMENT_FEE_BANDS) -> float:
    """Flat management fee for an ad spend amount.

    Bands are inclusive on both ends. Spend outside every band, including
    the gaps between consecutive bands (5000 < spend < 5001), has no fee.
    Spend is rounded to cents first so float noise on a band ceiling
    (45000.00000000001) still lands in that band.
    """
    cents = float(money(finite_or_zero(spend)))
    for band in bands:
        if band.contains(cents):
            return float(band.fee)
    return 0.0
