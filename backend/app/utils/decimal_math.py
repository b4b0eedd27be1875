import math
from decimal import Decimal, ROUND_HALF_UP


MONEY_QUANT = Decimal("0.01")
PCT_QUANT = Decimal("0.0001")
COUNT_QUANT = Decimal("1")


def money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def pct(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(PCT_QUANT, rounding=ROUND_HALF_UP)


def finite_or_zero(value: object) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def safe_divide(numerator: float, denominator: float) -> float:
    if denominator == 0 or math.isnan(denominator) or math.isinf(denominator):
        return 0.0
    return numerator / denominator


def round_count(value: float) -> float:
    # half-up, so 2.5 leads -> 3 rather than banker's 2
    return float(Decimal(str(finite_or_zero(value))).quantize(COUNT_QUANT, rounding=ROUND_HALF_UP))
