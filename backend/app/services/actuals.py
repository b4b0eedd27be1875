from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal, ROUND_HALF_UP

from app.services.field_registry import FieldRegistry, default_registry
from app.utils.decimal_math import finite_or_zero, round_count, safe_divide


MONTHS_PER_YEAR = 12

WeeklyRecord = Mapping[str, object]
ActualMonths = Sequence[Sequence[WeeklyRecord] | None]

_RECORD_INPUTS = ("revenue", "avgJobSize", "appointmentRate", "showRate", "closeRate", "com")


def _check_year(actual_months: ActualMonths) -> None:
    if len(actual_months) != MONTHS_PER_YEAR:
        raise ValueError(f"Actual data must have {MONTHS_PER_YEAR} monthly entries, got {len(actual_months)}.")


def monthly_revenue(actual_months: ActualMonths) -> list[float]:
    _check_year(actual_months)
    totals: list[float] = []
    for weeks in actual_months:
        totals.append(sum(finite_or_zero(week.get("revenue")) for week in (weeks or [])))
    return totals


def revenue_weights(revenue_by_month: Sequence[float]) -> list[float] | None:
    cleaned = [max(0.0, finite_or_zero(value)) for value in revenue_by_month]
    total = sum(cleaned)
    if total <= 0:
        return None
    return [value / total for value in cleaned]


def _flatten(records: Sequence[object]) -> list[WeeklyRecord]:
    if len(records) == MONTHS_PER_YEAR and all(
        item is None or isinstance(item, (list, tuple)) for item in records
    ):
        rows: list[WeeklyRecord] = []
        for month in records:
            rows.extend(month or [])
        return rows
    return [item for item in records if isinstance(item, Mapping)]


def _week_funnel(record: WeeklyRecord) -> dict[str, float]:
    values = {name: finite_or_zero(record.get(name)) for name in _RECORD_INPUTS}
    values["sales"] = safe_divide(values["revenue"], values["avgJobSize"])
    values["estimatesRan"] = safe_divide(values["sales"], values["closeRate"] / 100)
    values["estimatesSet"] = safe_divide(values["estimatesRan"], values["showRate"] / 100)
    values["leads"] = safe_divide(values["estimatesSet"], values["appointmentRate"] / 100)
    values["weeklyBudget"] = values["revenue"] * (values["com"] / 100)
    return values


def aggregate_target_records(
    records: Sequence[object] | None,
    registry: FieldRegistry | None = None,
) -> dict[str, float]:
    """Collapse stored period records into one set of input values.

    Volumes are summed across weeks and the rates are derived back from the
    summed funnel, so a month made of uneven weeks keeps its real ratios.
    """
    registry = registry if registry is not None else default_registry()
    if not records:
        return registry.get_defaults()

    if len(records) == 1 and isinstance(records[0], Mapping):
        single = records[0]
        return registry.sanitize_inputs({name: single.get(name) for name in _RECORD_INPUTS})

    weeks = [_week_funnel(record) for record in _flatten(records)]
    if not weeks:
        return registry.get_defaults()

    totals: dict[str, float] = {}
    for week in weeks:
        for key, value in week.items():
            totals[key] = totals.get(key, 0.0) + value

    values = registry.get_defaults()
    # rates fall back to the weekly mean when the summed funnel cannot reproduce them
    values.update({key: totals[key] / len(weeks) for key in _RECORD_INPUTS if key in values})
    values["revenue"] = totals["revenue"]

    revenue = totals["revenue"]
    sales = totals["sales"]
    estimates_ran = totals["estimatesRan"]
    estimates_set = totals["estimatesSet"]
    leads = totals["leads"]

    if revenue > 0 and sales > 0:
        values["avgJobSize"] = round_count(revenue / sales)
    if revenue > 0 and totals["weeklyBudget"] > 0:
        com = Decimal(str(totals["weeklyBudget"] / revenue * 100))
        values["com"] = float(com.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    if leads > 0 and estimates_set > 0:
        values["appointmentRate"] = round_count(estimates_set / leads * 100)
    if estimates_set > 0 and estimates_ran > 0:
        values["showRate"] = round_count(estimates_ran / estimates_set * 100)
    if estimates_ran > 0 and sales > 0:
        values["closeRate"] = round_count(sales / estimates_ran * 100)

    return registry.sanitize_inputs(values)
