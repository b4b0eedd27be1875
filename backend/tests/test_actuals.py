import pytest

from app.services.actuals import aggregate_target_records, monthly_revenue, revenue_weights
from app.services.field_registry import default_registry


WEEK = {
    "revenue": 10000,
    "avgJobSize": 1000,
    "appointmentRate": 50,
    "showRate": 50,
    "closeRate": 50,
    "com": 10,
}


def test_monthly_revenue_sums_weeks() -> None:
    months = [[{"revenue": 100}, {"revenue": 50.5}]] + [None] * 10 + [[{"revenue": None}]]
    totals = monthly_revenue(months)
    assert totals[0] == 150.5
    assert totals[1:] == [0.0] * 11


def test_monthly_revenue_requires_twelve_months() -> None:
    with pytest.raises(ValueError):
        monthly_revenue([[]] * 13)


def test_revenue_weights() -> None:
    assert revenue_weights([0] * 12) is None
    assert revenue_weights([1, 3]) == [0.25, 0.75]
    assert revenue_weights([-5, 2, 2]) == [0.0, 0.5, 0.5]


def test_no_records_gives_defaults() -> None:
    assert aggregate_target_records([]) == default_registry().get_defaults()
    assert aggregate_target_records(None) == default_registry().get_defaults()


def test_single_record_is_sanitized() -> None:
    values = aggregate_target_records([{**WEEK, "closeRate": 150, "queryType": "monthly"}])
    assert values["closeRate"] == 100
    assert values["revenue"] == 10000
    assert "queryType" not in values


def test_even_weeks_keep_their_rates() -> None:
    values = aggregate_target_records([WEEK, WEEK])
    assert values["revenue"] == 20000
    assert values["avgJobSize"] == 1000
    assert values["com"] == 10
    assert values["appointmentRate"] == 50
    assert values["showRate"] == 50
    assert values["closeRate"] == 50


def test_uneven_weeks_derive_rates_from_summed_funnel() -> None:
    values = aggregate_target_records([WEEK, {**WEEK, "revenue": 20000, "avgJobSize": 4000, "com": 16}])
    # 30000 revenue over 10 + 5 sales
    assert values["avgJobSize"] == 2000
    # (1000 + 3200) / 30000
    assert values["com"] == 14.0
    assert values["closeRate"] == 50


def test_nested_months_are_flattened() -> None:
    months = [[WEEK, WEEK]] + [None] * 11
    values = aggregate_target_records(months)
    assert values["revenue"] == 20000
    assert values["avgJobSize"] == 1000
