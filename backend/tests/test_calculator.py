import math
from datetime import date

import pytest

from app.models.enums import PeriodType
from app.services.calculator import Calculator, calculate_all, days_in_period_for


BASE = {
    "revenue": 100000,
    "avgJobSize": 10000,
    "appointmentRate": 50,
    "showRate": 50,
    "closeRate": 50,
    "com": 10,
}


def test_budget_chain_uses_fresh_values() -> None:
    snapshot = calculate_all(BASE, 30, PeriodType.monthly)
    assert snapshot.get("sales") == 10
    assert snapshot.get("estimatesRan") == 20
    assert snapshot.get("estimatesSet") == 40
    assert snapshot.get("leads") == 80
    assert snapshot.get("leadToSale") == pytest.approx(12.5)


def test_monthly_budget_targets() -> None:
    snapshot = calculate_all(BASE, 30, "monthly")
    assert snapshot.get("calculatedMonthlyBudget") == pytest.approx(10000)
    assert snapshot.get("budget") == pytest.approx(10000)
    assert snapshot.get("dailyBudget") == pytest.approx(10000 / 30)
    assert snapshot.get("cpl") == pytest.approx(125)
    assert snapshot.get("cpEstimateSet") == pytest.approx(250)
    assert snapshot.get("cpEstimate") == pytest.approx(500)
    assert snapshot.get("cpJobBooked") == pytest.approx(1000)
    assert snapshot.get("managementCost") == 2500
    assert snapshot.get("totalCom") == pytest.approx(12.5)
    assert "annualBudget" not in snapshot.values


def test_yearly_budget_targets() -> None:
    snapshot = calculate_all(BASE, 365, PeriodType.yearly)
    assert snapshot.get("annualBudget") == pytest.approx(10000)
    assert snapshot.get("calculatedMonthlyBudget") == pytest.approx(10000 / 12)
    assert snapshot.get("budget") == pytest.approx(10000)
    assert snapshot.get("cpl") == pytest.approx(125)
    assert "dailyBudget" not in snapshot.values
    assert "managementCost" not in snapshot.values
    assert "totalCom" not in snapshot.values


def test_weekly_snapshot_still_resolves_budget() -> None:
    snapshot = calculate_all(BASE, 31, PeriodType.weekly)
    assert snapshot.get("budget") == pytest.approx(10000)
    assert snapshot.get("dailyBudget") == pytest.approx(10000 / 31)
    assert "calculatedMonthlyBudget" not in snapshot.values


def test_alternating_periods_do_not_leak() -> None:
    calculator = Calculator()
    first_yearly = calculator.calculate_all(BASE, 365, PeriodType.yearly).as_dict()
    monthly = calculator.calculate_all(BASE, 30, PeriodType.monthly).as_dict()
    second_yearly = calculator.calculate_all(BASE, 365, PeriodType.yearly).as_dict()
    assert first_yearly == second_yearly
    assert monthly["budget"] == pytest.approx(first_yearly["budget"])
    assert monthly["calculatedMonthlyBudget"] != pytest.approx(first_yearly["calculatedMonthlyBudget"])


def test_recalculation_is_deterministic() -> None:
    calculator = Calculator()
    first = calculator.calculate_all(BASE, 30, "monthly")
    assert first.as_dict() == calculator.calculate_all(dict(BASE), 30, "monthly").as_dict()


@pytest.mark.parametrize("period", list(PeriodType))
def test_zero_inputs_never_produce_non_finite_values(period: PeriodType) -> None:
    for inputs in ({}, {"revenue": 0, "com": 0}, {**BASE, "avgJobSize": 0}, {**BASE, "closeRate": 0}):
        snapshot = calculate_all(inputs, 0, period)
        assert all(math.isfinite(value) for value in snapshot.values.values())


def test_count_fields_round_half_up() -> None:
    snapshot = calculate_all({**BASE, "revenue": 25000}, 30, "monthly")
    assert snapshot.get("sales") == 3
    assert snapshot.get("estimatesRan") == 6
    assert snapshot.get("leads") == 24


def test_inputs_are_sanitized_before_calculation() -> None:
    snapshot = calculate_all({**BASE, "closeRate": 200, "revenue": -10}, 30, "monthly")
    assert snapshot.get("closeRate") == 100
    assert snapshot.get("revenue") == 0
    assert snapshot.get("sales") == 0


def test_snapshot_is_read_only() -> None:
    snapshot = calculate_all(BASE, 30, "monthly")
    with pytest.raises(TypeError):
        snapshot.values["leads"] = 1  # type: ignore[index]
    assert snapshot.field_ids[:6] == tuple(snapshot.values)[:6]


@pytest.mark.parametrize(
    ("on", "days"),
    [(date(2024, 2, 10), 29), (date(2023, 2, 10), 28), (date(2024, 4, 1), 30), (date(2024, 12, 31), 31)],
)
def test_days_in_period_for(on: date, days: int) -> None:
    assert days_in_period_for(on) == days


def test_management_cost_on_a_band_ceiling() -> None:
    snapshot = calculate_all({**BASE, "revenue": 625000, "avgJobSize": 5000, "com": 7.2}, 30, "monthly")
    assert snapshot.get("calculatedMonthlyBudget") == pytest.approx(45000)
    assert snapshot.get("managementCost") == 6000
    assert snapshot.get("totalCom") == pytest.approx(8.16)
