from datetime import date

import pytest

from app.models.enums import PeriodType
from app.utils.periods import (
    MONTH_NAMES,
    days_in_month,
    is_time_frame_editable,
    month_bounds,
    period_bounds,
    week_bounds,
    weeks_in_month,
)


TODAY = date(2024, 5, 15)


def test_month_names() -> None:
    assert len(MONTH_NAMES) == 12
    assert MONTH_NAMES[0] == "January"


def test_bounds() -> None:
    assert week_bounds(date(2024, 5, 15)) == (date(2024, 5, 13), date(2024, 5, 19))
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert period_bounds(PeriodType.yearly, TODAY) == (date(2024, 1, 1), date(2024, 12, 31))
    assert period_bounds("monthly", TODAY) == (date(2024, 5, 1), date(2024, 5, 31))
    assert period_bounds("weekly", date(2024, 5, 19)) == (date(2024, 5, 13), date(2024, 5, 19))


def test_days_in_month() -> None:
    assert days_in_month(date(2023, 2, 1)) == 28
    assert days_in_month(date(2024, 2, 1)) == 29


@pytest.mark.parametrize(("on", "weeks"), [(date(2021, 2, 10), 4), (date(2024, 5, 1), 5), (date(2024, 9, 30), 4)])
def test_weeks_in_month(on: date, weeks: int) -> None:
    assert weeks_in_month(on) == weeks


@pytest.mark.parametrize(
    ("period", "selected", "editable"),
    [
        (PeriodType.weekly, date(2024, 5, 20), True),
        (PeriodType.weekly, date(2024, 5, 19), False),
        (PeriodType.weekly, date(2024, 5, 1), False),
        (PeriodType.monthly, date(2024, 6, 1), True),
        (PeriodType.monthly, date(2024, 5, 31), False),
        (PeriodType.yearly, date(2024, 1, 1), True),
        (PeriodType.yearly, date(2025, 6, 1), True),
        (PeriodType.yearly, date(2023, 12, 31), False),
    ],
)
def test_is_time_frame_editable(period: PeriodType, selected: date, editable: bool) -> None:
    assert is_time_frame_editable(period, selected, TODAY) is editable
