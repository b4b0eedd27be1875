from __future__ import annotations

import calendar
from datetime import date, timedelta

from app.models.enums import PeriodType


MONTH_NAMES: tuple[str, ...] = tuple(calendar.month_name[1:])


def days_in_month(value: date) -> int:
    return calendar.monthrange(value.year, value.month)[1]


def week_bounds(value: date) -> tuple[date, date]:
    start = value - timedelta(days=value.weekday())
    return start, start + timedelta(days=6)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def period_bounds(period: PeriodType | str, value: date) -> tuple[date, date]:
    period_type = PeriodType(period)
    if period_type == PeriodType.weekly:
        return week_bounds(value)
    if period_type == PeriodType.monthly:
        return month_bounds(value.year, value.month)
    return date(value.year, 1, 1), date(value.year, 12, 31)


def weeks_in_month(value: date) -> int:
    first, last = month_bounds(value.year, value.month)
    week_start, _ = week_bounds(first)
    count = 0
    while week_start <= last:
        days_inside = sum(
            1
            for offset in range(7)
            if (week_start + timedelta(days=offset)).month == value.month
        )
        if days_inside >= 4:
            count += 1
        week_start += timedelta(days=7)
    return count


def is_time_frame_editable(period: PeriodType | str, selected: date, today: date | None = None) -> bool:
    current = today or date.today()
    period_type = PeriodType(period)
    if period_type == PeriodType.weekly:
        selected_start, _ = week_bounds(selected)
        _, current_end = week_bounds(current)
        return selected_start > current_end
    if period_type == PeriodType.monthly:
        return (selected.year, selected.month) > (current.year, current.month)
    return selected.year >= current.year
