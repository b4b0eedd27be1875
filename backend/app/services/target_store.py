from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.enums import PERIOD_PRIORITY, PeriodType
from app.models.target import TARGET_INPUT_COLUMNS, TargetRecord
from app.services.actuals import aggregate_target_records
from app.services.annual_allocation import AllocationBalance, AnnualAllocator
from app.services.calculator import DerivedSnapshot
from app.services.field_registry import FieldRegistry, default_registry
from app.utils.decimal_math import finite_or_zero, money, pct
from app.utils.periods import is_time_frame_editable, month_bounds, period_bounds


logger = logging.getLogger(__name__)

_RATE_FIELDS = frozenset({"appointmentRate", "showRate", "closeRate", "com"})


@dataclass(frozen=True)
class PriorityConflict:
    existing_type: PeriodType
    new_type: PeriodType
    message: str


def _as_date(value: object) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def record_values(record: TargetRecord) -> dict[str, object]:
    values: dict[str, object] = {
        "startDate": record.start_date.isoformat(),
        "endDate": record.end_date.isoformat(),
        "queryType": record.query_type.value,
    }
    for field_id, column in TARGET_INPUT_COLUMNS.items():
        values[field_id] = float(getattr(record, column))
    values["budget"] = float(record.budget) if record.budget is not None else None
    return values


def list_targets(db: Session, account_id: str, start: date, end: date) -> list[TargetRecord]:
    return list(
        db.scalars(
            select(TargetRecord)
            .where(
                TargetRecord.account_id == account_id,
                TargetRecord.start_date <= end,
                TargetRecord.end_date >= start,
            )
            .order_by(TargetRecord.start_date, TargetRecord.id)
        ).all()
    )


def upsert_targets(
    db: Session,
    account_id: str,
    records: Sequence[Mapping[str, object]],
) -> list[TargetRecord]:
    saved: list[TargetRecord] = []
    for payload in records:
        start = _as_date(payload["startDate"])
        end = _as_date(payload["endDate"])
        if end < start:
            raise ValueError("endDate must not be before startDate.")
        query_type = PeriodType(payload["queryType"])

        row = db.scalar(
            select(TargetRecord).where(
                TargetRecord.account_id == account_id,
                TargetRecord.start_date == start,
                TargetRecord.end_date == end,
            )
        )
        if row is None:
            row = TargetRecord(account_id=account_id, start_date=start, end_date=end, query_type=query_type)
            db.add(row)
        row.query_type = query_type
        for field_id, column in TARGET_INPUT_COLUMNS.items():
            value = finite_or_zero(payload.get(field_id))
            setattr(row, column, pct(value) if field_id in _RATE_FIELDS else money(value))
        budget = payload.get("budget")
        row.budget = money(finite_or_zero(budget)) if budget is not None else None
        derived = payload.get("derived")
        row.derived_values = dict(derived) if isinstance(derived, Mapping) else None
        saved.append(row)

    db.flush()
    logger.info("Upserted %d target record(s) for account %s.", len(saved), account_id)
    return saved


def load_target_values(
    db: Session,
    account_id: str,
    period: PeriodType | str,
    on: date,
    registry: FieldRegistry | None = None,
) -> dict[str, float]:
    start, end = period_bounds(period, on)
    rows = list_targets(db, account_id, start, end)
    if rows:
        # a higher-priority save supersedes overlapping lower-priority rows
        top = max(PERIOD_PRIORITY[row.query_type] for row in rows)
        rows = [row for row in rows if PERIOD_PRIORITY[row.query_type] == top]
    records = [record_values(row) for row in rows]
    return aggregate_target_records(records, registry)


def find_priority_conflict(
    existing_types: Sequence[PeriodType | str],
    new_period: PeriodType | str,
) -> PriorityConflict | None:
    new_type = PeriodType(new_period)
    for raw in dict.fromkeys(existing_types):
        existing = PeriodType(raw)
        if PERIOD_PRIORITY[existing] > PERIOD_PRIORITY[new_type]:
            return PriorityConflict(
                existing_type=existing,
                new_type=new_type,
                message=(
                    f"Cannot save {new_type.value} targets. {existing.value.capitalize()} "
                    "targets already exist with higher priority."
                ),
            )
    return None


def assert_time_frame_editable(period: PeriodType | str, on: date, today: date | None = None) -> None:
    if not is_time_frame_editable(period, on, today):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{PeriodType(period).value.capitalize()} targets in the past cannot be changed.",
        )


def assert_no_zero_fields(values: Mapping[str, object], registry: FieldRegistry | None = None) -> None:
    zero_fields = (registry or default_registry()).zero_fields(values)
    if zero_fields:
        raise HTTPException(
            status_code=422,
            detail=f"The following fields cannot be 0: {', '.join(zero_fields)}",
        )


def assert_no_priority_conflict(
    db: Session,
    account_id: str,
    period: PeriodType | str,
    start: date,
    end: date,
) -> None:
    existing = [row.query_type for row in list_targets(db, account_id, start, end)]
    conflict = find_priority_conflict(existing, period)
    if conflict is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict.message)


def assert_allocation_balanced(balance: AllocationBalance) -> None:
    if not balance.balanced:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Allocation is not balanced: {' '.join(balance.reasons)}",
        )


def save_period_targets(
    db: Session,
    account_id: str,
    period: PeriodType | str,
    on: date,
    inputs: Mapping[str, object],
    snapshot: DerivedSnapshot,
    *,
    today: date | None = None,
    registry: FieldRegistry | None = None,
) -> TargetRecord:
    period_type = PeriodType(period)
    if period_type == PeriodType.yearly:
        raise ValueError("Yearly targets are saved through the monthly allocation.")
    registry = registry or default_registry()
    values = registry.sanitize_inputs(inputs)
    assert_no_zero_fields(values, registry)
    start, end = period_bounds(period_type, on)
    assert_time_frame_editable(period_type, on, today)
    assert_no_priority_conflict(db, account_id, period_type, start, end)

    payload: dict[str, object] = {
        "startDate": start,
        "endDate": end,
        "queryType": period_type.value,
        **values,
        "budget": snapshot.get("budget"),
        "derived": snapshot.as_dict(),
    }
    (record,) = upsert_targets(db, account_id, [payload])
    return record


def save_yearly_targets(
    db: Session,
    account_id: str,
    year: int,
    allocator: AnnualAllocator,
    *,
    today: date | None = None,
    registry: FieldRegistry | None = None,
) -> list[TargetRecord]:
    registry = registry or default_registry()
    annual_values = registry.sanitize_inputs(allocator.annual_snapshot.values)
    assert_no_zero_fields(annual_values, registry)
    assert_time_frame_editable(PeriodType.yearly, date(year, 1, 1), today)
    assert_no_priority_conflict(db, account_id, PeriodType.yearly, date(year, 1, 1), date(year, 12, 31))
    assert_allocation_balanced(allocator.balance())

    payloads: list[dict[str, object]] = []
    for row in allocator.allocations():
        start, end = month_bounds(year, row.month)
        payloads.append(
            {
                "startDate": start,
                "endDate": end,
                "queryType": PeriodType.yearly.value,
                "appointmentRate": annual_values["appointmentRate"],
                "showRate": annual_values["showRate"],
                "closeRate": annual_values["closeRate"],
                "avgJobSize": row.avg_job_size,
                "com": row.cost_of_marketing_percent,
                "revenue": row.revenue,
                "budget": row.budget,
                "derived": {
                    "leads": row.leads,
                    "estimatesSet": row.estimates_set,
                    "estimatesRan": row.estimates,
                    "sales": row.sales,
                    "managementCost": row.management_cost,
                    "totalCom": row.total_cost_of_marketing_percent,
                },
            }
        )
    return upsert_targets(db, account_id, payloads)
