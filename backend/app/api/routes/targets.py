from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_calculator, get_db, get_registry
from app.models.enums import PeriodType
from app.schemas.targets import (
    AllocationBalanceOut,
    AllocationOut,
    AllocationRequest,
    CalculateRequest,
    FieldOut,
    MonthlyAllocationOut,
    SavedTargetOut,
    SaveTargetsRequest,
    SnapshotOut,
    StoredTargetsOut,
    YearlySaveResponse,
)
from app.services.annual_allocation import AnnualAllocator, mode_name, replay_allocation
from app.services.calculator import Calculator, DerivedSnapshot, days_in_period_for
from app.services.field_registry import FieldRegistry
from app.services.target_store import (
    list_targets,
    load_target_values,
    save_period_targets,
    save_yearly_targets,
)
from app.utils.periods import period_bounds


router = APIRouter(prefix="/targets", tags=["targets"])


def snapshot_out(snapshot: DerivedSnapshot) -> SnapshotOut:
    return SnapshotOut(
        period=snapshot.period_type,
        days_in_period=snapshot.days_in_period,
        values=snapshot.as_dict(),
    )


def allocator_from_request(payload: AllocationRequest, calculator: Calculator) -> AnnualAllocator:
    try:
        return replay_allocation(
            payload.inputs,
            actual_months=payload.actuals,
            monthly_budgets=payload.monthly_budgets,
            calculator=calculator,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def allocation_out(year: int, allocator: AnnualAllocator) -> AllocationOut:
    balance = allocator.balance()
    return AllocationOut(
        year=year,
        mode=mode_name(allocator.mode),
        annual=snapshot_out(allocator.annual_snapshot),
        months=[
            MonthlyAllocationOut(
                month=row.month,
                name=row.name,
                weight=row.weight,
                budget=row.budget,
                leads=row.leads,
                estimates_set=row.estimates_set,
                estimates=row.estimates,
                sales=row.sales,
                revenue=row.revenue,
                avg_job_size=row.avg_job_size,
                cost_of_marketing_percent=row.cost_of_marketing_percent,
                management_cost=row.management_cost,
                total_cost_of_marketing_percent=row.total_cost_of_marketing_percent,
            )
            for row in allocator.allocations()
        ],
        balance=AllocationBalanceOut(
            annual_budget=balance.annual_budget,
            allocated=balance.allocated,
            left_to_allocate=balance.left_to_allocate,
            balanced=balance.balanced,
            reasons=balance.reasons,
        ),
    )


@router.get("/fields", response_model=list[FieldOut])
def list_fields(
    period: PeriodType = PeriodType.monthly,
    registry: FieldRegistry = Depends(get_registry),
) -> list[FieldOut]:
    return [
        FieldOut(
            id=definition.id,
            label=definition.label,
            kind=definition.kind,
            group=definition.group,
            unit=definition.unit,
            formula=definition.formula,
            description=definition.description,
            min=definition.min,
            max=definition.max,
            default_value=definition.default_value,
            step=definition.step,
            applicable_periods=sorted(definition.applicable_periods, key=list(PeriodType).index),
            hidden=definition.hidden,
        )
        for definition in registry.get_fields(period)
    ]


@router.post("/calculate", response_model=SnapshotOut)
def calculate_targets(
    payload: CalculateRequest,
    calculator: Calculator = Depends(get_calculator),
) -> SnapshotOut:
    on = payload.evaluation_date or date.today()
    snapshot = calculator.calculate_all(payload.inputs, days_in_period_for(on), payload.period)
    return snapshot_out(snapshot)


@router.get("", response_model=StoredTargetsOut)
def get_targets(
    period: PeriodType = PeriodType.monthly,
    on: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    account_id: str = Depends(get_account_id),
    calculator: Calculator = Depends(get_calculator),
) -> StoredTargetsOut:
    selected = on or date.today()
    start, end = period_bounds(period, selected)
    records = list_targets(db, account_id, start, end)
    inputs = load_target_values(db, account_id, period, selected, calculator.registry)
    snapshot = calculator.calculate_all(inputs, days_in_period_for(selected), period)
    return StoredTargetsOut(
        period=period,
        start_date=start,
        end_date=end,
        query_types=list(dict.fromkeys(row.query_type for row in records)),
        inputs=inputs,
        snapshot=snapshot_out(snapshot),
    )


@router.post("", response_model=SavedTargetOut, status_code=status.HTTP_201_CREATED)
def save_targets(
    payload: SaveTargetsRequest,
    db: Session = Depends(get_db),
    account_id: str = Depends(get_account_id),
    calculator: Calculator = Depends(get_calculator),
) -> SavedTargetOut:
    if payload.period == PeriodType.yearly:
        raise HTTPException(
            status_code=422,
            detail="Yearly targets must be saved through /targets/yearly with a monthly allocation.",
        )
    on = payload.evaluation_date or date.today()
    snapshot = calculator.calculate_all(payload.inputs, days_in_period_for(on), payload.period)
    record = save_period_targets(
        db,
        account_id,
        payload.period,
        on,
        payload.inputs,
        snapshot,
        registry=calculator.registry,
    )
    db.commit()
    return SavedTargetOut(
        id=record.id,
        start_date=record.start_date,
        end_date=record.end_date,
        query_type=record.query_type,
        snapshot=snapshot_out(snapshot),
        message=f"Your {payload.period.value} target values have been updated.",
    )


@router.post("/yearly/allocation", response_model=AllocationOut)
def preview_yearly_allocation(
    payload: AllocationRequest,
    calculator: Calculator = Depends(get_calculator),
) -> AllocationOut:
    allocator = allocator_from_request(payload, calculator)
    return allocation_out(payload.year, allocator)


@router.post("/yearly", response_model=YearlySaveResponse, status_code=status.HTTP_201_CREATED)
def save_yearly_allocation(
    payload: AllocationRequest,
    db: Session = Depends(get_db),
    account_id: str = Depends(get_account_id),
    calculator: Calculator = Depends(get_calculator),
) -> YearlySaveResponse:
    allocator = allocator_from_request(payload, calculator)
    records = save_yearly_targets(db, account_id, payload.year, allocator, registry=calculator.registry)
    db.commit()
    return YearlySaveResponse(
        year=payload.year,
        saved=len(records),
        allocated=allocator.balance().allocated,
        message="Your yearly targets have been distributed across months.",
    )
