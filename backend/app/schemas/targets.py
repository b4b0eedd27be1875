from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from app.models.enums import FieldGroup, FieldKind, PeriodType


class FieldOut(BaseModel):
    id: str
    label: str
    kind: FieldKind
    group: FieldGroup
    unit: str | None = None
    formula: str | None = None
    description: str = ""
    min: float | None = None
    max: float | None = None
    default_value: float | None = None
    step: float | None = None
    applicable_periods: list[PeriodType]
    hidden: bool = False


class CalculateRequest(BaseModel):
    period: PeriodType = PeriodType.monthly
    evaluation_date: date | None = None
    inputs: dict[str, float | None] = Field(default_factory=dict)


class SnapshotOut(BaseModel):
    period: PeriodType
    days_in_period: int
    values: dict[str, float]


class StoredTargetsOut(BaseModel):
    period: PeriodType
    start_date: date
    end_date: date
    query_types: list[PeriodType]
    inputs: dict[str, float]
    snapshot: SnapshotOut


class SaveTargetsRequest(CalculateRequest):
    pass


class SavedTargetOut(BaseModel):
    id: int
    start_date: date
    end_date: date
    query_type: PeriodType
    snapshot: SnapshotOut
    message: str


class AllocationRequest(BaseModel):
    year: int = Field(ge=2000, le=2100)
    inputs: dict[str, float | None] = Field(default_factory=dict)
    actuals: list[list[dict[str, float | None]] | None] | None = None
    monthly_budgets: dict[str, float] | None = None

    @field_validator("actuals")
    @classmethod
    def _twelve_months(cls, value: list | None) -> list | None:
        if value is not None and len(value) != 12:
            raise ValueError("actuals must contain exactly 12 monthly entries.")
        return value


class MonthlyAllocationOut(BaseModel):
    month: int
    name: str
    weight: float
    budget: float
    leads: float
    estimates_set: float
    estimates: float
    sales: float
    revenue: float
    avg_job_size: float
    cost_of_marketing_percent: float
    management_cost: float
    total_cost_of_marketing_percent: float


class AllocationBalanceOut(BaseModel):
    annual_budget: Decimal
    allocated: Decimal
    left_to_allocate: Decimal
    balanced: bool
    reasons: list[str]


class AllocationOut(BaseModel):
    year: int
    mode: str
    annual: SnapshotOut
    months: list[MonthlyAllocationOut]
    balance: AllocationBalanceOut


class YearlySaveResponse(BaseModel):
    year: int
    saved: int
    allocated: Decimal
    message: str
