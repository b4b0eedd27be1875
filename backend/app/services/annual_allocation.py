from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from app.models.enums import PeriodType
from app.services.actuals import MONTHS_PER_YEAR, ActualMonths, monthly_revenue, revenue_weights
from app.services.calculator import Calculator, DerivedSnapshot
from app.services.management_cost import management_cost
from app.utils.decimal_math import finite_or_zero, money, round_count, safe_divide
from app.utils.periods import MONTH_NAMES


logger = logging.getLogger(__name__)

DAYS_IN_YEAR = 365


@dataclass(frozen=True)
class Uninitialized:
    pass


@dataclass(frozen=True)
class RevenueWeighted:
    weights: tuple[float, ...]


@dataclass(frozen=True)
class UserEdited:
    budgets: tuple[float, ...]


AllocationMode = Uninitialized | RevenueWeighted | UserEdited


@dataclass(frozen=True)
class AnnualTotals:
    budget: float
    leads: float
    estimates_set: float
    estimates: float
    sales: float
    revenue: float
    avg_job_size: float
    com: float

    @classmethod
    def from_snapshot(cls, snapshot: DerivedSnapshot) -> "AnnualTotals":
        return cls(
            budget=snapshot.get("annualBudget"),
            leads=snapshot.get("leads"),
            estimates_set=snapshot.get("estimatesSet"),
            estimates=snapshot.get("estimatesRan"),
            sales=snapshot.get("sales"),
            revenue=snapshot.get("revenue"),
            avg_job_size=snapshot.get("avgJobSize"),
            com=snapshot.get("com"),
        )


@dataclass(frozen=True)
class MonthlyAllocation:
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


@dataclass(frozen=True)
class AllocationBalance:
    annual_budget: Decimal
    allocated: Decimal
    left_to_allocate: Decimal
    balanced: bool
    reasons: list[str]


def mode_name(mode: AllocationMode) -> str:
    if isinstance(mode, RevenueWeighted):
        return "revenue_weighted"
    if isinstance(mode, UserEdited):
        return "user_edited"
    return "uninitialized"


def month_index(month: int | str) -> int:
    if isinstance(month, str):
        for index, name in enumerate(MONTH_NAMES):
            if name.lower() == month.strip().lower():
                return index
        raise ValueError(f"Unknown month {month!r}.")
    if not 1 <= month <= MONTHS_PER_YEAR:
        raise ValueError(f"Month must be between 1 and {MONTHS_PER_YEAR}, got {month}.")
    return month - 1


def _monthly_budget_and_weight(totals: AnnualTotals, mode: AllocationMode, index: int) -> tuple[float, float]:
    if isinstance(mode, RevenueWeighted):
        weight = mode.weights[index]
        return totals.budget * weight, weight
    if isinstance(mode, UserEdited):
        budget = mode.budgets[index]
        weight = max(0.0, safe_divide(budget, totals.budget)) if totals.budget > 0 else 0.0
        return budget, weight
    return 0.0, 0.0


def allocate(totals: AnnualTotals, mode: AllocationMode) -> list[MonthlyAllocation]:
    rows: list[MonthlyAllocation] = []
    for index, name in enumerate(MONTH_NAMES):
        budget, weight = _monthly_budget_and_weight(totals, mode, index)
        revenue = totals.revenue * weight
        fee = management_cost(budget)
        total_com = ((budget + fee) / revenue) * 100 if revenue > 0 else 0.0
        rows.append(
            MonthlyAllocation(
                month=index + 1,
                name=name,
                weight=weight,
                budget=budget,
                leads=round_count(totals.leads * weight),
                estimates_set=round_count(totals.estimates_set * weight),
                estimates=round_count(totals.estimates * weight),
                sales=round_count(totals.sales * weight),
                revenue=revenue,
                avg_job_size=totals.avg_job_size,
                cost_of_marketing_percent=totals.com,
                management_cost=fee,
                total_cost_of_marketing_percent=finite_or_zero(total_com),
            )
        )
    return rows


def check_balance(annual_budget: float, allocations: Sequence[MonthlyAllocation]) -> AllocationBalance:
    target = money(finite_or_zero(annual_budget))
    allocated = money(sum(row.budget for row in allocations))
    left = money(target - allocated)

    reasons: list[str] = []
    if left > 0:
        reasons.append(f"${left:,.2f} of the ${target:,.2f} annual budget is left to allocate.")
    elif left < 0:
        reasons.append(f"Monthly budgets exceed the ${target:,.2f} annual budget by ${abs(left):,.2f}.")
    if any(row.budget < 0 for row in allocations):
        reasons.append("Negative monthly budget detected.")

    return AllocationBalance(
        annual_budget=target,
        allocated=allocated,
        left_to_allocate=left,
        balanced=left == money(0) and len(reasons) == 0,
        reasons=reasons,
    )


class AnnualAllocator:
    """Splits one annual target into twelve monthly breakdowns.

    Starts uninitialized, follows actual revenue once it arrives, and switches
    to user-edited budgets on the first monthly edit. The user-edited mode is
    kept until ``reset`` even if new actuals arrive.
    """

    def __init__(
        self,
        annual_inputs: Mapping[str, object] | None = None,
        *,
        calculator: Calculator | None = None,
    ) -> None:
        self.calculator = calculator if calculator is not None else Calculator()
        self._mode: AllocationMode = Uninitialized()
        self._actual_weights: tuple[float, ...] | None = None
        self.set_annual_inputs(annual_inputs)

    @property
    def mode(self) -> AllocationMode:
        return self._mode

    def set_annual_inputs(self, annual_inputs: Mapping[str, object] | None) -> DerivedSnapshot:
        self.annual_snapshot = self.calculator.calculate_all(annual_inputs, DAYS_IN_YEAR, PeriodType.yearly)
        self.totals = AnnualTotals.from_snapshot(self.annual_snapshot)
        return self.annual_snapshot

    def receive_actuals(self, actual_months: ActualMonths) -> AllocationMode:
        weights = revenue_weights(monthly_revenue(actual_months))
        self._actual_weights = tuple(weights) if weights is not None else None
        if isinstance(self._mode, UserEdited):
            logger.debug("Keeping user-edited monthly budgets; actual revenue stored for reset.")
            return self._mode
        self._mode = self._mode_from_actuals()
        return self._mode

    def edit_month_budget(self, month: int | str, value: object) -> MonthlyAllocation:
        index = month_index(month)
        if isinstance(self._mode, UserEdited):
            budgets = list(self._mode.budgets)
        else:
            budgets = [row.budget for row in self.allocations()]
            logger.info("Switching annual allocation from %s to user_edited.", mode_name(self._mode))
        budgets[index] = max(0.0, finite_or_zero(value))
        self._mode = UserEdited(budgets=tuple(budgets))
        return self.allocations()[index]

    def reset(self) -> AllocationMode:
        self._mode = self._mode_from_actuals()
        return self._mode

    def allocations(self) -> list[MonthlyAllocation]:
        return allocate(self.totals, self._mode)

    def balance(self) -> AllocationBalance:
        return check_balance(self.totals.budget, self.allocations())

    def _mode_from_actuals(self) -> AllocationMode:
        if self._actual_weights is None:
            return Uninitialized()
        return RevenueWeighted(weights=self._actual_weights)


def replay_allocation(
    annual_inputs: Mapping[str, object] | None,
    *,
    actual_months: ActualMonths | None = None,
    monthly_budgets: Mapping[int | str, object] | None = None,
    calculator: Calculator | None = None,
) -> AnnualAllocator:
    allocator = AnnualAllocator(annual_inputs, calculator=calculator)
    if actual_months is not None:
        allocator.receive_actuals(actual_months)
    edits = sorted(
        (month_index(int(key) if isinstance(key, str) and key.isdigit() else key), value)
        for key, value in (monthly_budgets or {}).items()
    )
    for index, value in edits:
        allocator.edit_month_budget(index + 1, value)
    return allocator
