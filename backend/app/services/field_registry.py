from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache

from app.models.enums import FieldGroup, FieldKind, PeriodType
from app.services.formula import (
    DEFAULT_FUNCTIONS,
    PSEUDO_VARIABLES,
    FormulaConfigurationError,
    FormulaSyntaxError,
    UnknownFieldError,
    formula_calls,
    formula_identifiers,
    parse_formula,
)
from app.utils.decimal_math import finite_or_zero


ALL_PERIODS: frozenset[PeriodType] = frozenset(PeriodType)
GROUP_ORDER: tuple[FieldGroup, ...] = (
    FieldGroup.funnel_rate,
    FieldGroup.budget,
    FieldGroup.budget_target,
)


@dataclass(frozen=True)
class FieldDefinition:
    id: str
    label: str
    kind: FieldKind
    group: FieldGroup
    formula: str | None = None
    description: str = ""
    unit: str | None = None
    min: float | None = None
    max: float | None = None
    default_value: float | None = None
    step: float | None = None
    applicable_periods: frozenset[PeriodType] = ALL_PERIODS
    hidden: bool = False

    @property
    def is_input(self) -> bool:
        return self.kind == FieldKind.input

    @property
    def is_calculated(self) -> bool:
        return self.kind == FieldKind.calculated

    def applies_to(self, period: PeriodType) -> bool:
        return period in self.applicable_periods

    def clamp(self, value: object) -> float:
        number = max(0.0, finite_or_zero(value))
        if self.max is not None:
            number = min(number, float(self.max))
        if self.min is not None:
            number = max(number, float(self.min))
        return number


def _input(
    id: str,
    label: str,
    group: FieldGroup,
    *,
    unit: str | None = None,
    max: float | None = None,
    step: float | None = None,
) -> FieldDefinition:
    return FieldDefinition(
        id=id,
        label=label,
        kind=FieldKind.input,
        group=group,
        unit=unit,
        min=0,
        max=max,
        default_value=0,
        step=step,
    )


def _calculated(
    id: str,
    label: str,
    group: FieldGroup,
    formula: str,
    description: str,
    *,
    unit: str | None = None,
    periods: Iterable[PeriodType] | None = None,
    hidden: bool = False,
) -> FieldDefinition:
    return FieldDefinition(
        id=id,
        label=label,
        kind=FieldKind.calculated,
        group=group,
        formula=formula,
        description=description,
        unit=unit,
        applicable_periods=ALL_PERIODS if periods is None else frozenset(periods),
        hidden=hidden,
    )


_W, _M, _Y = PeriodType.weekly, PeriodType.monthly, PeriodType.yearly

TARGET_FIELDS: tuple[FieldDefinition, ...] = (
    _input("appointmentRate", "Appointment Rate", FieldGroup.funnel_rate, unit="%", max=100, step=0.01),
    _input("showRate", "Show Rate", FieldGroup.funnel_rate, unit="%", max=100, step=0.01),
    _input("closeRate", "Close Rate", FieldGroup.funnel_rate, unit="%", max=100, step=0.01),
    _calculated(
        "leadToSale",
        "Lead to Sale",
        FieldGroup.funnel_rate,
        "appointmentRate * showRate * closeRate / 10000",
        "Appointment × Show × Close",
        unit="%",
    ),
    _input("revenue", "Revenue", FieldGroup.budget, unit="$"),
    _input("avgJobSize", "Avg Job Size", FieldGroup.budget, unit="$"),
    _calculated("sales", "Sales", FieldGroup.budget, "revenue / avgJobSize", "Revenue ÷ Avg Job Size"),
    _calculated(
        "estimatesRan",
        "Estimates Ran",
        FieldGroup.budget,
        "sales / (closeRate / 100)",
        "Sales ÷ Close Rate",
    ),
    _calculated(
        "estimatesSet",
        "Estimates Set",
        FieldGroup.budget,
        "estimatesRan / (showRate / 100)",
        "Estimates Ran ÷ Show Rate",
    ),
    _calculated(
        "leads",
        "Leads",
        FieldGroup.budget,
        "estimatesSet / (appointmentRate / 100)",
        "Estimates Set ÷ Appointment Rate",
    ),
    _input("com", "CoM%", FieldGroup.budget_target, unit="%", max=100, step=0.01),
    _calculated(
        "annualBudget",
        "Annual Budget",
        FieldGroup.budget_target,
        "revenue * (com / 100)",
        "Revenue × CoM%",
        unit="$",
        periods=[_Y],
    ),
    _calculated(
        "budget",
        "Budget",
        FieldGroup.budget_target,
        "periodType === 'yearly' ? annualBudget : calculatedMonthlyBudget",
        "Budget based on period",
        unit="$",
        periods=[_Y, _M],
        hidden=True,
    ),
    _calculated(
        "calculatedMonthlyBudget",
        "Monthly Budget",
        FieldGroup.budget_target,
        "revenue * (com / 100)",
        "Revenue × CoM%",
        unit="$",
        periods=[_Y, _M],
    ),
    _calculated(
        "dailyBudget",
        "Daily Budget",
        FieldGroup.budget_target,
        "budget / daysInPeriod",
        "Budget ÷ Days in Month",
        unit="$",
        periods=[_W, _M],
    ),
    _calculated("cpl", "Cost Per Lead", FieldGroup.budget_target, "budget / leads", "Budget ÷ Leads", unit="$"),
    _calculated(
        "cpEstimateSet",
        "CP Estimate Set",
        FieldGroup.budget_target,
        "budget / estimatesSet",
        "Budget ÷ Estimates Set",
        unit="$",
    ),
    _calculated(
        "cpEstimate",
        "CP Estimate",
        FieldGroup.budget_target,
        "budget / estimatesRan",
        "Budget ÷ Estimates Ran",
        unit="$",
    ),
    _calculated(
        "cpJobBooked",
        "CP Job Booked",
        FieldGroup.budget_target,
        "budget / sales",
        "Budget ÷ Sales",
        unit="$",
    ),
    _calculated(
        "managementCost",
        "Management Cost",
        FieldGroup.budget_target,
        "managementCost(calculatedMonthlyBudget)",
        "Based on Ad Spend Range",
        unit="$",
        periods=[_M],
    ),
    _calculated(
        "totalCom",
        "Total CoM%",
        FieldGroup.budget_target,
        "((calculatedMonthlyBudget + managementCost) / revenue) * 100",
        "(Monthly Budget + Management Cost) ÷ Revenue",
        unit="%",
        periods=[_M],
    ),
)


class FieldRegistry:
    """Immutable set of field definitions, ordered by group then declaration."""

    def __init__(
        self,
        fields: Iterable[FieldDefinition],
        functions: Iterable[str] = DEFAULT_FUNCTIONS,
    ) -> None:
        group_rank = {group: index for index, group in enumerate(GROUP_ORDER)}
        declared = list(fields)
        self._fields: tuple[FieldDefinition, ...] = tuple(
            sorted(declared, key=lambda item: group_rank[item.group])
        )
        self._by_id: dict[str, FieldDefinition] = {}
        for definition in self._fields:
            if definition.id in self._by_id:
                raise FormulaConfigurationError(f"Duplicate field id {definition.id!r}.")
            self._by_id[definition.id] = definition
        self._functions = frozenset(functions)
        self._dependencies = self._check_formulas()

    def __iter__(self):
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._by_id

    def get(self, field_id: str) -> FieldDefinition | None:
        return self._by_id.get(field_id)

    def field_ids(self) -> list[str]:
        return [definition.id for definition in self._fields]

    def input_ids(self) -> list[str]:
        return [definition.id for definition in self._fields if definition.is_input]

    def dependencies(self, field_id: str) -> frozenset[str]:
        return self._dependencies.get(field_id, frozenset())

    def get_fields(self, period: PeriodType | str) -> list[FieldDefinition]:
        period_type = PeriodType(period)
        return [definition for definition in self._fields if definition.applies_to(period_type)]

    def calculated_fields(self, group: FieldGroup) -> list[FieldDefinition]:
        return [
            definition
            for definition in self._fields
            if definition.group == group and definition.is_calculated
        ]

    def get_defaults(self) -> dict[str, float]:
        return {
            definition.id: float(definition.default_value or 0)
            for definition in self._fields
            if definition.is_input
        }

    def sanitize_inputs(self, raw: Mapping[str, object] | None) -> dict[str, float]:
        source = raw or {}
        return {
            definition.id: definition.clamp(source.get(definition.id))
            for definition in self._fields
            if definition.is_input
        }

    def validate_inputs(self, values: Mapping[str, object]) -> dict[str, str]:
        errors: dict[str, str] = {}
        for definition in self._fields:
            if not definition.is_input:
                continue
            value = values.get(definition.id)
            if value is None:
                errors[definition.id] = f"{definition.label} is required"
                continue
            number = finite_or_zero(value)
            if definition.min is not None and number < definition.min:
                errors[definition.id] = f"{definition.label} must be at least {definition.min:g}"
            elif definition.max is not None and number > definition.max:
                errors[definition.id] = f"{definition.label} must be at most {definition.max:g}"
        return errors

    def zero_fields(self, values: Mapping[str, object]) -> list[str]:
        return [
            definition.label
            for definition in self._fields
            if definition.is_input and finite_or_zero(values.get(definition.id)) == 0
        ]

    def _check_formulas(self) -> dict[str, frozenset[str]]:
        dependencies: dict[str, frozenset[str]] = {}
        for definition in self._fields:
            if definition.is_input:
                if definition.formula is not None:
                    raise FormulaConfigurationError(f"Input field {definition.id!r} cannot have a formula.")
                continue
            if not definition.formula:
                raise FormulaConfigurationError(f"Calculated field {definition.id!r} has no formula.")
            try:
                tree = parse_formula(definition.formula)
            except FormulaSyntaxError as exc:
                raise FormulaConfigurationError(f"Invalid formula for {definition.id!r}: {exc}") from exc

            unknown_calls = formula_calls(tree) - self._functions
            if unknown_calls:
                raise FormulaConfigurationError(
                    f"Formula for {definition.id!r} calls unknown function(s) {sorted(unknown_calls)}."
                )
            names = formula_identifiers(tree) - PSEUDO_VARIABLES
            unknown = names - self._by_id.keys()
            if unknown:
                raise UnknownFieldError(
                    f"Formula for {definition.id!r} references unknown field(s) {sorted(unknown)}."
                )
            dependencies[definition.id] = frozenset(names)

        for field_id in dependencies:
            self._assert_acyclic(field_id, dependencies, trail=())
        return dependencies

    def _assert_acyclic(
        self,
        field_id: str,
        dependencies: Mapping[str, frozenset[str]],
        trail: tuple[str, ...],
    ) -> None:
        if field_id in trail:
            cycle = " -> ".join(trail[trail.index(field_id):] + (field_id,))
            raise FormulaConfigurationError(f"Cyclic formula: {cycle}.")
        for dependency in dependencies.get(field_id, ()):
            self._assert_acyclic(dependency, dependencies, trail + (field_id,))


@lru_cache
def default_registry() -> FieldRegistry:
    return FieldRegistry(TARGET_FIELDS)
