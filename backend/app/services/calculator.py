from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType

from app.models.enums import FieldGroup, PeriodType
from app.services.field_registry import FieldDefinition, FieldRegistry, default_registry
from app.services.formula import BUDGET, FormulaEvaluator, ValueContext
from app.utils.decimal_math import round_count
from app.utils.periods import days_in_month


# whole-number funnel volumes; ratios, currency and percentages keep full precision
COUNT_FIELDS = frozenset({"sales", "estimatesRan", "estimatesSet", "leads"})

# each step consumes the value stored by the previous one
BUDGET_CHAIN: tuple[str, ...] = ("sales", "estimatesRan", "estimatesSet", "leads")


@dataclass(frozen=True)
class DerivedSnapshot:
    values: Mapping[str, float]
    period_type: PeriodType
    days_in_period: int
    field_ids: tuple[str, ...] = field(default=())

    def get(self, field_id: str, default: float = 0.0) -> float:
        return self.values.get(field_id, default)

    def as_dict(self) -> dict[str, float]:
        return dict(self.values)


def days_in_period_for(evaluation_date: date) -> int:
    # weekly and monthly daily budgets both prorate over the month containing the date
    return days_in_month(evaluation_date)


class Calculator:
    def __init__(self, registry: FieldRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.evaluator = FormulaEvaluator(self.registry.field_ids())

    def calculate_all(
        self,
        inputs: Mapping[str, object] | None,
        days_in_period: int,
        period_type: PeriodType | str,
    ) -> DerivedSnapshot:
        period = PeriodType(period_type)
        ctx = ValueContext(
            values=self.registry.sanitize_inputs(inputs),
            days_in_period=max(int(days_in_period), 1),
            period_type=period,
        )
        computed: list[str] = list(ctx.values)

        for definition in self._ordered(FieldGroup.funnel_rate, period):
            self._store(definition, ctx, computed)

        budget_fields = {item.id: item for item in self._ordered(FieldGroup.budget, period)}
        for field_id in BUDGET_CHAIN:
            if field_id in budget_fields:
                self._store(budget_fields.pop(field_id), ctx, computed)
        for definition in budget_fields.values():
            self._store(definition, ctx, computed)

        budget_definition = self.registry.get(BUDGET)
        if budget_definition is not None:
            ctx.values[BUDGET] = self.evaluator.evaluate(budget_definition.formula or "", ctx, BUDGET)
            computed.append(BUDGET)

        for definition in self._ordered(FieldGroup.budget_target, period):
            if definition.id == BUDGET:
                continue
            self._store(definition, ctx, computed)

        return DerivedSnapshot(
            values=MappingProxyType(dict(ctx.values)),
            period_type=period,
            days_in_period=ctx.days_in_period,
            field_ids=tuple(dict.fromkeys(computed)),
        )

    def _ordered(self, group: FieldGroup, period: PeriodType) -> list[FieldDefinition]:
        return [item for item in self.registry.calculated_fields(group) if item.applies_to(period)]

    def _store(self, definition: FieldDefinition, ctx: ValueContext, computed: list[str]) -> None:
        value = self.evaluator.evaluate(definition.formula or "", ctx, definition.id)
        if definition.id in COUNT_FIELDS:
            value = round_count(value)
        ctx.values[definition.id] = value
        computed.append(definition.id)


def calculate_all(
    inputs: Mapping[str, object] | None,
    days_in_period: int,
    period_type: PeriodType | str,
    *,
    registry: FieldRegistry | None = None,
) -> DerivedSnapshot:
    return Calculator(registry).calculate_all(inputs, days_in_period, period_type)
