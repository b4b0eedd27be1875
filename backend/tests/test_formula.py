import math

import pytest

from app.models.enums import PeriodType
from app.services.formula import (
    FormulaConfigurationError,
    FormulaEvaluator,
    FormulaSyntaxError,
    UnknownFieldError,
    ValueContext,
    formula_calls,
    formula_identifiers,
    parse_formula,
    tokenize,
)


def _evaluator() -> FormulaEvaluator:
    return FormulaEvaluator(["a", "b", "revenue", "com", "annualBudget", "calculatedMonthlyBudget"])


@pytest.mark.parametrize(
    ("formula", "expected"),
    [
        ("a / b", 2.0),
        ("a + b * 2", 12.0),
        ("(a + b) / 3", 3.0),
        ("-(a - b)", -3.0),
        ("a > b", 1.0),
        ("a <= b", 0.0),
        ("a == 6 ? 10 : 20", 10.0),
        ("a != 6 ? 10 : 20", 20.0),
        ("1.5e2 / a", 25.0),
    ],
)
def test_arithmetic_and_comparisons(formula: str, expected: float) -> None:
    ctx = ValueContext(values={"a": 6, "b": 3})
    assert _evaluator().evaluate(formula, ctx, "x") == pytest.approx(expected)


def test_period_type_ternary_follows_context() -> None:
    formula = "periodType === 'yearly' ? a : b"
    evaluator = _evaluator()
    yearly = ValueContext(values={"a": 6, "b": 3}, period_type=PeriodType.yearly)
    monthly = ValueContext(values={"a": 6, "b": 3}, period_type=PeriodType.monthly)
    assert evaluator.evaluate(formula, yearly, "x") == 6.0
    assert evaluator.evaluate(formula, monthly, "x") == 3.0


def test_days_in_period_pseudo_variable() -> None:
    ctx = ValueContext(values={"a": 62}, days_in_period=31)
    assert _evaluator().evaluate("a / daysInPeriod", ctx, "x") == 2.0


def test_division_by_zero_yields_zero() -> None:
    ctx = ValueContext(values={"a": 6, "b": 0})
    assert _evaluator().evaluate("a / b", ctx, "x") == 0.0
    assert _evaluator().evaluate("b / b", ctx, "x") == 0.0


def test_missing_known_field_reads_as_zero() -> None:
    assert _evaluator().evaluate("revenue + 1", ValueContext(), "x") == 1.0


def test_non_finite_context_values_read_as_zero() -> None:
    ctx = ValueContext(values={"a": math.nan, "b": math.inf})
    assert _evaluator().evaluate("a + b + 1", ctx, "x") == 1.0


@pytest.mark.parametrize("formula", ["a +", "a $ b", "(a + b", "", "a b", "periodType + 1"])
def test_malformed_formula_yields_zero(formula: str) -> None:
    ctx = ValueContext(values={"a": 6, "b": 3})
    assert _evaluator().evaluate(formula, ctx, "x") == 0.0


def test_unknown_field_is_a_configuration_error() -> None:
    with pytest.raises(UnknownFieldError):
        _evaluator().evaluate("ghost * 2", ValueContext(), "x")


def test_unknown_function_is_a_configuration_error() -> None:
    with pytest.raises(FormulaConfigurationError):
        _evaluator().evaluate("round(a)", ValueContext(values={"a": 1}), "x")


def test_management_cost_call() -> None:
    ctx = ValueContext(values={"a": 5000})
    assert _evaluator().evaluate("managementCost(a)", ctx, "x") == 2000.0
    assert _evaluator().evaluate("managementCost(a * 2)", ctx, "x") == 2500.0


def test_budget_fields_resolve_by_period() -> None:
    evaluator = _evaluator()
    values = {"revenue": 100000, "com": 10}
    yearly = ValueContext(values=dict(values), period_type=PeriodType.yearly)
    monthly = ValueContext(values=dict(values), period_type=PeriodType.monthly)

    assert evaluator.evaluate("", yearly, "annualBudget") == pytest.approx(10000)
    assert evaluator.evaluate("", yearly, "calculatedMonthlyBudget") == pytest.approx(10000 / 12)
    assert evaluator.evaluate("", yearly, "budget") == pytest.approx(10000)
    assert evaluator.evaluate("", monthly, "calculatedMonthlyBudget") == pytest.approx(10000)
    assert evaluator.evaluate("", monthly, "budget") == pytest.approx(10000)
    assert evaluator.evaluate("budget / daysInPeriod", monthly, "dailyBudget") == pytest.approx(10000 / 30)


def test_parser_is_cached_and_reports_names() -> None:
    tree = parse_formula("managementCost(x) + y / daysInPeriod")
    assert parse_formula("managementCost(x) + y / daysInPeriod") is tree
    assert formula_identifiers(tree) == {"x", "y", "daysInPeriod"}
    assert formula_calls(tree) == {"managementCost"}


def test_tokenize_rejects_unknown_characters() -> None:
    with pytest.raises(FormulaSyntaxError):
        tokenize("a & b")
    with pytest.raises(FormulaSyntaxError):
        parse_formula("__import__('os')[0]")
