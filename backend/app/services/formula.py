from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache

from app.models.enums import PeriodType
from app.services.management_cost import management_cost
from app.utils.decimal_math import finite_or_zero


logger = logging.getLogger(__name__)

DAYS_IN_PERIOD = "daysInPeriod"
PERIOD_TYPE = "periodType"
PSEUDO_VARIABLES = frozenset({DAYS_IN_PERIOD, PERIOD_TYPE})

BUDGET = "budget"
ANNUAL_BUDGET = "annualBudget"
MONTHLY_BUDGET = "calculatedMonthlyBudget"


class FormulaError(ValueError):
    pass


class FormulaSyntaxError(FormulaError):
    pass


class FormulaEvaluationError(FormulaError):
    pass


class FormulaConfigurationError(FormulaError):
    pass


class UnknownFieldError(FormulaConfigurationError):
    pass


@dataclass
class ValueContext:
    values: dict[str, float] = field(default_factory=dict)
    days_in_period: int = 30
    period_type: PeriodType = PeriodType.monthly

    def get(self, field_id: str) -> float:
        return finite_or_zero(self.values.get(field_id, 0.0))


# ── syntax tree ──


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple["Node", ...]


Node = Number | Text | Name | Unary | Binary | Conditional | Call


# ── tokenizer ──


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


_TOKEN_RE = re.compile(
    r"""
    (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<string>'[^']*'|"[^"]*")
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op>===|!==|==|!=|<=|>=|[-+*/()<>?:,])
    |(?P<space>\s+)
    |(?P<invalid>.)
    """,
    re.VERBOSE,
)

_COMPARISON_OPS = {"==", "!=", "===", "!==", "<", "<=", ">", ">="}


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup or "invalid"
        if kind == "space":
            continue
        if kind == "invalid":
            raise FormulaSyntaxError(f"Unexpected character {match.group()!r} at {match.start()}.")
        tokens.append(Token(kind=kind, text=match.group(), position=match.start()))
    tokens.append(Token(kind="end", text="", position=len(text)))
    return tokens


# ── parser ──


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "end":
            self.index += 1
        return token

    def _accept(self, *ops: str) -> Token | None:
        token = self.current
        if token.kind == "op" and token.text in ops:
            return self._advance()
        return None

    def _expect(self, op: str) -> Token:
        token = self._accept(op)
        if token is None:
            found = self.current.text or "end of formula"
            raise FormulaSyntaxError(f"Expected {op!r} at {self.current.position}, found {found!r}.")
        return token

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise FormulaSyntaxError("Empty formula.")
        node = self._conditional()
        if self.current.kind != "end":
            raise FormulaSyntaxError(
                f"Unexpected {self.current.text!r} at {self.current.position} in {self.text!r}."
            )
        return node

    def _conditional(self) -> Node:
        test = self._comparison()
        if self._accept("?") is None:
            return test
        then = self._conditional()
        self._expect(":")
        otherwise = self._conditional()
        return Conditional(test=test, then=then, otherwise=otherwise)

    def _comparison(self) -> Node:
        left = self._additive()
        token = self._accept(*_COMPARISON_OPS)
        if token is None:
            return left
        right = self._additive()
        return Binary(op=token.text, left=left, right=right)

    def _additive(self) -> Node:
        node = self._term()
        while (token := self._accept("+", "-")) is not None:
            node = Binary(op=token.text, left=node, right=self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while (token := self._accept("*", "/")) is not None:
            node = Binary(op=token.text, left=node, right=self._unary())
        return node

    def _unary(self) -> Node:
        token = self._accept("-", "+")
        if token is not None:
            return Unary(op=token.text, operand=self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            return Number(float(token.text))
        if token.kind == "string":
            self._advance()
            return Text(token.text[1:-1])
        if token.kind == "name":
            self._advance()
            if self._accept("(") is None:
                return Name(token.text)
            args: list[Node] = []
            if self._accept(")") is None:
                args.append(self._conditional())
                while self._accept(",") is not None:
                    args.append(self._conditional())
                self._expect(")")
            return Call(name=token.text, args=tuple(args))
        if self._accept("(") is not None:
            node = self._conditional()
            self._expect(")")
            return node
        found = token.text or "end of formula"
        raise FormulaSyntaxError(f"Unexpected {found!r} at {token.position} in {self.text!r}.")


@lru_cache(maxsize=512)
def parse_formula(text: str) -> Node:
    return _Parser(text).parse()


def formula_identifiers(node: Node) -> set[str]:
    if isinstance(node, Name):
        return {node.id}
    if isinstance(node, Unary):
        return formula_identifiers(node.operand)
    if isinstance(node, Binary):
        return formula_identifiers(node.left) | formula_identifiers(node.right)
    if isinstance(node, Conditional):
        return (
            formula_identifiers(node.test)
            | formula_identifiers(node.then)
            | formula_identifiers(node.otherwise)
        )
    if isinstance(node, Call):
        names: set[str] = set()
        for arg in node.args:
            names |= formula_identifiers(arg)
        return names
    return set()


def formula_calls(node: Node) -> set[str]:
    if isinstance(node, Call):
        names = {node.name}
        for arg in node.args:
            names |= formula_calls(arg)
        return names
    if isinstance(node, Unary):
        return formula_calls(node.operand)
    if isinstance(node, Binary):
        return formula_calls(node.left) | formula_calls(node.right)
    if isinstance(node, Conditional):
        return formula_calls(node.test) | formula_calls(node.then) | formula_calls(node.otherwise)
    return set()


# ── period-dependent budget values ──


def annual_budget(ctx: ValueContext) -> float:
    return finite_or_zero(ctx.get("revenue") * (ctx.get("com") / 100))


def monthly_budget(ctx: ValueContext) -> float:
    if ctx.period_type == PeriodType.yearly:
        return annual_budget(ctx) / 12
    return finite_or_zero(ctx.get("revenue") * (ctx.get("com") / 100))


def period_budget(ctx: ValueContext) -> float:
    if ctx.period_type == PeriodType.yearly:
        return annual_budget(ctx)
    return monthly_budget(ctx)


_PERIOD_FIELDS: dict[str, Callable[[ValueContext], float]] = {
    BUDGET: period_budget,
    MONTHLY_BUDGET: monthly_budget,
    ANNUAL_BUDGET: annual_budget,
}


DEFAULT_FUNCTIONS: dict[str, Callable[[float], float]] = {
    "managementCost": management_cost,
}


class FormulaEvaluator:
    def __init__(
        self,
        known_fields: Iterable[str],
        functions: Mapping[str, Callable[[float], float]] | None = None,
    ) -> None:
        self.known_fields = frozenset(known_fields)
        self.functions = dict(DEFAULT_FUNCTIONS if functions is None else functions)

    def evaluate(self, formula: str, ctx: ValueContext, target_field_id: str) -> float:
        resolver = _PERIOD_FIELDS.get(target_field_id)
        if resolver is not None:
            return finite_or_zero(resolver(ctx))

        try:
            result = self._eval(parse_formula(formula), ctx)
            if isinstance(result, str):
                raise FormulaEvaluationError(f"Formula produced text {result!r}.")
        except FormulaConfigurationError:
            raise
        except (ZeroDivisionError, OverflowError) as exc:
            logger.debug("Formula for %s evaluated to 0: %s", target_field_id, exc)
            return 0.0
        except (FormulaSyntaxError, FormulaEvaluationError) as exc:
            logger.warning("Formula for %s evaluated to 0: %s", target_field_id, exc)
            return 0.0

        if math.isnan(result) or math.isinf(result):
            logger.warning("Formula for %s produced a non-finite value; using 0.", target_field_id)
            return 0.0
        return result

    def _eval(self, node: Node, ctx: ValueContext) -> float | str:
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Text):
            return node.value
        if isinstance(node, Name):
            return self._resolve_name(node.id, ctx)
        if isinstance(node, Unary):
            operand = self._number(self._eval(node.operand, ctx))
            return -operand if node.op == "-" else operand
        if isinstance(node, Conditional):
            test = self._eval(node.test, ctx)
            branch = node.then if self._truthy(test) else node.otherwise
            return self._eval(branch, ctx)
        if isinstance(node, Call):
            return self._call(node, ctx)
        if isinstance(node, Binary):
            left = self._eval(node.left, ctx)
            right = self._eval(node.right, ctx)
            if node.op in _COMPARISON_OPS:
                return 1.0 if self._compare(node.op, left, right) else 0.0
            lhs = self._number(left)
            rhs = self._number(right)
            if node.op == "+":
                return lhs + rhs
            if node.op == "-":
                return lhs - rhs
            if node.op == "*":
                return lhs * rhs
            return lhs / rhs
        raise FormulaEvaluationError(f"Unsupported node {node!r}.")

    def _resolve_name(self, name: str, ctx: ValueContext) -> float | str:
        if name == DAYS_IN_PERIOD:
            return float(ctx.days_in_period)
        if name == PERIOD_TYPE:
            return ctx.period_type.value
        if name == BUDGET:
            return period_budget(ctx)
        if name not in self.known_fields:
            raise UnknownFieldError(f"Formula references unknown field {name!r}.")
        return ctx.get(name)

    def _call(self, node: Call, ctx: ValueContext) -> float:
        function = self.functions.get(node.name)
        if function is None:
            raise FormulaConfigurationError(f"Formula calls unknown function {node.name!r}.")
        if len(node.args) != 1:
            raise FormulaEvaluationError(f"{node.name} expects exactly one argument.")
        argument = self._number(self._eval(node.args[0], ctx))
        return float(function(finite_or_zero(argument)))

    @staticmethod
    def _number(value: float | str) -> float:
        if isinstance(value, str):
            raise FormulaEvaluationError(f"Text {value!r} used in arithmetic.")
        return value

    @staticmethod
    def _truthy(value: float | str) -> bool:
        if isinstance(value, str):
            return value != ""
        return value != 0 and not math.isnan(value)

    @staticmethod
    def _compare(op: str, left: float | str, right: float | str) -> bool:
        if op in {"==", "==="}:
            return left == right
        if op in {"!=", "!=="}:
            return left != right
        if isinstance(left, str) or isinstance(right, str):
            raise FormulaEvaluationError(f"Cannot order text with {op!r}.")
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
