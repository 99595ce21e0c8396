"""Expression Evaluator — computes pass/fail for a rule's expression.

Five expression forms, dispatched by the rule's expression type:

    constraint    display.size >= 75
    formula       cableRun(display.position, rack.position) * 1.1 <= 100
    conditional   if room.seats > 12 then range_match: display.count 2-4 else constraint: display.count >= 1
    range_match   4-8                      (tests the rule's ``field``)
                  display.count 4-8        (inline field)
    pattern       ^HDMI(-2\\.1)?$           (tests the rule's ``field``)
                  cable.type ~ ^HDMI        (inline field)

Expressions compile once into small objects with an ``evaluate(context)``
method. Malformed text raises ExpressionParseError at compile time. Missing
or mistyped context values never raise: they fail closed (matched=False).
"""

import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Callable, Optional, Protocol

from avstandards.engine.errors import ExpressionParseError
from avstandards.engine.field_path import MISSING, PATH_PATTERN, FieldPath
from avstandards.engine.formula import FormulaFailure, compare, compile_formula
from avstandards.engine.matcher import is_number, strictly_equal
from avstandards.engine.models import EvaluationOutcome, Rule, RuleExpressionType

MAX_EXPRESSION_LENGTH = 2000

_CONSTRAINT_RE = re.compile(rf"^\s*({PATH_PATTERN})\s*(>=|<=|==|!=|>|<)\s*(.+?)\s*$", re.DOTALL)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?\Z")
_BARE_WORD_RE = re.compile(r"[A-Za-z0-9_.\-]+\Z")
_NUM = r"-?\d+(?:\.\d+)?"
_RANGE_RE = re.compile(rf"^\s*(?:({PATH_PATTERN})\s+)?({_NUM})\s*-\s*({_NUM})\s*$")
_PATTERN_INLINE_RE = re.compile(rf"^\s*({PATH_PATTERN})\s+~\s+(.+?)\s*$", re.DOTALL)
_CONDITIONAL_RE = re.compile(r"^\s*if\s+(.+?)\s+then\s+(.+?)(?:\s+else\s+(.+?))?\s*$", re.DOTALL)
_BRANCH_RE = re.compile(r"^\s*([a-z_]+)\s*:\s*(.+?)\s*$", re.DOTALL)

_FIX_TEMPLATES = {
    ">=": "Increase {path} to at least {literal}",
    "<=": "Reduce {path} to at most {literal}",
    ">": "Increase {path} above {literal}",
    "<": "Reduce {path} below {literal}",
    "==": "Set {path} to {literal}",
    "!=": "Change {path} from {literal}",
}


class CompiledExpression(Protocol):
    text: str

    def evaluate(self, context: Mapping) -> EvaluationOutcome: ...


def parse_literal(raw: str, expression: str = "") -> Any:
    """Parse the right-hand side of a constraint."""
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    if text == "true":
        return True
    if text == "false":
        return False
    if _NUMBER_RE.match(text):
        number = float(text)
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    if _BARE_WORD_RE.match(text):
        return text
    raise ExpressionParseError(f"Cannot parse value '{text}'", expression)


def _resolve_field(inline: Optional[str], default_field: Optional[str], expression: str, kind: str) -> FieldPath:
    path = inline or default_field
    if not path:
        raise ExpressionParseError(f"{kind} expression needs a field to test", expression)
    return FieldPath.parse(path)


def _missing(path: FieldPath) -> EvaluationOutcome:
    return EvaluationOutcome(
        matched=False,
        message=f"Required field '{path}' is missing from the design",
        field=path.text,
        suggested_fix=f"Provide a value for {path}",
    )


# ── Expression forms ──


class Constraint:
    """``<field-path> <op> <literal>``."""

    def __init__(self, text: str, path: FieldPath, op: str, literal: Any):
        self.text = text
        self.path = path
        self.op = op
        self.literal = literal

    @classmethod
    def compile(cls, text: str, default_field: Optional[str] = None) -> "Constraint":
        match = _CONSTRAINT_RE.match(text)
        if not match:
            raise ExpressionParseError("Expected '<field> <op> <value>'", text)
        path_text, op, raw = match.groups()
        return cls(text, FieldPath.parse(path_text), op, parse_literal(raw, text))

    def evaluate(self, context: Mapping) -> EvaluationOutcome:
        value = self.path.resolve(context)
        if value is MISSING:
            return _missing(self.path)

        if self.op in ("==", "!="):
            equal = strictly_equal(value, self.literal)
            matched = equal if self.op == "==" else not equal
        elif is_number(value) and is_number(self.literal):
            matched = compare(self.op, float(value), float(self.literal))
        else:
            return EvaluationOutcome(
                matched=False,
                message=f"'{self.path}' must be numeric to compare with {self.op} {self.literal!r} (got {value!r})",
                field=self.path.text,
            )

        if matched:
            return EvaluationOutcome(
                matched=True, message=f"{self.path} {self.op} {self.literal!r} satisfied", field=self.path.text
            )
        return EvaluationOutcome(
            matched=False,
            message=f"{self.path} is {value!r}, expected {self.op} {self.literal!r}",
            field=self.path.text,
            suggested_fix=_FIX_TEMPLATES[self.op].format(path=self.path, literal=repr(self.literal)),
        )


class FormulaCheck:
    """Arithmetic over fields compared against an embedded threshold."""

    def __init__(self, text: str, default_field: Optional[str] = None):
        self.text = text
        self.formula = compile_formula(text)
        if default_field:
            self.label = FieldPath.parse(default_field).text
        else:
            self.label = self.formula.fields[0].text if self.formula.fields else None

    @classmethod
    def compile(cls, text: str, default_field: Optional[str] = None) -> "FormulaCheck":
        return cls(text, default_field)

    def evaluate(self, context: Mapping) -> EvaluationOutcome:
        try:
            result = self.formula.evaluate(context)
        except FormulaFailure as e:
            return EvaluationOutcome(matched=False, message=str(e), field=e.field or self.label)

        detail = f"{self.text}: computed {result.value:g}, threshold {self.formula.operator} {result.threshold:g}"
        return EvaluationOutcome(
            matched=result.passed,
            derived_value=result.value,
            message=f"{detail} satisfied" if result.passed else detail,
            field=self.label,
        )


class RangeMatch:
    """``[<field-path>] <min>-<max>``, inclusive."""

    def __init__(self, text: str, path: FieldPath, low: float, high: float):
        self.text = text
        self.path = path
        self.low = low
        self.high = high

    @classmethod
    def compile(cls, text: str, default_field: Optional[str] = None) -> "RangeMatch":
        match = _RANGE_RE.match(text)
        if not match:
            raise ExpressionParseError("Expected a range of the form 'min-max'", text)
        inline, low_text, high_text = match.groups()
        low, high = float(low_text), float(high_text)
        if low > high:
            raise ExpressionParseError(f"Range minimum {low:g} exceeds maximum {high:g}", text)
        return cls(text, _resolve_field(inline, default_field, text, "range_match"), low, high)

    def evaluate(self, context: Mapping) -> EvaluationOutcome:
        value = self.path.resolve(context)
        if value is MISSING:
            return _missing(self.path)
        if not is_number(value):
            return EvaluationOutcome(
                matched=False, message=f"'{self.path}' must be numeric (got {value!r})", field=self.path.text
            )
        bounds = f"{self.low:g}-{self.high:g}"
        if self.low <= value <= self.high:
            return EvaluationOutcome(matched=True, message=f"{self.path} = {value:g} within {bounds}", field=self.path.text)
        return EvaluationOutcome(
            matched=False,
            message=f"{self.path} = {value:g} is outside {bounds}",
            field=self.path.text,
            suggested_fix=f"Adjust {self.path} to between {self.low:g} and {self.high:g}",
        )


class PatternMatch:
    """``[<field-path> ~ ]<regex>``, searched in a string field."""

    def __init__(self, text: str, path: FieldPath, pattern: "re.Pattern[str]"):
        self.text = text
        self.path = path
        self.pattern = pattern

    @classmethod
    def compile(cls, text: str, default_field: Optional[str] = None) -> "PatternMatch":
        inline = None
        source = text
        match = _PATTERN_INLINE_RE.match(text)
        if match:
            inline, source = match.groups()
        path = _resolve_field(inline, default_field, text, "pattern")
        try:
            pattern = re.compile(source)
        except re.error as e:
            raise ExpressionParseError(f"Invalid regular expression: {e}", text) from e
        return cls(text, path, pattern)

    def evaluate(self, context: Mapping) -> EvaluationOutcome:
        value = self.path.resolve(context)
        if value is MISSING:
            return _missing(self.path)
        if not isinstance(value, str):
            return EvaluationOutcome(
                matched=False, message=f"'{self.path}' must be text (got {value!r})", field=self.path.text
            )
        if self.pattern.search(value):
            return EvaluationOutcome(matched=True, message=f"{self.path} matches /{self.pattern.pattern}/", field=self.path.text)
        return EvaluationOutcome(
            matched=False,
            message=f"{self.path} = {value!r} does not match /{self.pattern.pattern}/",
            field=self.path.text,
        )


class Conditional:
    """``if <constraint> then <type>: <expr> [else <type>: <expr>]``."""

    def __init__(self, text: str, guard: Constraint, then: CompiledExpression, otherwise: Optional[CompiledExpression]):
        self.text = text
        self.guard = guard
        self.then = then
        self.otherwise = otherwise

    @classmethod
    def compile(cls, text: str, default_field: Optional[str] = None) -> "Conditional":
        match = _CONDITIONAL_RE.match(text)
        if not match:
            raise ExpressionParseError("Expected 'if <condition> then <type>: <expression> [else ...]'", text)
        guard_text, then_text, else_text = match.groups()
        guard = Constraint.compile(guard_text)
        then = cls._branch(then_text, text, default_field)
        otherwise = cls._branch(else_text, text, default_field) if else_text else None
        return cls(text, guard, then, otherwise)

    @staticmethod
    def _branch(branch: str, text: str, default_field: Optional[str]) -> CompiledExpression:
        match = _BRANCH_RE.match(branch)
        if not match:
            raise ExpressionParseError(f"Branch '{branch}' must read '<type>: <expression>'", text)
        type_name, body = match.groups()
        try:
            expression_type = RuleExpressionType(type_name)
        except ValueError:
            raise ExpressionParseError(f"Unknown branch type '{type_name}'", text) from None
        if expression_type is RuleExpressionType.CONDITIONAL:
            raise ExpressionParseError("Conditional branches cannot nest another conditional", text)
        return COMPILERS[expression_type](body, default_field)

    def evaluate(self, context: Mapping) -> EvaluationOutcome:
        taken = self.guard.evaluate(context).matched
        branch = self.then if taken else self.otherwise
        if branch is None:
            return EvaluationOutcome(matched=True, message=f"Guard '{self.guard.text}' not met; nothing to enforce")
        outcome = branch.evaluate(context)
        label = "then" if taken else "else"
        return outcome.model_copy(update={"message": f"{outcome.message} ({label} branch)"})


COMPILERS: dict[RuleExpressionType, Callable[[str, Optional[str]], CompiledExpression]] = {
    RuleExpressionType.CONSTRAINT: Constraint.compile,
    RuleExpressionType.FORMULA: FormulaCheck.compile,
    RuleExpressionType.CONDITIONAL: Conditional.compile,
    RuleExpressionType.RANGE_MATCH: RangeMatch.compile,
    RuleExpressionType.PATTERN: PatternMatch.compile,
}


@lru_cache(maxsize=1024)
def compile_expression(
    expression_type: RuleExpressionType, expression: str, default_field: Optional[str] = None
) -> CompiledExpression:
    """Compile expression text for its type. Raises ExpressionParseError."""
    if not expression or not expression.strip():
        raise ExpressionParseError("Empty expression", expression)
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionParseError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters", expression)
    return COMPILERS[RuleExpressionType(expression_type)](expression, default_field)


class ExpressionEvaluator:
    """Evaluates a rule's expression against a design context."""

    def compile(self, rule: Rule) -> CompiledExpression:
        return compile_expression(rule.expression_type, rule.expression, rule.field)

    def evaluate(self, rule: Rule, context: Mapping) -> EvaluationOutcome:
        """Raises ExpressionParseError for malformed expressions; never for missing data."""
        return self.compile(rule).evaluate(context)
