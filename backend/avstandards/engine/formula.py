"""Formula parser — restricted arithmetic over design fields.

Grammar (recursive descent, no general-purpose evaluator):

    formula    := additive CMP additive EOF
    additive   := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := "-" unary | "+" unary | primary
    primary    := NUMBER | NAME "(" [additive ("," additive)*] ")" | PATH | "(" additive ")"
    CMP        := ">=" | "<=" | "==" | "!=" | ">" | "<"

Function names come from a closed table. Anything outside the grammar raises
ExpressionParseError at compile time; nothing in an expression can reach
Python's own evaluation machinery.

Example:
    formula = compile_formula("cableRun(display.position, rack.position) <= 100")
    result = formula.evaluate(context)
    result.passed, result.value
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Optional, Union

from avstandards.engine.errors import ExpressionParseError
from avstandards.engine.field_path import MISSING, PATH_PATTERN, FieldPath
from avstandards.engine.matcher import is_number

MAX_FORMULA_LENGTH = 2000
MAX_NESTING_DEPTH = 32

_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("NUMBER", r"\d+(?:\.\d+)?"),
    ("PATH", PATH_PATTERN),
    ("CMP", r">=|<=|==|!=|>|<"),
    ("OP", r"[+\-*/]"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("COMMA", r","),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


# ── AST ──


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class FieldRef:
    path: FieldPath


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Comparison:
    op: str
    left: Any
    right: Any


Node = Union[Number, FieldRef, Call, Unary, Binary]
Value = Union[float, Mapping]


class FormulaFailure(Exception):
    """Evaluation could not produce a number; the formula fails closed."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


# ── Function table ──


def _finite(value: float, what: str) -> float:
    # inf and nan cannot be compared or rounded meaningfully
    if not math.isfinite(value):
        raise FormulaFailure(f"{what} is not a finite number")
    return value


def _to_finite(value: Value) -> Optional[float]:
    """``float(value)`` for finite numbers, None for anything else."""
    if not is_number(value):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _numeric(name: str, value: Value) -> float:
    number = _to_finite(value)
    if number is None:
        raise FormulaFailure(f"{name}() expects finite numbers")
    return number


def _point(value: Value) -> tuple[float, float, float]:
    if not isinstance(value, Mapping):
        raise FormulaFailure("cableRun() expects two points or two numbers")
    coords = []
    for axis in ("x", "y", "z"):
        coord = _to_finite(value.get(axis, 0 if axis == "z" else None))
        if coord is None:
            raise FormulaFailure(f"cableRun() point is missing numeric '{axis}'")
        coords.append(coord)
    return coords[0], coords[1], coords[2]


def _cable_run(a: Value, b: Value) -> float:
    """Orthogonal run length: cables follow walls and trays, not diagonals."""
    if is_number(a) and is_number(b):
        return abs(_numeric("cableRun", a)) + abs(_numeric("cableRun", b))
    pa, pb = _point(a), _point(b)
    return sum(abs(p - q) for p, q in zip(pa, pb))


def _sqrt(x: Value) -> float:
    value = _numeric("sqrt", x)
    if value < 0:
        raise FormulaFailure("sqrt() of a negative number")
    return math.sqrt(value)


def _round(x: Value, digits: Value = 0) -> float:
    return float(round(_numeric("round", x), int(_numeric("round", digits))))


# name -> (implementation, min args, max args or None for variadic)
FUNCTIONS: dict[str, tuple[Callable[..., float], int, Optional[int]]] = {
    "min": (lambda *xs: min(_numeric("min", x) for x in xs), 1, None),
    "max": (lambda *xs: max(_numeric("max", x) for x in xs), 1, None),
    "abs": (lambda x: abs(_numeric("abs", x)), 1, 1),
    "round": (_round, 1, 2),
    "floor": (lambda x: float(math.floor(_numeric("floor", x))), 1, 1),
    "ceil": (lambda x: float(math.ceil(_numeric("ceil", x))), 1, 1),
    "sqrt": (_sqrt, 1, 1),
    "cableRun": (_cable_run, 2, 2),
}


# ── Tokenizer & parser ──


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionParseError(f"Unexpected character '{text[pos]}'", text, pos)
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("EOF", "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _expect(self, kind: str) -> Token:
        token = self.current
        if token.kind != kind:
            found = token.text or "end of expression"
            raise ExpressionParseError(f"Expected {kind.lower()}, found '{found}'", self.text, token.position)
        return self._advance()

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise ExpressionParseError("Formula is nested too deeply", self.text, self.current.position)

    def parse(self) -> Comparison:
        left = self.additive()
        if self.current.kind != "CMP":
            raise ExpressionParseError(
                "Formula needs a comparison against a threshold", self.text, self.current.position
            )
        op = self._advance().text
        right = self.additive()
        if self.current.kind != "EOF":
            raise ExpressionParseError(f"Unexpected '{self.current.text}'", self.text, self.current.position)
        return Comparison(op, left, right)

    def additive(self) -> Node:
        node = self.term()
        while self.current.kind == "OP" and self.current.text in "+-":
            op = self._advance().text
            node = Binary(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == "OP" and self.current.text in "*/":
            op = self._advance().text
            node = Binary(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.current.kind == "OP" and self.current.text in "+-":
            op = self._advance().text
            self._enter()
            operand = self.unary()
            self.depth -= 1
            return Unary(op, operand)
        return self.primary()

    def primary(self) -> Node:
        token = self.current
        if token.kind == "NUMBER":
            self._advance()
            return Number(float(token.text))
        if token.kind == "LPAREN":
            self._advance()
            self._enter()
            node = self.additive()
            self.depth -= 1
            self._expect("RPAREN")
            return node
        if token.kind == "PATH":
            self._advance()
            if self.current.kind == "LPAREN":
                return self._call(token)
            return FieldRef(FieldPath.parse(token.text))
        found = token.text or "end of expression"
        raise ExpressionParseError(f"Unexpected '{found}'", self.text, token.position)

    def _call(self, name_token: Token) -> Call:
        name = name_token.text
        if name not in FUNCTIONS:
            raise ExpressionParseError(f"Unknown function '{name}'", self.text, name_token.position)
        self._expect("LPAREN")
        self._enter()
        args: list[Node] = []
        if self.current.kind != "RPAREN":
            args.append(self.additive())
            while self.current.kind == "COMMA":
                self._advance()
                args.append(self.additive())
        self.depth -= 1
        self._expect("RPAREN")

        _, min_args, max_args = FUNCTIONS[name]
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise ExpressionParseError(
                f"{name}() takes {min_args}{'' if max_args == min_args else '+'} argument(s), got {len(args)}",
                self.text,
                name_token.position,
            )
        return Call(name, tuple(args))


# ── Evaluation ──


def _field_refs(node: Any) -> list[FieldPath]:
    if isinstance(node, FieldRef):
        return [node.path]
    if isinstance(node, Call):
        return [p for arg in node.args for p in _field_refs(arg)]
    if isinstance(node, Unary):
        return _field_refs(node.operand)
    if isinstance(node, (Binary, Comparison)):
        return _field_refs(node.left) + _field_refs(node.right)
    return []


def _as_number(value: Value, what: str) -> float:
    number = _to_finite(value)
    if number is None:
        raise FormulaFailure(f"{what} is not a finite number")
    return number


def _arithmetic(op: str, left: float, right: float) -> float:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        raise FormulaFailure("Division by zero")
    return left / right


def _evaluate(node: Node, context: Mapping) -> Value:
    if isinstance(node, Number):
        return _finite(node.value, f"Number '{node.value}'")
    if isinstance(node, FieldRef):
        value = node.path.resolve(context)
        if value is MISSING:
            raise FormulaFailure(f"Missing field '{node.path}'", field=node.path.text)
        number = _to_finite(value)
        if number is not None:
            return number
        if isinstance(value, Mapping):
            return value
        raise FormulaFailure(f"Field '{node.path}' is not a finite number", field=node.path.text)
    if isinstance(node, Call):
        impl = FUNCTIONS[node.name][0]
        return _finite(impl(*(_evaluate(arg, context) for arg in node.args)), f"{node.name}()")
    if isinstance(node, Unary):
        operand = _as_number(_evaluate(node.operand, context), "Operand")
        return -operand if node.op == "-" else operand
    if isinstance(node, Binary):
        left = _as_number(_evaluate(node.left, context), "Left operand")
        right = _as_number(_evaluate(node.right, context), "Right operand")
        return _finite(_arithmetic(node.op, left, right), "Arithmetic result")
    raise TypeError(f"Unknown formula node {node!r}")


def compare(op: str, left: float, right: float) -> bool:
    if op == ">=":
        return left >= right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == "==":
        return math.isclose(left, right, rel_tol=1e-9, abs_tol=1e-9)
    if op == "!=":
        return not math.isclose(left, right, rel_tol=1e-9, abs_tol=1e-9)
    raise ValueError(f"Unknown comparison operator {op!r}")


@dataclass(frozen=True)
class FormulaResult:
    passed: bool
    value: float
    threshold: float


class Formula:
    """A compiled formula: arithmetic left side compared with a threshold."""

    def __init__(self, text: str, tree: Comparison):
        self.text = text
        self.tree = tree
        self.fields = tuple(dict.fromkeys(_field_refs(tree)))

    @property
    def operator(self) -> str:
        return self.tree.op

    def evaluate(self, context: Mapping) -> FormulaResult:
        """Raises FormulaFailure when a value cannot be computed."""
        value = _as_number(_evaluate(self.tree.left, context), "Formula")
        threshold = _as_number(_evaluate(self.tree.right, context), "Threshold")
        return FormulaResult(compare(self.tree.op, value, threshold), value, threshold)


@lru_cache(maxsize=512)
def compile_formula(text: str) -> Formula:
    text = text.strip()
    if not text:
        raise ExpressionParseError("Empty formula", text)
    if len(text) > MAX_FORMULA_LENGTH:
        raise ExpressionParseError(f"Formula longer than {MAX_FORMULA_LENGTH} characters", text)
    return Formula(text, _Parser(text).parse())
