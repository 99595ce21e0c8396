"""Condition Matcher — decides whether a rule applies to a design context.

Conditions are AND-combined and fail closed: when the context carries no
value for a condition's dimension, the condition is false. An incompletely
specified context therefore never triggers rules meant for a narrower scope.
"""

from collections.abc import Mapping
from typing import Any, Callable

from avstandards.engine.field_path import MISSING
from avstandards.engine.models import ConditionOperator, Rule, RuleCondition, RuleDimension

# Context keys read for each dimension, in lookup order
DIMENSION_CONTEXT_KEYS: dict[RuleDimension, tuple[str, ...]] = {
    RuleDimension.ROOM_TYPE: ("room_type", "roomType"),
    RuleDimension.PLATFORM: ("platform",),
    RuleDimension.ECOSYSTEM: ("ecosystem",),
    RuleDimension.TIER: ("tier", "qualityTier", "quality_tier"),
    RuleDimension.USE_CASE: ("use_case", "useCase"),
    RuleDimension.CLIENT: ("client_id", "clientId", "client"),
}


def is_number(value: Any) -> bool:
    """Numbers only; booleans are not numeric here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strictly_equal(left: Any, right: Any) -> bool:
    """Equality that never equates booleans with numbers (True != 1)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if is_number(left) and is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _contains_strictly(items: Any, value: Any) -> bool:
    return any(strictly_equal(item, value) for item in items)


def dimension_value(dimension: RuleDimension, context: Mapping[str, Any]) -> Any:
    """Read a dimension value from the context; MISSING when absent or None."""
    for key in DIMENSION_CONTEXT_KEYS[dimension]:
        value = context.get(key)
        if value is not None:
            return value
    return MISSING


# ── Operator implementations (context value is never MISSING here) ──


def _equals(actual: Any, expected: Any) -> bool:
    return strictly_equal(actual, expected)


def _not_equals(actual: Any, expected: Any) -> bool:
    return not strictly_equal(actual, expected)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return _contains_strictly(actual, expected)
    return False


def _greater_than(actual: Any, expected: Any) -> bool:
    return is_number(actual) and is_number(expected) and actual > expected


def _less_than(actual: Any, expected: Any) -> bool:
    return is_number(actual) and is_number(expected) and actual < expected


def _in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, list):
        return False
    return _contains_strictly(expected, actual)


OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.NOT_EQUALS: _not_equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.GREATER_THAN: _greater_than,
    ConditionOperator.LESS_THAN: _less_than,
    ConditionOperator.IN: _in,
}


class ConditionMatcher:
    """Evaluates rule conditions against a design context."""

    def condition_holds(self, condition: RuleCondition, context: Mapping[str, Any]) -> bool:
        actual = dimension_value(condition.dimension, context)
        if actual is MISSING:
            return False
        return OPERATORS[condition.operator](actual, condition.value)

    def matches(self, rule: Rule, context: Mapping[str, Any]) -> bool:
        """True iff the rule has conditions and every one of them holds."""
        if not rule.conditions:
            return False
        return all(self.condition_holds(c, context) for c in rule.conditions)

    def filter(self, rules: list[Rule], context: Mapping[str, Any]) -> list[Rule]:
        return [rule for rule in rules if self.matches(rule, context)]
