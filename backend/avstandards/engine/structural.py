"""Structural Validator — rejects malformed rules before they reach the engine.

A rule with no conditions, a priority outside 0-100, an unknown dimension,
operator, aspect or expression type, or a condition value of the wrong shape
never enters evaluation.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Union

import structlog
from pydantic import BaseModel, ValidationError

from avstandards.engine.errors import ExpressionParseError
from avstandards.engine.evaluator import compile_expression
from avstandards.engine.models import Rule, Standard

logger = structlog.get_logger()

RawRule = Union[Rule, Mapping[str, Any]]


class RejectedRule(BaseModel):
    """A raw rule that failed structural validation."""

    rule_id: str
    errors: list[str]


def format_validation_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def _raw_id(raw: Any) -> str:
    if isinstance(raw, Mapping):
        return str(raw.get("id") or "<unknown>")
    return str(getattr(raw, "id", "<unknown>"))


def parse_rule(raw: RawRule) -> Rule:
    """Validate a raw rule. Raises pydantic.ValidationError."""
    if isinstance(raw, Rule):
        return raw
    return Rule.model_validate(raw)


def is_valid_rule(raw: Any) -> bool:
    """Structural predicate: True iff the raw value is a well-formed rule."""
    if not isinstance(raw, (Rule, Mapping)):
        return False
    try:
        parse_rule(raw)
    except ValidationError:
        return False
    return True


def check_rule(raw: Any) -> list[str]:
    """All problems with a raw rule: structure first, then expression syntax.

    Empty list means the rule would evaluate. Used by the rule editor to give
    feedback before a rule is saved.
    """
    if not isinstance(raw, (Rule, Mapping)):
        return ["rule must be an object"]
    try:
        rule = parse_rule(raw)
    except ValidationError as e:
        return format_validation_errors(e)
    try:
        compile_expression(rule.expression_type, rule.expression, rule.field)
    except ExpressionParseError as e:
        return [f"expression: {e}"]
    return []


def partition_rules(raw_rules: Iterable[Any]) -> tuple[list[Rule], list[RejectedRule]]:
    """Split raw rules into valid rules and rejections; each rejection is logged."""
    valid: list[Rule] = []
    rejected: list[RejectedRule] = []
    for raw in raw_rules:
        if not isinstance(raw, (Rule, Mapping)):
            rejected.append(RejectedRule(rule_id=_raw_id(raw), errors=["rule must be an object"]))
            continue
        try:
            valid.append(parse_rule(raw))
        except ValidationError as e:
            rejected.append(RejectedRule(rule_id=_raw_id(raw), errors=format_validation_errors(e)))

    for rejection in rejected:
        logger.warning("rule_rejected", rule_id=rejection.rule_id, errors=rejection.errors)
    return valid, rejected


def load_standard(raw: Union[Standard, Mapping[str, Any]]) -> Standard:
    """Validate a standard's envelope, dropping (not failing on) malformed rules."""
    if isinstance(raw, Standard):
        return raw
    data = dict(raw)
    rules, _ = partition_rules(data.pop("rules", None) or [])
    return Standard.model_validate({**data, "rules": rules})
