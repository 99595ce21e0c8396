"""Rule Engine — orchestrates matching, conflict resolution, evaluation, aggregation.

This is the main entry point for design validation. It takes a design
context plus the standards that apply to it and produces a ValidationResult.

Usage:
    engine = RuleEngine()
    result = engine.validate_design(context, standards)
    if not result.is_valid:
        # Block save/import, show result.errors
"""

import time
from collections import ChainMap
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

import structlog

from avstandards.config import get_settings
from avstandards.engine.aggregator import SeverityPolicy, ValidationAggregator, default_severity_policy
from avstandards.engine.errors import ExpressionParseError, ResolverInvariantError
from avstandards.engine.evaluator import CompiledExpression, ExpressionEvaluator
from avstandards.engine.field_path import FieldPath
from avstandards.engine.matcher import ConditionMatcher
from avstandards.engine.models import (
    DesignContext,
    EvaluatedRule,
    Rule,
    SkippedRule,
    Standard,
    ValidationIssue,
    ValidationResult,
)
from avstandards.engine.resolver import ROOM_TARGET, ConflictResolver, equipment_id_for

logger = structlog.get_logger()

Context = Union[DesignContext, Mapping[str, Any]]


def context_mapping(context: Context) -> Mapping[str, Any]:
    if isinstance(context, DesignContext):
        return context.to_mapping()
    return context


def collect_rules(standards: Iterable[Standard]) -> list[Rule]:
    """Flatten standards into one rule list; the first (most specific) copy of an id wins."""
    seen: set[str] = set()
    rules: list[Rule] = []
    for standard in standards:
        for rule in standard.rules:
            if rule.id in seen:
                continue
            seen.add(rule.id)
            rules.append(rule)
    return rules


class RuleEngine:
    """Validates AV designs against standards rules.

    Design principles:
        - Pure: same (context, standards) → equal result, no I/O, no shared state
        - Fail closed: missing context data never makes a rule match or pass
        - Resilient: one malformed rule is skipped, never aborts the pass
    """

    def __init__(
        self,
        severity_policy: Optional[SeverityPolicy] = None,
        strict: Optional[bool] = None,
    ):
        """
        Args:
            severity_policy: Maps (rule, outcome) to a severity. Defaults to
                priority bands from settings.
            strict: Re-raise internal evaluation defects. Defaults to
                STRICT_EVALUATION from settings.
        """
        self.severity_policy = severity_policy or default_severity_policy()
        self.strict = get_settings().STRICT_EVALUATION if strict is None else strict
        self.matcher = ConditionMatcher()
        self.resolver = ConflictResolver()
        self.evaluator = ExpressionEvaluator()

    def validate_design(
        self,
        context: Context,
        standards: Iterable[Standard],
        severity_policy: Optional[SeverityPolicy] = None,
    ) -> ValidationResult:
        """Run every applicable rule against the design and produce a result.

        Args:
            context: Design snapshot (DesignContext or plain mapping)
            standards: Standards applicable to this design, most specific first
            severity_policy: Per-call override of the engine's policy

        Returns:
            ValidationResult with issues bucketed by severity
        """
        start_time = time.perf_counter()
        ctx = context_mapping(context)

        rules = collect_rules(standards)
        matched = self.matcher.filter(rules, ctx)

        # Only rules that compile compete in conflict resolution
        skipped: list[SkippedRule] = []
        compiled = self._compile_all(matched, skipped)
        groups = self.resolver.resolve([r for r in matched if r.id in compiled], ctx)
        try:
            self.resolver.check_invariants(groups)
        except ResolverInvariantError:
            if self.strict:
                raise
            logger.exception("resolver_invariant_violated", groups=len(groups))

        items = self._items_by_id(ctx)

        evaluated: list[EvaluatedRule] = []
        for (aspect, target), group_rules in groups.items():
            scoped = ctx if target == ROOM_TARGET else ChainMap({"item": items.get(target, {})}, ctx)
            for rule in group_rules:
                try:
                    outcome = compiled[rule.id].evaluate(scoped)
                except Exception as e:
                    if self.strict:
                        raise
                    # Don't let one broken rule kill the whole pass
                    logger.exception("rule_evaluation_crashed", rule_id=rule.id, target=target)
                    skipped.append(SkippedRule(
                        rule_id=rule.id,
                        reason=f"Evaluation failed: {type(e).__name__}",
                        equipment_id=equipment_id_for(target),
                    ))
                    continue
                evaluated.append(EvaluatedRule(rule=rule, outcome=outcome, equipment_id=equipment_id_for(target)))

        aggregator = ValidationAggregator(severity_policy or self.severity_policy)
        result = aggregator.aggregate(evaluated, skipped)

        logger.info(
            "validation_complete",
            is_valid=result.is_valid,
            rules_total=len(rules),
            rules_matched=len(matched),
            groups=len(groups),
            evaluated=len(evaluated),
            errors=len(result.errors),
            warnings=len(result.warnings),
            suggestions=len(result.suggestions),
            skipped=len(skipped),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return result

    def validate_field(
        self,
        context: Context,
        standards: Iterable[Standard],
        field: str,
        severity_policy: Optional[SeverityPolicy] = None,
    ) -> list[ValidationIssue]:
        """Issues on one field path, or on fields nested beneath it.

        Raises ExpressionParseError when ``field`` is not a valid path.
        """
        path = FieldPath.parse(field)
        result = self.validate_design(context, standards, severity_policy)
        return [issue for issue in result.issues if issue.field and path.covers(issue.field)]

    def _compile_all(self, rules: list[Rule], skipped: list[SkippedRule]) -> dict[str, CompiledExpression]:
        """Compile each active rule once; malformed rules are logged and skipped."""
        compiled: dict[str, CompiledExpression] = {}
        for rule in rules:
            if not rule.is_active:
                continue
            try:
                compiled[rule.id] = self.evaluator.compile(rule)
            except ExpressionParseError as e:
                logger.warning(
                    "rule_skipped",
                    rule_id=rule.id,
                    rule_name=rule.name,
                    expression=rule.expression,
                    error=str(e),
                )
                skipped.append(SkippedRule(rule_id=rule.id, reason=f"Malformed expression: {e}"))
        return compiled

    @staticmethod
    def _items_by_id(ctx: Mapping[str, Any]) -> dict[str, Mapping[str, Any]]:
        equipment = ctx.get("equipment")
        if not isinstance(equipment, list):
            return {}
        return {
            str(item["id"]): item
            for item in equipment
            if isinstance(item, Mapping) and item.get("id") is not None
        }


# Module-level singleton
rule_engine = RuleEngine()
