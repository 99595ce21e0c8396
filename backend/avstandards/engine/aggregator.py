"""Validation Aggregator — turns evaluated rules into a categorized ValidationResult.

The rule schema carries no severity, so severity always comes from an
explicit SeverityPolicy handed to the aggregator.

Usage:
    aggregator = ValidationAggregator(priority_band_policy(error_at=80, warning_at=40))
    result = aggregator.aggregate(evaluated_rules)
"""

from typing import Callable, Optional

from avstandards.config import get_settings
from avstandards.engine.models import (
    EvaluatedRule,
    EvaluationOutcome,
    IssueSeverity,
    Rule,
    SkippedRule,
    ValidationIssue,
    ValidationResult,
)

SeverityPolicy = Callable[[Rule, EvaluationOutcome], IssueSeverity]


def priority_band_policy(error_at: int = 80, warning_at: int = 40) -> SeverityPolicy:
    """Classify by the rule's priority field: >= error_at, >= warning_at, else suggestion."""
    if warning_at > error_at:
        raise ValueError(f"warning_at ({warning_at}) must not exceed error_at ({error_at})")

    def priority_band(rule: Rule, outcome: EvaluationOutcome) -> IssueSeverity:
        if rule.priority >= error_at:
            return IssueSeverity.ERROR
        if rule.priority >= warning_at:
            return IssueSeverity.WARNING
        return IssueSeverity.SUGGESTION

    priority_band.__name__ = f"priority_band_{error_at}_{warning_at}"
    return priority_band


def fixed_severity_policy(severity: IssueSeverity) -> SeverityPolicy:
    """Every failing rule gets the same severity."""

    def fixed(rule: Rule, outcome: EvaluationOutcome) -> IssueSeverity:
        return severity

    fixed.__name__ = f"fixed_{IssueSeverity(severity).value}"
    return fixed


def default_severity_policy() -> SeverityPolicy:
    """Priority bands with thresholds from settings."""
    settings = get_settings()
    return priority_band_policy(settings.SEVERITY_ERROR_PRIORITY, settings.SEVERITY_WARNING_PRIORITY)


class ValidationAggregator:
    """Builds issues from failing outcomes, deduplicates, and buckets by severity."""

    def __init__(self, severity_policy: SeverityPolicy):
        self.severity_policy = severity_policy

    def issue_for(self, evaluated: EvaluatedRule) -> ValidationIssue:
        rule, outcome = evaluated.rule, evaluated.outcome
        return ValidationIssue(
            rule_id=rule.id,
            rule_name=rule.name,
            message=f'Rule "{rule.name}" failed: {outcome.message}',
            severity=IssueSeverity(self.severity_policy(rule, outcome)),
            equipment_id=evaluated.equipment_id,
            field=outcome.field or rule.field,
            suggested_fix=outcome.suggested_fix or (rule.description or None),
        )

    @staticmethod
    def deduplicate(issues: list[ValidationIssue]) -> list[ValidationIssue]:
        """One issue per (rule_id, equipment_id, field); the most severe wins, first-seen order kept."""
        kept: dict[tuple, ValidationIssue] = {}
        for issue in issues:
            key = (issue.rule_id, issue.equipment_id, issue.field)
            current = kept.get(key)
            if current is None or IssueSeverity(issue.severity).rank > IssueSeverity(current.severity).rank:
                kept[key] = issue
        return list(kept.values())

    def aggregate(
        self, evaluated_outcomes: list[EvaluatedRule], skipped: Optional[list[SkippedRule]] = None
    ) -> ValidationResult:
        issues = [self.issue_for(e) for e in evaluated_outcomes if not e.outcome.matched]
        return ValidationResult.build(self.deduplicate(issues), skipped)
