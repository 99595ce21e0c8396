"""Standards Rule Engine — validates AV designs against hierarchical standards.

Usage:
    from avstandards.engine import rule_engine

    result = rule_engine.validate_design(context, standards)
    if not result.is_valid:
        # Block the save and show result.errors
"""

from avstandards.engine.aggregator import (
    SeverityPolicy,
    ValidationAggregator,
    default_severity_policy,
    fixed_severity_policy,
    priority_band_policy,
)
from avstandards.engine.engine import RuleEngine, rule_engine
from avstandards.engine.errors import (
    ExpressionParseError,
    HierarchyCycleError,
    HierarchyError,
    ResolverInvariantError,
    RuleEngineError,
)
from avstandards.engine.evaluator import ExpressionEvaluator, compile_expression
from avstandards.engine.matcher import ConditionMatcher
from avstandards.engine.models import (
    DIMENSION_PRIORITY,
    ConditionOperator,
    DesignContext,
    EvaluationOutcome,
    IssueSeverity,
    PlacedEquipment,
    Rule,
    RuleAspect,
    RuleCondition,
    RuleDimension,
    RuleExpressionType,
    Standard,
    StandardNode,
    ValidationIssue,
    ValidationResult,
)
from avstandards.engine.repository import StandardsRepository, ensure_acyclic
from avstandards.engine.resolver import ConflictResolver
from avstandards.engine.structural import (
    check_rule,
    format_validation_errors,
    is_valid_rule,
    load_standard,
    partition_rules,
)

__all__ = [
    "RuleEngine",
    "rule_engine",
    "ConditionMatcher",
    "ConflictResolver",
    "ExpressionEvaluator",
    "ValidationAggregator",
    "SeverityPolicy",
    "priority_band_policy",
    "fixed_severity_policy",
    "default_severity_policy",
    "compile_expression",
    "StandardsRepository",
    "ensure_acyclic",
    "check_rule",
    "format_validation_errors",
    "is_valid_rule",
    "load_standard",
    "partition_rules",
    "DIMENSION_PRIORITY",
    "ConditionOperator",
    "DesignContext",
    "EvaluationOutcome",
    "IssueSeverity",
    "PlacedEquipment",
    "Rule",
    "RuleAspect",
    "RuleCondition",
    "RuleDimension",
    "RuleExpressionType",
    "Standard",
    "StandardNode",
    "ValidationIssue",
    "ValidationResult",
    "RuleEngineError",
    "ExpressionParseError",
    "ResolverInvariantError",
    "HierarchyError",
    "HierarchyCycleError",
]
