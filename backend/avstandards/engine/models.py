"""Standards models — dimensions, rules, hierarchy nodes, issues, and result structure.

All evaluation is deterministic: same rules + same context → same result.
Models accept both snake_case names and the camelCase names used by the
rule store and the frontend, and serialize by alias.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _StandardsModel(BaseModel):
    """Shared config: camelCase aliases, population by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenModel(_StandardsModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ============================================================================
# Dimensions, operators, aspects, expression types
# ============================================================================


class RuleDimension(str, Enum):
    """Axes that scope a rule's applicability."""

    ROOM_TYPE = "room_type"
    PLATFORM = "platform"
    ECOSYSTEM = "ecosystem"
    TIER = "tier"
    USE_CASE = "use_case"
    CLIENT = "client"


# Higher value wins when rules conflict: Client > Platform > Ecosystem > Tier > Use Case > Room Type
DIMENSION_PRIORITY = MappingProxyType({
    RuleDimension.ROOM_TYPE: 1,
    RuleDimension.USE_CASE: 2,
    RuleDimension.TIER: 3,
    RuleDimension.ECOSYSTEM: 4,
    RuleDimension.PLATFORM: 5,
    RuleDimension.CLIENT: 6,
})


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"


class RuleAspect(str, Enum):
    """Facets of an AV design that rules can govern."""

    EQUIPMENT_SELECTION = "equipment_selection"  # Which equipment to use
    QUANTITIES = "quantities"                    # How many of each item
    PLACEMENT = "placement"                      # Where equipment goes
    CONFIGURATION = "configuration"              # How equipment is configured
    CABLING = "cabling"                          # Cable types and routing
    COMMERCIAL = "commercial"                    # Pricing and commercial terms

    @property
    def is_additive(self) -> bool:
        """Additive aspects apply every matching rule; the rest pick one winner."""
        return self in ADDITIVE_ASPECTS


ADDITIVE_ASPECTS = frozenset({RuleAspect.QUANTITIES, RuleAspect.CABLING, RuleAspect.COMMERCIAL})


class RuleExpressionType(str, Enum):
    CONSTRAINT = "constraint"    # Simple comparison (field >= value)
    FORMULA = "formula"          # Arithmetic over fields against a threshold
    CONDITIONAL = "conditional"  # if guard then branch else branch
    RANGE_MATCH = "range_match"  # Value within min-max
    PATTERN = "pattern"          # Regex match


class IssueSeverity(str, Enum):
    """Validation issue severity levels, most severe first."""

    ERROR = "error"            # Blocks save/import
    WARNING = "warning"        # Should be addressed but not blocking
    SUGGESTION = "suggestion"  # Improvement hint

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {IssueSeverity.ERROR: 3, IssueSeverity.WARNING: 2, IssueSeverity.SUGGESTION: 1}


# ============================================================================
# Rules
# ============================================================================

Scalar = Union[bool, int, float, str]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class RuleCondition(_FrozenModel):
    """A single condition that determines whether a rule applies.

    The value shape is closed per operator: ``in`` takes a list of scalars,
    ``greater_than``/``less_than`` take a number, the rest take a scalar.
    """

    dimension: RuleDimension
    operator: ConditionOperator
    value: Union[Scalar, list[Scalar]]

    @model_validator(mode="after")
    def _check_value_shape(self) -> "RuleCondition":
        op = self.operator
        if op is ConditionOperator.IN:
            if not isinstance(self.value, list):
                raise ValueError("operator 'in' requires a list value")
        elif op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            if not _is_number(self.value):
                raise ValueError(f"operator '{op.value}' requires a numeric value")
        elif isinstance(self.value, list):
            raise ValueError(f"operator '{op.value}' requires a scalar value")
        return self


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Rule(_FrozenModel):
    """A rule that validates one aspect of an AV design."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    aspect: RuleAspect
    expression_type: RuleExpressionType
    conditions: list[RuleCondition] = Field(min_length=1, description="AND-combined; never empty")
    expression: str = Field(min_length=1)
    priority: int = Field(ge=0, le=100, description="0-100, higher = more important")
    is_active: bool = True
    field: Optional[str] = Field(
        default=None, description="Field tested by range_match/pattern rules without an inline path"
    )
    equipment_category: Optional[str] = Field(
        default=None, description="Evaluate once per placed item of this category"
    )
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH

    @field_validator("priority", mode="before")
    @classmethod
    def _reject_bool_priority(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("priority must be an integer, not a boolean")
        return value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def dimension_rank(self) -> int:
        """Highest dimension priority among this rule's own conditions."""
        return max(DIMENSION_PRIORITY[c.dimension] for c in self.conditions)


# ============================================================================
# Standards hierarchy
# ============================================================================


class NodeType(str, Enum):
    FOLDER = "folder"
    STANDARD = "standard"


class StandardNode(_FrozenModel):
    """A node in the standards tree: a folder, or a standard leaf carrying rules."""

    id: str = Field(min_length=1)
    name: str
    parent_id: Optional[str] = None
    type: NodeType
    order: int = 0


class Standard(_FrozenModel):
    """The bag of rules attached to a standard node."""

    id: str = Field(min_length=1)
    node_id: str = Field(min_length=1)
    rules: list[Rule] = Field(default_factory=list)
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH


# ============================================================================
# Design context
# ============================================================================


class PlacedEquipment(_StandardsModel):
    """One equipment instance placed in the room."""

    id: str
    category: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class DesignContext(_StandardsModel):
    """Caller-assembled snapshot of the design under validation."""

    room_type: Optional[str] = None
    platform: Optional[str] = None
    ecosystem: Optional[Union[str, list[str]]] = None
    tier: Optional[Union[str, int]] = None
    use_case: Optional[str] = None
    client_id: Optional[str] = None
    room: dict[str, Any] = Field(default_factory=dict)
    equipment: list[PlacedEquipment] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    def to_mapping(self) -> dict[str, Any]:
        """Flatten into the plain mapping the engine reads.

        Free attributes sit at the top level; dimension values and ``room``
        take precedence over attributes of the same name.
        """
        data: dict[str, Any] = dict(self.attributes)
        for dimension in ("room_type", "platform", "ecosystem", "tier", "use_case", "client_id"):
            value = getattr(self, dimension)
            if value is not None:
                data[dimension] = value
        data["room"] = dict(self.room)
        data["equipment"] = [
            {**item.attributes, "id": item.id, "category": item.category}
            for item in self.equipment
        ]
        return data


# ============================================================================
# Evaluation outcomes and results
# ============================================================================


class EvaluationOutcome(_FrozenModel):
    """What the expression evaluator reports for one rule against one target."""

    matched: bool
    message: str
    derived_value: Optional[float] = None
    field: Optional[str] = None
    suggested_fix: Optional[str] = None


class EvaluatedRule(_FrozenModel):
    """A resolved rule paired with its outcome and target."""

    rule: Rule
    outcome: EvaluationOutcome
    equipment_id: Optional[str] = None


class ValidationIssue(_FrozenModel):
    """A single issue identified during validation."""

    rule_id: str
    rule_name: str
    message: str
    severity: IssueSeverity
    equipment_id: Optional[str] = None
    field: Optional[str] = None
    suggested_fix: Optional[str] = None


class SkippedRule(_FrozenModel):
    """A rule left out of a pass because it could not be evaluated."""

    rule_id: str
    reason: str
    equipment_id: Optional[str] = None


class ValidationResult(_StandardsModel):
    """Complete result of validating a design against standards."""

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    suggestions: list[ValidationIssue] = Field(default_factory=list)
    skipped_rules: list[SkippedRule] = Field(default_factory=list)

    @computed_field(alias="isValid")
    @property
    def is_valid(self) -> bool:
        """Only errors block; warnings and suggestions never do."""
        return len(self.errors) == 0

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings, *self.suggestions]

    @classmethod
    def build(
        cls, issues: list[ValidationIssue], skipped: Optional[list[SkippedRule]] = None
    ) -> "ValidationResult":
        """Split a flat issue list into severity buckets, preserving order."""
        buckets: dict[IssueSeverity, list[ValidationIssue]] = {s: [] for s in IssueSeverity}
        for issue in issues:
            buckets[IssueSeverity(issue.severity)].append(issue)
        return cls(
            errors=buckets[IssueSeverity.ERROR],
            warnings=buckets[IssueSeverity.WARNING],
            suggestions=buckets[IssueSeverity.SUGGESTION],
            skipped_rules=list(skipped or []),
        )
