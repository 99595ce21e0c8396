"""Row mappers — rule store rows (snake_case, legacy enums) to engine models.

The remote store predates the engine's vocabulary: its aspect and
expression-type enums are coarser and named differently. These maps are the
single place where that translation happens.
"""

from collections.abc import Mapping
from typing import Any

from avstandards.engine.models import NodeType, Rule, RuleAspect, RuleExpressionType, Standard, StandardNode
from avstandards.engine.structural import partition_rules

# Store aspect → engine aspect (closest equivalent)
STORE_ASPECTS: dict[str, RuleAspect] = {
    "display_count": RuleAspect.QUANTITIES,
    "microphone_coverage": RuleAspect.PLACEMENT,
    "speaker_placement": RuleAspect.PLACEMENT,
    "camera_angle": RuleAspect.PLACEMENT,
    "cable_length": RuleAspect.CABLING,
    "rack_space": RuleAspect.EQUIPMENT_SELECTION,
    "power_requirements": RuleAspect.CONFIGURATION,
    "compatibility": RuleAspect.EQUIPMENT_SELECTION,
    "custom": RuleAspect.CONFIGURATION,
}

ASPECTS_TO_STORE: dict[RuleAspect, str] = {
    RuleAspect.EQUIPMENT_SELECTION: "compatibility",
    RuleAspect.QUANTITIES: "display_count",
    RuleAspect.PLACEMENT: "speaker_placement",
    RuleAspect.CONFIGURATION: "power_requirements",
    RuleAspect.CABLING: "cable_length",
    RuleAspect.COMMERCIAL: "custom",
}

STORE_EXPRESSION_TYPES: dict[str, RuleExpressionType] = {
    "comparison": RuleExpressionType.CONSTRAINT,
    "range": RuleExpressionType.RANGE_MATCH,
    "formula": RuleExpressionType.FORMULA,
    "lookup": RuleExpressionType.CONDITIONAL,
    "custom": RuleExpressionType.PATTERN,
}

EXPRESSION_TYPES_TO_STORE: dict[RuleExpressionType, str] = {v: k for k, v in STORE_EXPRESSION_TYPES.items()}


def aspect_to_store(aspect: RuleAspect) -> str:
    return ASPECTS_TO_STORE.get(RuleAspect(aspect), "custom")


def expression_type_to_store(expression_type: RuleExpressionType) -> str:
    return EXPRESSION_TYPES_TO_STORE.get(RuleExpressionType(expression_type), "custom")


def node_type_from_store(store_type: str) -> NodeType:
    # 'item' is a leaf; 'category' and 'subcategory' are containers
    return NodeType.STANDARD if store_type == "item" else NodeType.FOLDER


def node_type_to_store(node_type: NodeType) -> str:
    return "item" if NodeType(node_type) is NodeType.STANDARD else "category"


def _lookup(mapping: Mapping[str, Any], value: Any, what: str) -> Any:
    try:
        return mapping[value]
    except KeyError:
        raise ValueError(f"Unknown store {what} '{value}'") from None


def map_rule_row(row: Mapping[str, Any]) -> Rule:
    """Raises pydantic.ValidationError for structurally invalid rows."""
    conditions = row.get("conditions")
    return Rule.model_validate({
        "id": row["id"],
        "name": row["name"],
        "description": row.get("description") or "",
        "aspect": _lookup(STORE_ASPECTS, row["aspect"], "aspect"),
        "expression_type": _lookup(STORE_EXPRESSION_TYPES, row["expression_type"], "expression type"),
        "conditions": conditions if isinstance(conditions, list) else [],
        "expression": row["expression"],
        "priority": row["priority"],
        "is_active": row.get("is_active", True),
        "field": row.get("field"),
        "equipment_category": row.get("equipment_category"),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    })


def map_rule_rows(rows: list[Mapping[str, Any]]) -> list[Rule]:
    return [map_rule_row(row) for row in rows]


def map_standard_row(row: Mapping[str, Any]) -> Standard:
    """Embedded rules are already in engine vocabulary; malformed ones are dropped."""
    raw_rules = row.get("rules")
    rules, _ = partition_rules(raw_rules if isinstance(raw_rules, list) else [])
    return Standard(
        id=row["id"],
        node_id=row["node_id"],
        rules=rules,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_node_row(row: Mapping[str, Any]) -> StandardNode:
    return StandardNode(
        id=row["id"],
        name=row["name"],
        parent_id=row.get("parent_id"),
        type=node_type_from_store(row["type"]),
        order=row.get("sort_order", 0),
    )


def rule_to_row(rule: Rule) -> dict[str, Any]:
    """Inverse of map_rule_row, for writing back to the store."""
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "aspect": aspect_to_store(rule.aspect),
        "expression_type": expression_type_to_store(rule.expression_type),
        "conditions": [c.model_dump(mode="json") for c in rule.conditions],
        "expression": rule.expression,
        "priority": rule.priority,
        "is_active": rule.is_active,
        "field": rule.field,
        "equipment_category": rule.equipment_category,
        "created_at": rule.created_at.isoformat(),
        "updated_at": rule.updated_at.isoformat(),
    }
