"""Shared fixtures for the standards engine tests."""

import pytest

from avstandards.engine.models import Rule, Standard


def build_rule(**overrides) -> Rule:
    data = {
        "id": "rule-1",
        "name": "Display size",
        "description": "Displays must be large enough for the room",
        "aspect": "equipment_selection",
        "expression_type": "constraint",
        "conditions": [{"dimension": "platform", "operator": "equals", "value": "teams"}],
        "expression": "display.size >= 75",
        "priority": 80,
        "is_active": True,
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:00:00Z",
    }
    data.update(overrides)
    return Rule.model_validate(data)


def condition(dimension: str, value, operator: str = "equals") -> dict:
    return {"dimension": dimension, "operator": operator, "value": value}


@pytest.fixture
def make_rule():
    """Factory for valid rules; override any field by keyword."""
    return build_rule


@pytest.fixture
def cond():
    return condition


@pytest.fixture
def make_standard():
    def _make(*rules: Rule, id: str = "std-1", node_id: str = "node-1") -> Standard:
        return Standard(id=id, node_id=node_id, rules=list(rules))

    return _make
