"""Tests for structural rule validation."""

import pytest

from avstandards.engine.models import Rule, Standard
from avstandards.engine.structural import check_rule, is_valid_rule, load_standard, partition_rules


def raw_rule(**overrides) -> dict:
    data = {
        "id": "rule-1",
        "name": "Display size",
        "aspect": "equipment_selection",
        "expressionType": "constraint",
        "conditions": [{"dimension": "platform", "operator": "equals", "value": "teams"}],
        "expression": "display.size >= 75",
        "priority": 80,
    }
    data.update(overrides)
    return data


class TestIsValidRule:
    def test_well_formed_rule(self):
        assert is_valid_rule(raw_rule())

    def test_snake_case_keys_are_accepted(self):
        data = raw_rule()
        data["expression_type"] = data.pop("expressionType")
        assert is_valid_rule(data)

    def test_rule_instance_is_valid(self, make_rule):
        assert is_valid_rule(make_rule())

    @pytest.mark.parametrize("overrides", [
        {"conditions": []},
        {"priority": 150},
        {"priority": -1},
        {"priority": True},
        {"priority": False},
        {"aspect": "lighting"},
        {"expressionType": "lua"},
        {"conditions": [{"dimension": "building", "operator": "equals", "value": "x"}]},
        {"conditions": [{"dimension": "tier", "operator": "between", "value": 1}]},
        {"expression": ""},
        {"id": ""},
    ])
    def test_malformed_rules(self, overrides):
        assert not is_valid_rule(raw_rule(**overrides))

    @pytest.mark.parametrize("operator, value", [
        ("in", "teams"),
        ("greater_than", "3"),
        ("less_than", True),
        ("equals", ["teams", "zoom"]),
    ])
    def test_condition_value_shape_is_checked_per_operator(self, operator, value):
        conditions = [{"dimension": "tier", "operator": operator, "value": value}]
        assert not is_valid_rule(raw_rule(conditions=conditions))

    @pytest.mark.parametrize("operator, value", [
        ("in", ["teams", "zoom"]),
        ("greater_than", 3),
        ("less_than", 2.5),
        ("contains", "zoom"),
        ("not_equals", "teams"),
    ])
    def test_condition_value_shapes_accepted(self, operator, value):
        conditions = [{"dimension": "tier", "operator": operator, "value": value}]
        assert is_valid_rule(raw_rule(conditions=conditions))

    @pytest.mark.parametrize("value", [None, "rule", 42, ["rule"]])
    def test_non_objects(self, value):
        assert not is_valid_rule(value)


class TestCheckRule:
    def test_clean_rule_has_no_problems(self):
        assert check_rule(raw_rule()) == []

    def test_structural_problems_are_reported_by_location(self):
        problems = check_rule(raw_rule(priority=150))
        assert len(problems) == 1
        assert problems[0].startswith("priority:")

    def test_expression_problems_reported_after_structure_passes(self):
        problems = check_rule(raw_rule(expressionType="formula", expression="(a + b <= 3"))
        assert len(problems) == 1
        assert problems[0].startswith("expression:")

    def test_range_without_field(self):
        problems = check_rule(raw_rule(expressionType="range_match", expression="4-8"))
        assert problems and "needs a field" in problems[0]

    def test_range_with_field(self):
        assert check_rule(raw_rule(expressionType="range_match", expression="4-8", field="mics.count")) == []

    def test_non_object(self):
        assert check_rule("nope") == ["rule must be an object"]


class TestPartition:
    def test_splits_valid_and_rejected(self, make_rule):
        valid, rejected = partition_rules([
            raw_rule(id="good"),
            raw_rule(id="bad", conditions=[]),
            make_rule(id="model"),
            "garbage",
        ])
        assert [r.id for r in valid] == ["good", "model"]
        assert [r.rule_id for r in rejected] == ["bad", "<unknown>"]
        assert all(r.errors for r in rejected)

    def test_valid_rules_keep_order(self):
        valid, rejected = partition_rules([raw_rule(id=str(i)) for i in range(5)])
        assert [r.id for r in valid] == ["0", "1", "2", "3", "4"]
        assert rejected == []


class TestLoadStandard:
    def test_drops_malformed_rules(self):
        standard = load_standard({
            "id": "std-1",
            "nodeId": "node-1",
            "rules": [raw_rule(id="good"), raw_rule(id="bad", priority=500)],
        })
        assert isinstance(standard, Standard)
        assert [r.id for r in standard.rules] == ["good"]
        assert isinstance(standard.rules[0], Rule)

    def test_standard_without_rules(self):
        assert load_standard({"id": "std-1", "node_id": "node-1"}).rules == []

    def test_bad_envelope_raises(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            load_standard({"id": "std-1", "rules": []})

    def test_standard_instance_passes_through(self, make_standard, make_rule):
        standard = make_standard(make_rule())
        assert load_standard(standard) is standard


def test_boolean_priority_is_reported():
    problems = check_rule(raw_rule(priority=True))
    assert len(problems) == 1
    assert problems[0].startswith("priority:")
