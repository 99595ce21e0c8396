"""Tests for the Conflict Resolver."""

import pytest

from avstandards.engine.errors import ResolverInvariantError
from avstandards.engine.models import RuleAspect
from avstandards.engine.resolver import ROOM_TARGET, ConflictResolver, rank_rules


@pytest.fixture
def resolver():
    return ConflictResolver()


ROOM_SELECTION = (RuleAspect.EQUIPMENT_SELECTION, ROOM_TARGET)


class TestRanking:
    def test_dimension_beats_numeric_priority(self, resolver, make_rule, cond):
        client_rule = make_rule(id="a", priority=20, conditions=[cond("client", "acme")])
        tier_rule = make_rule(id="b", priority=90, conditions=[cond("tier", "premium")])
        resolved = resolver.resolve([tier_rule, client_rule], {})
        assert resolved[ROOM_SELECTION] == [client_rule]

    def test_highest_condition_dimension_counts(self, resolver, make_rule, cond):
        mixed = make_rule(id="a", priority=10, conditions=[cond("room_type", "huddle"), cond("platform", "teams")])
        ecosystem = make_rule(id="b", priority=99, conditions=[cond("ecosystem", "poly")])
        assert resolver.resolve([ecosystem, mixed], {})[ROOM_SELECTION] == [mixed]

    def test_priority_breaks_dimension_ties(self, resolver, make_rule):
        low = make_rule(id="a", priority=40)
        high = make_rule(id="b", priority=70)
        assert resolver.resolve([low, high], {})[ROOM_SELECTION] == [high]

    def test_recency_breaks_priority_ties(self, resolver, make_rule):
        older = make_rule(id="a", updated_at="2024-01-01T00:00:00Z")
        newer = make_rule(id="b", updated_at="2024-06-01T00:00:00+02:00")
        assert resolver.resolve([older, newer], {})[ROOM_SELECTION] == [newer]

    def test_naive_timestamps_are_utc(self, make_rule):
        naive = make_rule(id="a", updated_at="2024-03-01T12:00:00")
        aware = make_rule(id="b", updated_at="2024-03-01T11:00:00Z")
        assert rank_rules([aware, naive])[0] is naive

    def test_full_tie_falls_back_to_lowest_id(self, resolver, make_rule):
        rules = [make_rule(id="rule-c"), make_rule(id="rule-a"), make_rule(id="rule-b")]
        assert resolver.resolve(rules, {})[ROOM_SELECTION][0].id == "rule-a"
        assert resolver.resolve(list(reversed(rules)), {})[ROOM_SELECTION][0].id == "rule-a"


class TestAggregationModes:
    @pytest.mark.parametrize("aspect", ["equipment_selection", "placement", "configuration"])
    def test_override_aspects_keep_one_rule(self, resolver, make_rule, aspect):
        rules = [make_rule(id=f"r{i}", aspect=aspect, priority=i) for i in range(3)]
        resolved = resolver.resolve(rules, {})
        assert [r.id for r in resolved[(RuleAspect(aspect), ROOM_TARGET)]] == ["r2"]

    @pytest.mark.parametrize("aspect", ["quantities", "cabling", "commercial"])
    def test_additive_aspects_keep_every_rule_ranked(self, resolver, make_rule, aspect):
        rules = [make_rule(id=f"r{i}", aspect=aspect, priority=i) for i in range(3)]
        resolved = resolver.resolve(rules, {})
        assert [r.id for r in resolved[(RuleAspect(aspect), ROOM_TARGET)]] == ["r2", "r1", "r0"]

    def test_aspects_group_separately(self, resolver, make_rule):
        selection = make_rule(id="a")
        placement = make_rule(id="b", aspect="placement")
        resolved = resolver.resolve([selection, placement], {})
        assert set(resolved) == {ROOM_SELECTION, (RuleAspect.PLACEMENT, ROOM_TARGET)}

    def test_inactive_rules_never_participate(self, resolver, make_rule, cond):
        inactive = make_rule(id="a", is_active=False, conditions=[cond("client", "acme")])
        active = make_rule(id="b")
        assert resolver.resolve([inactive, active], {})[ROOM_SELECTION] == [active]
        assert resolver.resolve([inactive], {}) == {}


class TestTargets:
    CONTEXT = {
        "equipment": [
            {"id": "disp-1", "category": "display"},
            {"id": "mic-1", "category": "microphone"},
            {"id": "disp-2", "category": "display"},
        ]
    }

    def test_equipment_rules_target_each_placed_item(self, resolver, make_rule):
        rule = make_rule(equipment_category="display", expression="item.size >= 65")
        resolved = resolver.resolve([rule], self.CONTEXT)
        assert set(resolved) == {
            (RuleAspect.EQUIPMENT_SELECTION, "disp-1"),
            (RuleAspect.EQUIPMENT_SELECTION, "disp-2"),
        }

    def test_room_and_item_rules_do_not_conflict(self, resolver, make_rule, cond):
        room_rule = make_rule(id="room", conditions=[cond("client", "acme")])
        item_rule = make_rule(id="item", equipment_category="microphone")
        resolved = resolver.resolve([room_rule, item_rule], self.CONTEXT)
        assert resolved[ROOM_SELECTION] == [room_rule]
        assert resolved[(RuleAspect.EQUIPMENT_SELECTION, "mic-1")] == [item_rule]

    def test_no_placed_items_means_no_group(self, resolver, make_rule):
        rule = make_rule(equipment_category="camera")
        assert resolver.resolve([rule], self.CONTEXT) == {}


class TestInvariants:
    def test_resolved_groups_pass(self, resolver, make_rule):
        resolved = resolver.resolve([make_rule(id="a"), make_rule(id="b")], {})
        resolver.check_invariants(resolved)

    def test_override_group_with_two_rules_is_a_defect(self, resolver, make_rule):
        with pytest.raises(ResolverInvariantError):
            resolver.check_invariants({ROOM_SELECTION: [make_rule(id="a"), make_rule(id="b")]})

    def test_empty_group_is_a_defect(self, resolver):
        with pytest.raises(ResolverInvariantError):
            resolver.check_invariants({(RuleAspect.CABLING, ROOM_TARGET): []})
