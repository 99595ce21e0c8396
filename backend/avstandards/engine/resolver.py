"""Conflict Resolver — groups matched rules by (aspect, target) and picks winners.

Override aspects (equipment_selection, placement, configuration) keep exactly
one rule per group. Additive aspects (quantities, cabling, commercial) keep
every rule in the group; their issues are unioned.

Ranking, strongest first:
    1. highest DIMENSION_PRIORITY among the rule's own conditions
    2. higher ``priority`` field
    3. later ``updated_at``
    4. lower ``id`` (lexicographic)
"""

from collections.abc import Mapping
from typing import Any, Optional

import structlog

from avstandards.engine.errors import ResolverInvariantError
from avstandards.engine.models import Rule, RuleAspect

logger = structlog.get_logger()

ROOM_TARGET = "room"

GroupKey = tuple[RuleAspect, str]


def rank_rules(rules: list[Rule]) -> list[Rule]:
    """Order rules strongest first; ties on everything fall back to ascending id."""
    by_id = sorted(rules, key=lambda r: r.id)
    # Stable sort keeps the ascending-id order among full ties
    return sorted(by_id, key=lambda r: (r.dimension_rank, r.priority, r.updated_at), reverse=True)


def placed_items(context: Mapping[str, Any], category: str) -> list[Mapping[str, Any]]:
    """Placed equipment of one category, in context order."""
    equipment = context.get("equipment")
    if not isinstance(equipment, list):
        return []
    return [
        item for item in equipment
        if isinstance(item, Mapping) and item.get("category") == category and item.get("id") is not None
    ]


class ConflictResolver:
    """Resolves competing rules per design aspect and target."""

    def targets(self, rule: Rule, context: Mapping[str, Any]) -> list[str]:
        """The room, or every placed item the rule concerns."""
        if rule.equipment_category is None:
            return [ROOM_TARGET]
        return [str(item["id"]) for item in placed_items(context, rule.equipment_category)]

    def group(self, rules: list[Rule], context: Mapping[str, Any]) -> dict[GroupKey, list[Rule]]:
        groups: dict[GroupKey, list[Rule]] = {}
        for rule in rules:
            if not rule.is_active:
                continue
            for target in self.targets(rule, context):
                groups.setdefault((rule.aspect, target), []).append(rule)
        return groups

    def resolve(self, matched_rules: list[Rule], context: Mapping[str, Any]) -> dict[GroupKey, list[Rule]]:
        """Map each (aspect, target) group to the rule(s) that apply to it."""
        resolved: dict[GroupKey, list[Rule]] = {}
        for key, candidates in self.group(matched_rules, context).items():
            aspect, target = key
            ranked = rank_rules(candidates)
            if aspect.is_additive:
                resolved[key] = ranked
            else:
                resolved[key] = ranked[:1]
                if len(ranked) > 1:
                    logger.debug(
                        "rule_conflict_resolved",
                        aspect=aspect.value,
                        target=target,
                        winner=ranked[0].id,
                        overridden=[r.id for r in ranked[1:]],
                    )
        return resolved

    @staticmethod
    def check_invariants(resolved: dict[GroupKey, list[Rule]]) -> None:
        """Every group is non-empty, active, and override groups hold exactly one rule.

        Raises ResolverInvariantError; a violation is a programming defect.
        """
        for (aspect, target), rules in resolved.items():
            if not rules:
                raise ResolverInvariantError(f"Empty rule group for ({aspect.value}, {target})")
            if not aspect.is_additive and len(rules) != 1:
                raise ResolverInvariantError(
                    f"Override group ({aspect.value}, {target}) resolved to {len(rules)} rules"
                )
            if any(not r.is_active for r in rules):
                raise ResolverInvariantError(f"Inactive rule in group ({aspect.value}, {target})")


def equipment_id_for(target: str) -> Optional[str]:
    return None if target == ROOM_TARGET else target
