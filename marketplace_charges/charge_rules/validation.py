"""Sanity checks for stored charge rules.

Two levels:

* ``rule_problems`` looks at a single rule. A rule with problems is skipped by
  both the loader and the evaluator; the rest of its rule set still applies.
* ``validate_rule_sets`` looks at a whole store snapshot and reports violations
  of the scoping invariants (one active default, one active set per category).
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Tuple

from .types import (
    CALCULATION_TYPES,
    CHARGE_TYPES,
    WEATHER_CONDITIONS,
    ChargeRule,
    ChargeRuleSet,
)


def _is_number(v: Any) -> bool:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return False
    return math.isfinite(v)


def rule_problems(rule: ChargeRule) -> List[Tuple[str, str]]:
    """Return ``(field, message)`` pairs; empty means the rule is usable."""
    problems: List[Tuple[str, str]] = []

    if rule.charge_type not in CHARGE_TYPES:
        problems.append(("chargeType", f"unknown chargeType {rule.charge_type!r}"))
    if rule.calculation_type not in CALCULATION_TYPES:
        problems.append(("calculationType", f"unknown calculationType {rule.calculation_type!r}"))
    if rule.weather_condition not in WEATHER_CONDITIONS:
        problems.append(("weatherCondition", f"unknown weatherCondition {rule.weather_condition!r}"))

    if not _is_number(rule.value):
        problems.append(("value", f"value must be a finite number, got {rule.value!r}"))
    elif rule.value < 0:
        problems.append(("value", f"value must be non-negative, got {rule.value}"))
    elif rule.calculation_type == "percentage" and rule.value > 100:
        problems.append(("value", f"percentage value must be between 0 and 100, got {rule.value}"))

    if not _is_number(rule.min_order_amount):
        problems.append(("minOrderAmount", f"minOrderAmount must be a finite number, got {rule.min_order_amount!r}"))
    if rule.max_order_amount is not None:
        if not _is_number(rule.max_order_amount):
            problems.append(("maxOrderAmount", f"maxOrderAmount must be a finite number, got {rule.max_order_amount!r}"))
        elif _is_number(rule.min_order_amount) and rule.max_order_amount < rule.min_order_amount:
            problems.append(
                (
                    "maxOrderAmount",
                    f"maxOrderAmount {rule.max_order_amount} is below minOrderAmount {rule.min_order_amount}",
                )
            )

    if isinstance(rule.priority, bool) or not isinstance(rule.priority, int):
        problems.append(("priority", f"priority must be an integer, got {rule.priority!r}"))

    if rule.valid_from and rule.valid_until and rule.valid_from > rule.valid_until:
        problems.append(("validUntil", "validUntil is before validFrom"))

    return problems


def validate_rule_sets(rule_sets: Iterable[ChargeRuleSet]) -> List[str]:
    problems: List[str] = []
    active_defaults: List[ChargeRuleSet] = []
    by_category: Dict[str, List[ChargeRuleSet]] = {}

    for rs in rule_sets:
        for issue in rs.issues:
            problems.append(f"{rs.label}: rule #{issue.rule_index} skipped ({issue.field}: {issue.message})")
        if not rs.is_active:
            continue
        if rs.is_default:
            active_defaults.append(rs)
        elif rs.category_id:
            by_category.setdefault(rs.category_id, []).append(rs)

    if len(active_defaults) > 1:
        sources = ", ".join(rs.source or rs.label for rs in active_defaults)
        problems.append(f"more than one active default rule set: {sources}")

    for cat_id, sets in sorted(by_category.items()):
        if len(sets) > 1:
            sources = ", ".join(rs.source or rs.label for rs in sets)
            problems.append(f"more than one active rule set for category {cat_id}: {sources}")

    return problems


__all__ = ["rule_problems", "validate_rule_sets"]
