"""Charge rule evaluation.

Everything below ``select_rule_set`` is *pure policy* (no I/O). The rule-set
lookup is the only fallible step and it is injected, so the selection and the
arithmetic can be tested without a live store.

How it works
------------
1. **Rule-set selection.** A cart spanning more than one category is charged by
   the global default rule set only: per-category pricing assumptions (e.g.
   "free delivery above 150" tuned for vegetables) do not compose across mixed
   carts. A single-category (or empty) cart uses that category's rule set and
   falls back to the default when none is configured.

2. **Per-rule amount.** Every rule of the selected set produces a
   ``ComputedCharge``, including zero amounts::

       subtotal < minOrderAmount              -> 0
       maxOrderAmount set and subtotal > max  -> 0
       fixed                                  -> value
       percentage                             -> subtotal * value / 100

   ``rain`` rules additionally need a matching ``weatherCondition`` (or
   ``any``). When the request carries an order date, rules whose
   ``validFrom``/``validUntil`` window excludes it compute 0 as well.

3. **Duplicate resolution.** Rule sets encode tiers as several rules of the
   same chargeType ("50 under 300", "free from 300"). Each chargeType group is
   folded with ``prefer`` down to one charge: the positive charge with the
   highest priority, whatever the input order. When no rule of a group has a
   positive amount, a zero-amount rule that actually applied (its band and
   weather matched, as with a "free from 300" tier) is returned in preference
   to rules that were filtered out.

Amounts are magnitudes. Applying a ``discount`` with a negative sign belongs to
the caller (see ``checkout.totals``).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..utils.trace import TraceLogger
from .cart import distinct_category_ids
from .errors import RuleStoreError
from .store import RuleStore
from .types import (
    WEATHER_ANY,
    CartItem,
    ChargeRule,
    ChargeRuleSet,
    ComputedCharge,
    EvaluationRequest,
    EvaluationResult,
    RuleIssue,
)
from .validation import rule_problems

_LOGGER = logging.getLogger(__name__)

CategoryLookup = Callable[[str], Optional[ChargeRuleSet]]
DefaultLookup = Callable[[], Optional[ChargeRuleSet]]


# ---------------------------------------------------------------------------
# Step 1: rule-set selection
# ---------------------------------------------------------------------------


def _usable_default(rs: Optional[ChargeRuleSet]) -> Optional[ChargeRuleSet]:
    if rs is None or not rs.is_active or not rs.is_default:
        return None
    return rs


def _usable_category(rs: Optional[ChargeRuleSet], category_id: str) -> Optional[ChargeRuleSet]:
    if rs is None or not rs.is_active or rs.is_default or rs.category_id != category_id:
        return None
    return rs


def select_rule_set(
    items: Iterable[CartItem],
    get_by_category: CategoryLookup,
    get_default: DefaultLookup,
) -> Optional[ChargeRuleSet]:
    """Pick the rule set for a cart; ``None`` means no charges apply.

    Lookup failures (``RuleStoreError``) propagate to the caller.
    """
    category_ids = distinct_category_ids(items)

    if len(category_ids) > 1:
        return _usable_default(get_default())

    if category_ids:
        specific = _usable_category(get_by_category(category_ids[0]), category_ids[0])
        if specific is not None:
            return specific

    return _usable_default(get_default())


# ---------------------------------------------------------------------------
# Step 2: per-rule amounts
# ---------------------------------------------------------------------------


def weather_applies(rule: ChargeRule, weather: Optional[str]) -> bool:
    if rule.charge_type != "rain":
        return True
    if rule.weather_condition == WEATHER_ANY:
        return True
    return weather is not None and rule.weather_condition == weather


def in_validity_window(rule: ChargeRule, order_date: Optional[date]) -> bool:
    if order_date is None:
        return True
    if rule.valid_from is not None and order_date < rule.valid_from:
        return False
    if rule.valid_until is not None and order_date > rule.valid_until:
        return False
    return True


def in_order_band(rule: ChargeRule, subtotal: float) -> bool:
    if subtotal < rule.min_order_amount:
        return False
    if rule.max_order_amount is not None and subtotal > rule.max_order_amount:
        return False
    return True


def calculate_charge_amount(rule: ChargeRule, subtotal: float) -> float:
    if not in_order_band(rule, subtotal):
        return 0.0
    if rule.calculation_type == "fixed":
        return float(rule.value)
    if rule.calculation_type == "percentage":
        return subtotal * rule.value / 100
    return 0.0


def compute_charge(rule: ChargeRule, request: EvaluationRequest) -> ComputedCharge:
    if not weather_applies(rule, request.weather_condition):
        return ComputedCharge.from_rule(rule, 0.0, applied=False)
    if not in_validity_window(rule, request.order_date):
        return ComputedCharge.from_rule(rule, 0.0, applied=False)
    return ComputedCharge.from_rule(
        rule,
        calculate_charge_amount(rule, request.subtotal),
        applied=in_order_band(rule, request.subtotal),
    )


# ---------------------------------------------------------------------------
# Step 3: duplicate resolution
# ---------------------------------------------------------------------------


def prefer(current: ComputedCharge, candidate: ComputedCharge) -> bool:
    """True when ``candidate`` should replace ``current`` within one chargeType.

    - a positive candidate replaces a zero-amount current regardless of priority;
    - between two positive charges the strictly higher priority wins;
    - between two zero-amount charges, one whose band and weather matched
      (e.g. a "free from 300" tier) replaces one that did not apply.
    """
    if candidate.calculated_amount <= 0:
        return current.calculated_amount <= 0 and candidate.applied and not current.applied
    if current.calculated_amount <= 0:
        return True
    return candidate.priority > current.priority


def resolve_duplicates(charges: Iterable[ComputedCharge]) -> List[ComputedCharge]:
    """One charge per chargeType, in first-appearance order of the type."""
    groups: Dict[str, List[ComputedCharge]] = {}
    for ch in charges:
        groups.setdefault(ch.charge_type, []).append(ch)

    out: List[ComputedCharge] = []
    for group in groups.values():
        winner = group[0]
        for candidate in group[1:]:
            if prefer(winner, candidate):
                winner = candidate
        out.append(winner)
    return out


def evaluate_rule_set(
    rule_set: ChargeRuleSet, request: EvaluationRequest
) -> Tuple[List[ComputedCharge], List[RuleIssue]]:
    """Steps 2 and 3 for an already-selected rule set.

    Rules that fail validation are skipped and reported, never fatal.
    """
    computed: List[ComputedCharge] = []
    issues: List[RuleIssue] = []
    for i, rule in enumerate(rule_set.rules):
        problems = rule_problems(rule)
        if problems:
            field, message = problems[0]
            issues.append(RuleIssue(scope=rule_set.label, rule_index=i, field=field, message=message))
            _LOGGER.warning("Skipping invalid charge rule #%d in %s: %s", i, rule_set.label, message)
            continue
        computed.append(compute_charge(rule, request))
    return resolve_duplicates(computed), issues


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _trace_payload(charges: Sequence[ComputedCharge]) -> List[Dict[str, object]]:
    return [
        {"chargeType": c.charge_type, "calculatedAmount": c.calculated_amount, "priority": c.priority}
        for c in charges
    ]


def _run(
    request: EvaluationRequest, store: RuleStore, trace: Optional[TraceLogger]
) -> EvaluationResult:
    rule_set = select_rule_set(request.items, store.get_rule_set_by_category, store.get_default_rule_set)
    if rule_set is None:
        _LOGGER.info("No active rule set applies; no additional charges")
        if trace:
            trace.log("rule_set_selected", {"rule_set": None})
        return EvaluationResult()

    _LOGGER.debug("Selected rule set %s (%d rules)", rule_set.label, len(rule_set.rules))
    if trace:
        trace.log(
            "rule_set_selected",
            {"rule_set": rule_set.label, "source": rule_set.source, "rules": len(rule_set.rules)},
        )

    charges, issues = evaluate_rule_set(rule_set, request)
    if trace:
        trace.log(
            "charges_computed",
            {"subtotal": request.subtotal, "weather": request.weather_condition, "charges": _trace_payload(charges)},
        )
    return EvaluationResult(
        charges=tuple(charges),
        rule_set=rule_set,
        issues=tuple(rule_set.issues) + tuple(issues),
    )


def evaluate(
    request: EvaluationRequest, store: RuleStore, *, trace: Optional[TraceLogger] = None
) -> EvaluationResult:
    """Compute the charges for a cart.

    Never raises for rule-store failures: they come back as
    ``EvaluationResult(error=<kind>)`` so the checkout flow can show a generic
    retry message. An empty ``charges`` tuple with ``ok`` means no rules apply.
    """
    try:
        return _run(request, store, trace)
    except RuleStoreError as ex:
        _LOGGER.error("Charge evaluation failed (%s): %s", ex.kind, ex)
        if trace:
            trace.log("evaluation_failed", {"kind": ex.kind, "source": ex.source, "error": str(ex)})
        return EvaluationResult(error=ex.kind)


def evaluate_charges(
    request: EvaluationRequest, store: RuleStore, *, trace: Optional[TraceLogger] = None
) -> List[ComputedCharge]:
    """Like ``evaluate`` but returns the list and lets ``RuleStoreError`` propagate."""
    return list(_run(request, store, trace).charges)


__all__ = [
    "select_rule_set",
    "weather_applies",
    "in_validity_window",
    "in_order_band",
    "calculate_charge_amount",
    "compute_charge",
    "prefer",
    "resolve_duplicates",
    "evaluate_rule_set",
    "evaluate",
    "evaluate_charges",
]
