import itertools
import random
from datetime import date

import pytest

from marketplace_charges.charge_rules.errors import MalformedRuleStoreData, RuleStoreUnavailable
from marketplace_charges.charge_rules.evaluator import (
    calculate_charge_amount,
    compute_charge,
    evaluate,
    evaluate_charges,
    prefer,
    resolve_duplicates,
    select_rule_set,
)
from marketplace_charges.charge_rules.store import InMemoryRuleStore
from marketplace_charges.charge_rules.types import (
    CartItem,
    CategoryRef,
    ChargeRule,
    ChargeRuleSet,
    ComputedCharge,
    EvaluationRequest,
)

SWEETS = "6882f91f5b1ba9254864dfeb"
GROCERY = "6882f90c5b1ba9254864dfe9"


def _rule(charge_type, value, calculation_type="fixed", **kw):
    return ChargeRule(charge_type=charge_type, calculation_type=calculation_type, value=value, **kw)


def _item(category_id, price=100.0, quantity=1):
    cat = CategoryRef(id=category_id) if category_id else None
    return CartItem(category=cat, quantity=quantity, price=price)


def _request(subtotal, *category_ids, weather=None, order_date=None):
    return EvaluationRequest(
        items=tuple(_item(c) for c in category_ids),
        subtotal=subtotal,
        weather_condition=weather,
        order_date=order_date,
    )


def _by_type(charges):
    return {c.charge_type: c for c in charges}


DEFAULT_SET = ChargeRuleSet(
    rules=(
        _rule("delivery", 40, max_order_amount=199, priority=5, description="default delivery"),
        _rule("delivery", 0, min_order_amount=200, priority=10, description="default free delivery"),
        _rule("tax", 15, priority=1, description="default tax"),
    ),
    is_default=True,
    category_name="Default",
)

SWEETS_SET = ChargeRuleSet(
    rules=(
        _rule("rain", 30, weather_condition="rain", priority=5, description="light rain"),
        _rule("rain", 60, weather_condition="heavy_rain", priority=10, description="heavy rain"),
        _rule("packing", 20, priority=5, description="standard packing"),
        _rule("packing", 40, min_order_amount=500, priority=8, description="premium packing"),
        _rule("delivery", 50, max_order_amount=299, priority=5, description="sweets delivery"),
        _rule("delivery", 0, min_order_amount=300, priority=10, description="sweets free delivery"),
        _rule("tax", 25, priority=20, description="sweets tax"),
    ),
    category_id=SWEETS,
    category_name="Sweets",
)

GROCERY_SET = ChargeRuleSet(
    rules=(_rule("delivery", 30, max_order_amount=199, priority=5),),
    category_id=GROCERY,
    category_name="Grocery",
)


def _store(*rule_sets):
    return InMemoryRuleStore(list(rule_sets))


# ---------------------------------------------------------------------------
# Rule-set selection
# ---------------------------------------------------------------------------


def test_single_category_cart_uses_category_rule_set():
    result = evaluate(_request(150, SWEETS, SWEETS), _store(DEFAULT_SET, SWEETS_SET))

    assert result.ok
    assert result.rule_set.category_id == SWEETS
    assert _by_type(result.charges)["tax"].calculated_amount == 25


def test_mixed_category_cart_uses_default_even_when_each_category_has_rules():
    result = evaluate(_request(150, SWEETS, GROCERY), _store(DEFAULT_SET, SWEETS_SET, GROCERY_SET))

    assert result.rule_set.is_default
    charges = _by_type(result.charges)
    assert charges["delivery"].calculated_amount == 40
    assert charges["tax"].calculated_amount == 15
    assert "packing" not in charges


def test_category_without_rule_set_falls_back_to_default():
    result = evaluate(_request(150, "unknown-category"), _store(DEFAULT_SET, SWEETS_SET))

    assert result.rule_set.is_default


def test_empty_cart_uses_default():
    result = evaluate(_request(0), _store(DEFAULT_SET, SWEETS_SET))

    assert result.rule_set.is_default
    assert _by_type(result.charges)["delivery"].calculated_amount == 40


def test_unclassified_items_do_not_count_as_a_category():
    result = evaluate(_request(150, SWEETS, None), _store(DEFAULT_SET, SWEETS_SET))

    assert result.rule_set.category_id == SWEETS


def test_no_rule_sets_means_no_charges():
    result = evaluate(_request(150, SWEETS), _store())

    assert result.ok
    assert result.charges == ()
    assert result.rule_set is None


def test_inactive_rule_sets_are_ignored():
    inactive_sweets = ChargeRuleSet(rules=SWEETS_SET.rules, is_active=False, category_id=SWEETS)
    inactive_default = ChargeRuleSet(rules=DEFAULT_SET.rules, is_active=False, is_default=True)

    result = evaluate(_request(150, SWEETS), _store(inactive_sweets, DEFAULT_SET))
    assert result.rule_set.is_default

    result = evaluate(_request(150, SWEETS), _store(inactive_sweets, inactive_default))
    assert result.charges == ()


def test_select_rule_set_does_not_consult_category_lookup_for_mixed_carts():
    calls = []

    def by_category(cat_id):
        calls.append(cat_id)
        return SWEETS_SET

    selected = select_rule_set(
        [_item(SWEETS), _item(GROCERY)], by_category, lambda: DEFAULT_SET
    )

    assert selected is DEFAULT_SET
    assert calls == []


def test_select_rule_set_rejects_lookup_answer_for_other_category():
    selected = select_rule_set([_item(GROCERY)], lambda _cid: SWEETS_SET, lambda: DEFAULT_SET)

    assert selected is DEFAULT_SET


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def test_fixed_and_percentage_amounts():
    assert calculate_charge_amount(_rule("service", 15), 150) == 15
    assert calculate_charge_amount(_rule("tax", 5, "percentage"), 200) == pytest.approx(10.0)
    assert calculate_charge_amount(_rule("tax", 18, "percentage"), 333.33) == pytest.approx(59.9994)


def test_order_band_bounds_are_inclusive():
    rule = _rule("delivery", 50, min_order_amount=100, max_order_amount=299)

    assert calculate_charge_amount(rule, 99.99) == 0
    assert calculate_charge_amount(rule, 100) == 50
    assert calculate_charge_amount(rule, 299) == 50
    assert calculate_charge_amount(rule, 299.01) == 0


def test_zero_value_rule_computes_zero():
    assert calculate_charge_amount(_rule("delivery", 0, min_order_amount=300), 500) == 0


def test_weather_gating_for_rain_rules():
    heavy = _rule("rain", 60, weather_condition="heavy_rain")
    anywhere = _rule("rain", 10, weather_condition="any")

    assert compute_charge(heavy, _request(100, weather="rain")).calculated_amount == 0
    assert compute_charge(heavy, _request(100, weather="heavy_rain")).calculated_amount == 60
    assert compute_charge(heavy, _request(100)).calculated_amount == 0
    for weather in ("rain", "heavy_rain", "storm", None):
        assert compute_charge(anywhere, _request(100, weather=weather)).calculated_amount == 10


def test_weather_condition_ignored_for_non_rain_rules():
    packing = _rule("packing", 20, weather_condition="storm")

    assert compute_charge(packing, _request(100)).calculated_amount == 20


def test_validity_window_applies_only_with_order_date():
    rule = _rule("other", 5, valid_from=date(2025, 1, 1), valid_until=date(2025, 1, 31))

    assert compute_charge(rule, _request(100)).calculated_amount == 5
    assert compute_charge(rule, _request(100, order_date=date(2025, 1, 15))).calculated_amount == 5
    assert compute_charge(rule, _request(100, order_date=date(2025, 1, 31))).calculated_amount == 5
    assert compute_charge(rule, _request(100, order_date=date(2025, 2, 1))).calculated_amount == 0
    assert compute_charge(rule, _request(100, order_date=date(2024, 12, 31))).calculated_amount == 0


def test_computed_charge_carries_rule_fields():
    rule = _rule("packing", 40, min_order_amount=500, priority=8, description="premium")
    charge = compute_charge(rule, _request(600))

    assert charge.min_order_amount == 500
    assert charge.priority == 8
    assert charge.description == "premium"
    assert charge.calculated_amount == 40
    assert charge.to_dict()["calculatedAmount"] == 40
    assert charge.to_dict()["chargeType"] == "packing"


# ---------------------------------------------------------------------------
# Duplicate resolution
# ---------------------------------------------------------------------------


def test_tiered_delivery_keeps_one_charge_per_band():
    store = _store(SWEETS_SET)

    low = _by_type(evaluate_charges(_request(150, SWEETS), store))
    assert low["delivery"].calculated_amount == 50

    high = _by_type(evaluate_charges(_request(500, SWEETS), store))
    assert high["delivery"].calculated_amount == 0
    assert high["delivery"].description == "sweets free delivery"


def test_gap_between_bands_yields_zero_delivery():
    charges = evaluate_charges(_request(299.5, SWEETS), _store(SWEETS_SET))

    deliveries = [c for c in charges if c.charge_type == "delivery"]
    assert len(deliveries) == 1
    assert deliveries[0].calculated_amount == 0


def test_higher_priority_wins_between_positive_charges_in_both_orders():
    standard = _rule("packing", 20, priority=5, description="standard")
    premium = _rule("packing", 40, min_order_amount=500, priority=8, description="premium")
    req = _request(600, SWEETS)

    for rules in ((standard, premium), (premium, standard)):
        rs = ChargeRuleSet(rules=rules, category_id=SWEETS)
        (charge,) = evaluate_charges(req, _store(rs))
        assert charge.description == "premium"
        assert charge.calculated_amount == 40

    rs = ChargeRuleSet(rules=(premium, standard), category_id=SWEETS)
    (charge,) = evaluate_charges(_request(100, SWEETS), _store(rs))
    assert charge.description == "standard"


def test_positive_charge_beats_zero_charge_regardless_of_priority():
    rain = evaluate_charges(_request(100, SWEETS, weather="rain"), _store(SWEETS_SET))

    assert _by_type(rain)["rain"].calculated_amount == 30
    heavy = evaluate_charges(_request(100, SWEETS, weather="heavy_rain"), _store(SWEETS_SET))
    assert _by_type(heavy)["rain"].calculated_amount == 60


def test_all_zero_group_still_returns_one_zero_charge():
    charges = evaluate_charges(_request(100, SWEETS), _store(SWEETS_SET))

    rain = [c for c in charges if c.charge_type == "rain"]
    assert len(rain) == 1
    assert rain[0].calculated_amount == 0


def test_one_charge_per_type_in_first_appearance_order():
    charges = evaluate_charges(_request(100, SWEETS, weather="rain"), _store(SWEETS_SET))

    assert [c.charge_type for c in charges] == ["rain", "packing", "delivery", "tax"]


def test_prefer_comparator():
    def charge(amount, priority, applied=True):
        return ComputedCharge(charge_type="x", calculation_type="fixed", value=amount, priority=priority,
                              calculated_amount=amount, applied=applied)

    assert prefer(charge(0, 10), charge(5, 1)) is True
    assert prefer(charge(5, 1), charge(0, 10)) is False
    assert prefer(charge(5, 1), charge(7, 2)) is True
    assert prefer(charge(7, 2), charge(5, 1)) is False
    assert prefer(charge(0, 1), charge(0, 2)) is False
    assert prefer(charge(0, 5, applied=False), charge(0, 10)) is True
    assert prefer(charge(0, 10), charge(0, 5, applied=False)) is False
    assert prefer(charge(5, 1), charge(0, 10, applied=True)) is False


@pytest.mark.parametrize("reverse", [False, True])
def test_free_tier_wins_over_out_of_band_paid_tier(reverse):
    rules = [
        _rule("delivery", 50, max_order_amount=299, priority=5, description="standard"),
        _rule("delivery", 0, min_order_amount=300, priority=10, description="free"),
    ]
    if reverse:
        rules.reverse()
    computed = [compute_charge(r, _request(500, SWEETS)) for r in rules]

    (winner,) = resolve_duplicates(computed)
    assert winner.description == "free"
    assert winner.calculated_amount == 0
    assert winner.applied is True


def test_out_of_band_and_off_weather_rules_are_marked_not_applied():
    req = _request(500, SWEETS, weather="rain")

    assert compute_charge(_rule("delivery", 50, max_order_amount=299), req).applied is False
    assert compute_charge(_rule("rain", 60, weather_condition="heavy_rain"), req).applied is False
    assert compute_charge(_rule("delivery", 0, min_order_amount=300), req).applied is True


def _fingerprint(charges):
    out = {}
    for c in charges:
        if c.calculated_amount > 0:
            out[c.charge_type] = (c.calculated_amount, c.priority, c.description)
        else:
            out[c.charge_type] = (0, c.applied)
    return out


def test_result_independent_of_rule_order_exhaustive():
    rules = [
        _rule("delivery", 50, max_order_amount=299, priority=5, description="d-low"),
        _rule("delivery", 0, min_order_amount=300, priority=10, description="d-free"),
        _rule("packing", 20, priority=5, description="p-std"),
        _rule("packing", 40, min_order_amount=200, priority=8, description="p-premium"),
        _rule("rain", 60, weather_condition="heavy_rain", priority=10, description="r-heavy"),
        _rule("rain", 30, weather_condition="rain", priority=5, description="r-light"),
    ]
    req = _request(250, SWEETS, weather="rain")

    expected = None
    for perm in itertools.permutations(rules):
        computed = [compute_charge(r, req) for r in perm]
        got = _fingerprint(resolve_duplicates(computed))
        if expected is None:
            expected = got
        assert got == expected

    assert expected["delivery"] == (50, 5, "d-low")
    assert expected["packing"] == (40, 8, "p-premium")
    assert expected["rain"] == (30, 5, "r-light")


def test_result_independent_of_rule_order_random_shuffles():
    rng = random.Random(20250101)
    charge_types = ["delivery", "packing", "service", "handling", "tax", "other"]
    for _ in range(50):
        rules = []
        for ct in charge_types:
            # distinct priorities per type so the positive winner is unique
            priorities = rng.sample(range(1, 30), k=4)
            for p in priorities:
                value = rng.choice([0, 5, 10, 25])
                min_amount = rng.choice([0, 100, 400])
                rules.append(_rule(ct, value, min_order_amount=min_amount, priority=p, description=f"{ct}-{p}"))
        req = _request(rng.choice([50, 150, 450, 900]), SWEETS)

        baseline = _fingerprint(resolve_duplicates([compute_charge(r, req) for r in rules]))
        for _ in range(10):
            shuffled = list(rules)
            rng.shuffle(shuffled)
            assert _fingerprint(resolve_duplicates([compute_charge(r, req) for r in shuffled])) == baseline


# ---------------------------------------------------------------------------
# Invalid rules and store failures
# ---------------------------------------------------------------------------


def test_invalid_rule_is_skipped_and_reported():
    rs = ChargeRuleSet(
        rules=(
            _rule("delivery", -5, priority=5),
            _rule("delivery", 30, priority=1),
            _rule("tax", 10, "percentage"),
        ),
        category_id=SWEETS,
        category_name="Sweets",
    )

    result = evaluate(_request(100, SWEETS), _store(rs))

    assert result.ok
    assert _by_type(result.charges)["delivery"].calculated_amount == 30
    assert _by_type(result.charges)["tax"].calculated_amount == pytest.approx(10.0)
    assert len(result.issues) == 1
    assert result.issues[0].rule_index == 0
    assert result.issues[0].field == "value"


class _FailingStore:
    def __init__(self, exc):
        self.exc = exc

    def list_rule_sets(self):
        raise self.exc

    def get_rule_set_by_category(self, category_id):
        raise self.exc

    def get_default_rule_set(self):
        raise self.exc


def test_store_unavailable_is_reported_not_raised():
    result = evaluate(_request(100, SWEETS), _FailingStore(RuleStoreUnavailable("db down")))

    assert not result.ok
    assert result.error == "rule_store_unavailable"
    assert result.charges == ()


def test_malformed_store_data_is_reported_not_raised():
    result = evaluate(_request(100, SWEETS, GROCERY), _FailingStore(MalformedRuleStoreData("bad")))

    assert result.error == "malformed_rule_store_data"


def test_evaluate_charges_propagates_store_errors():
    with pytest.raises(RuleStoreUnavailable):
        evaluate_charges(_request(100, SWEETS), _FailingStore(RuleStoreUnavailable("db down")))


def test_evaluation_is_deterministic_and_leaves_rule_set_untouched():
    req = _request(550, SWEETS, weather="heavy_rain")
    store = _store(DEFAULT_SET, SWEETS_SET)
    before = SWEETS_SET.rules

    first = evaluate(req, store)
    second = evaluate(req, store)

    assert first.charges == second.charges
    assert SWEETS_SET.rules == before
    assert _by_type(first.charges)["packing"].calculated_amount == 40
