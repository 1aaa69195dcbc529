from .cart import build_request, category_ref, distinct_category_ids
from .errors import InvalidRuleSetError, MalformedRuleStoreData, RuleStoreError, RuleStoreUnavailable
from .evaluator import (
    calculate_charge_amount,
    compute_charge,
    evaluate,
    evaluate_charges,
    prefer,
    resolve_duplicates,
    select_rule_set,
)
from .loader import load_rule_sets, parse_rule_set
from .store import FileRuleStore, HttpRuleStore, InMemoryRuleStore, RuleStore, build_rule_store
from .types import (
    CartItem,
    CategoryRef,
    ChargeRule,
    ChargeRuleSet,
    ComputedCharge,
    EvaluationRequest,
    EvaluationResult,
    RuleIssue,
)
from .validation import rule_problems, validate_rule_sets

__all__ = [
    "build_request",
    "category_ref",
    "distinct_category_ids",
    "RuleStoreError",
    "RuleStoreUnavailable",
    "MalformedRuleStoreData",
    "InvalidRuleSetError",
    "calculate_charge_amount",
    "compute_charge",
    "evaluate",
    "evaluate_charges",
    "prefer",
    "resolve_duplicates",
    "select_rule_set",
    "load_rule_sets",
    "parse_rule_set",
    "RuleStore",
    "InMemoryRuleStore",
    "FileRuleStore",
    "HttpRuleStore",
    "build_rule_store",
    "CartItem",
    "CategoryRef",
    "ChargeRule",
    "ChargeRuleSet",
    "ComputedCharge",
    "EvaluationRequest",
    "EvaluationResult",
    "RuleIssue",
    "rule_problems",
    "validate_rule_sets",
]
