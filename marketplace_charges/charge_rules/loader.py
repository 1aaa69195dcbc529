"""Rule-set document loader.

Parses stored charge documents (YAML/JSON files, or JSON answered by the admin
service) into ``ChargeRuleSet`` values.

The loader is strict at the document level and lenient at the rule level:

- a document that is not a mapping, has a non-list ``charges`` field, carries
  ``isDefault``/``isActive`` values that are not booleans (the string
  ``"false"`` included) or mixes the default flag with a category scope raises
  ``InvalidRuleSetError`` with a readable message, so CI/test runs fail fast;
- a single malformed rule (unknown chargeType, negative value, ...) is dropped,
  recorded on ``ChargeRuleSet.issues`` and logged, and the rest of the set
  still loads.

Documents use the field names of the admin API (camelCase); snake_case aliases
are accepted too:

    categoryId: "6882f91f5b1ba9254864dfeb"
    categoryName: Sweets
    isDefault: false
    isActive: true
    charges:
      - chargeType: delivery
        calculationType: fixed
        value: 50
        maxOrderAmount: 299
        priority: 5
        description: Standard delivery for sweets
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import InvalidRuleSetError
from .types import WEATHER_ANY, ChargeRule, ChargeRuleSet, RuleIssue
from .validation import rule_problems

_LOGGER = logging.getLogger(__name__)

RULE_FILE_SUFFIXES = (".yaml", ".yml", ".json")


class _FieldError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


def _get(obj: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in obj:
            return obj[k]
    return default


def _to_number(v: Any, *, field: str) -> float:
    if isinstance(v, bool):
        raise _FieldError(field, f"{field} must be a number, got {v!r}")
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str) and v.strip():
        try:
            return float(v.strip())
        except ValueError:
            pass
    raise _FieldError(field, f"{field} must be a number, got {v!r}")


def _to_optional_number(v: Any, *, field: str) -> Optional[float]:
    if v is None or v == "":
        return None
    return _to_number(v, field=field)


def _to_priority(v: Any) -> int:
    if v is None or v == "":
        return 0
    num = _to_number(v, field="priority")
    if not num.is_integer():
        raise _FieldError("priority", f"priority must be an integer, got {v!r}")
    return int(num)


def _to_date(v: Any, *, field: str) -> Optional[date]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            # Accept both "2025-01-31" and the admin API's ISO timestamps.
            return date.fromisoformat(v.strip()[:10])
        except ValueError:
            pass
    raise _FieldError(field, f"{field} must be a date, got {v!r}")


def _norm_token(v: Any, default: str) -> str:
    if v is None or v == "":
        return default
    return str(v).strip().lower()


def parse_rule(obj: Any) -> ChargeRule:
    """Parse one rule mapping. Raises ``ValueError`` (with ``.field``) on bad input."""
    if not isinstance(obj, dict):
        raise _FieldError("rule", f"rule must be an object, got {type(obj).__name__}")

    rule = ChargeRule(
        charge_type=_norm_token(_get(obj, "chargeType", "charge_type"), ""),
        calculation_type=_norm_token(_get(obj, "calculationType", "calculation_type"), "fixed"),
        value=_to_number(_get(obj, "value"), field="value"),
        min_order_amount=_to_optional_number(
            _get(obj, "minOrderAmount", "min_order_amount"), field="minOrderAmount"
        )
        or 0.0,
        max_order_amount=_to_optional_number(
            _get(obj, "maxOrderAmount", "max_order_amount"), field="maxOrderAmount"
        ),
        weather_condition=_norm_token(_get(obj, "weatherCondition", "weather_condition"), WEATHER_ANY),
        valid_from=_to_date(_get(obj, "validFrom", "valid_from"), field="validFrom"),
        valid_until=_to_date(_get(obj, "validUntil", "valid_until"), field="validUntil"),
        priority=_to_priority(_get(obj, "priority")),
        description=str(_get(obj, "description", default="") or ""),
    )

    problems = rule_problems(rule)
    if problems:
        field, message = problems[0]
        raise _FieldError(field, message)
    return rule


def _category_scope(doc: Dict[str, Any]) -> tuple[Optional[str], str]:
    raw_id = _get(doc, "categoryId", "category_id")
    name = str(_get(doc, "categoryName", "category_name", default="") or "")
    # Populated documents carry the category object instead of the bare id.
    if isinstance(raw_id, dict):
        name = name or str(raw_id.get("name") or "")
        raw_id = raw_id.get("_id") or raw_id.get("id")
    cat_id = str(raw_id).strip() if raw_id not in (None, "") else None
    return cat_id, name


def _flag(document: Dict[str, Any], ctx: str, *keys: str, default: bool) -> bool:
    value = _get(document, *keys)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidRuleSetError(f"'{keys[0]}' must be true or false in {ctx}, got {value!r}")
    return value


def parse_rule_set(document: Any, *, source: str = "") -> ChargeRuleSet:
    ctx = f"rule set({source})" if source else "rule set"
    if not isinstance(document, dict):
        raise InvalidRuleSetError(f"{ctx} must be an object, got {type(document).__name__}")

    charges = _get(document, "charges", "rules", default=[])
    if charges is None:
        charges = []
    if not isinstance(charges, list):
        raise InvalidRuleSetError(f"'charges' must be a list in {ctx}")

    is_default = _flag(document, ctx, "isDefault", "is_default", default=False)
    is_active = _flag(document, ctx, "isActive", "is_active", default=True)
    cat_id, cat_name = _category_scope(document)

    if is_default and cat_id:
        raise InvalidRuleSetError(f"default {ctx} must not have a categoryId (got {cat_id})")
    if not is_default and not cat_id:
        raise InvalidRuleSetError(f"Missing categoryId in non-default {ctx}")

    label = "Default" if is_default else (cat_name or cat_id or "")
    rules: List[ChargeRule] = []
    issues: List[RuleIssue] = []
    for i, obj in enumerate(charges):
        try:
            rules.append(parse_rule(obj))
        except ValueError as ex:
            field = getattr(ex, "field", "rule")
            issues.append(RuleIssue(scope=label, rule_index=i, field=field, message=str(ex)))
            _LOGGER.warning("Skipping invalid charge rule #%d in %s: %s", i, source or label, ex)

    return ChargeRuleSet(
        rules=tuple(rules),
        is_active=is_active,
        is_default=is_default,
        category_id=cat_id,
        category_name=cat_name if not is_default else (cat_name or "Default"),
        source=source,
        issues=tuple(issues),
    )


def _load_one(path: Path) -> Any:
    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(raw) or {}
        except yaml.YAMLError as ex:
            raise InvalidRuleSetError(f"Invalid YAML in {path}: {ex}") from ex
    if suffix == ".json":
        try:
            return json.loads(raw)
        except json.JSONDecodeError as ex:
            raise InvalidRuleSetError(f"Invalid JSON in {path}: {ex}") from ex
    raise InvalidRuleSetError(f"Unsupported rule file type: {path}")


def load_rule_sets(rules_dir: Path) -> List[ChargeRuleSet]:
    """Load every rule document in ``rules_dir`` (sorted by file name).

    A file holds one document, or a list of documents.
    """
    base = Path(rules_dir)
    if not base.exists():
        return []
    paths = sorted(p for p in base.iterdir() if p.is_file() and p.suffix.lower() in RULE_FILE_SUFFIXES)
    out: List[ChargeRuleSet] = []
    for p in paths:
        data = _load_one(p)
        docs = data if isinstance(data, list) else [data]
        for i, doc in enumerate(docs):
            source = p.name if len(docs) == 1 else f"{p.name}[{i}]"
            out.append(parse_rule_set(doc, source=source))
    _LOGGER.debug("Loaded %d rule sets from %s", len(out), base)
    return out


__all__ = ["parse_rule", "parse_rule_set", "load_rule_sets", "RULE_FILE_SUFFIXES"]
