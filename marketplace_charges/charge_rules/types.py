from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, Optional, Tuple

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

CHARGE_TYPES: frozenset[str] = frozenset(
    {"rain", "packing", "tax", "delivery", "service", "handling", "discount", "other"}
)
CALCULATION_TYPES: frozenset[str] = frozenset({"fixed", "percentage"})
WEATHER_CONDITIONS: frozenset[str] = frozenset({"rain", "heavy_rain", "storm", "any"})

WEATHER_ANY = "any"


@dataclass(frozen=True)
class CategoryRef:
    id: str
    name: str = ""


@dataclass(frozen=True)
class CartItem:
    category: Optional[CategoryRef] = None
    quantity: float = 1
    price: float = 0.0


@dataclass(frozen=True)
class ChargeRule:
    """One candidate surcharge/discount definition with banding and priority."""

    charge_type: str
    calculation_type: str
    value: float
    min_order_amount: float = 0.0
    max_order_amount: Optional[float] = None
    weather_condition: str = WEATHER_ANY  # only consulted for charge_type == "rain"
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    priority: int = 0
    description: str = ""


@dataclass(frozen=True)
class ChargeRuleSet:
    """Rules scoped to one category, or the global default (is_default=True)."""

    rules: Tuple[ChargeRule, ...] = ()
    is_active: bool = True
    is_default: bool = False
    category_id: Optional[str] = None
    category_name: str = ""
    source: str = ""
    issues: Tuple[RuleIssue, ...] = ()  # rules dropped while loading this set

    @property
    def label(self) -> str:
        if self.is_default:
            return "Default"
        return self.category_name or self.category_id or "unscoped"


@dataclass(frozen=True)
class EvaluationRequest:
    items: Tuple[CartItem, ...] = ()
    subtotal: float = 0.0
    weather_condition: Optional[str] = None  # None means "no rain"
    order_date: Optional[date] = None


@dataclass(frozen=True)
class ComputedCharge:
    charge_type: str
    calculation_type: str
    value: float
    min_order_amount: float = 0.0
    max_order_amount: Optional[float] = None
    weather_condition: str = WEATHER_ANY
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    priority: int = 0
    description: str = ""
    calculated_amount: float = 0.0
    applied: bool = True  # band, weather and validity window all matched

    @classmethod
    def from_rule(cls, rule: ChargeRule, amount: float, applied: bool = True) -> "ComputedCharge":
        return cls(**asdict(rule), calculated_amount=amount, applied=applied)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase shape returned to checkout clients."""
        return {
            "chargeType": self.charge_type,
            "calculationType": self.calculation_type,
            "value": self.value,
            "minOrderAmount": self.min_order_amount,
            "maxOrderAmount": self.max_order_amount,
            "weatherCondition": self.weather_condition,
            "validFrom": self.valid_from.isoformat() if self.valid_from else None,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
            "priority": self.priority,
            "description": self.description,
            "calculatedAmount": self.calculated_amount,
        }


@dataclass(frozen=True)
class RuleIssue:
    scope: str
    rule_index: int
    field: str
    message: str


@dataclass(frozen=True)
class EvaluationResult:
    charges: Tuple[ComputedCharge, ...] = ()
    rule_set: Optional[ChargeRuleSet] = None
    issues: Tuple[RuleIssue, ...] = field(default_factory=tuple)
    error: Optional[str] = None  # "rule_store_unavailable" | "malformed_rule_store_data"

    @property
    def ok(self) -> bool:
        return self.error is None
