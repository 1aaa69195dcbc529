from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable

from ..charge_rules.types import ComputedCharge

# chargeType -> order bucket. Anything not listed lands in "service".
CHARGE_BUCKETS: Dict[str, str] = {
    "tax": "gst",
    "delivery": "delivery",
    "packing": "packaging",
    "rain": "rain",
    "service": "service",
    "handling": "service",
    "other": "service",
    "discount": "discount",
}


@dataclass(frozen=True)
class OrderCharges:
    subtotal: float
    gst: float = 0.0
    delivery: float = 0.0
    packaging: float = 0.0
    rain: float = 0.0
    service: float = 0.0
    discount: float = 0.0
    final_amount: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Field names of the order document."""
        return {
            "totalAmount": self.subtotal,
            "tax": self.gst,
            "deliveryCharges": self.delivery,
            "packagingCharges": self.packaging,
            "rainCharges": self.rain,
            "serviceCharges": self.service,
            "discount": self.discount,
            "finalAmount": self.final_amount,
        }


def summarize_charges(
    charges: Iterable[ComputedCharge],
    subtotal: float,
    *,
    coupon_discount: float = 0.0,
) -> OrderCharges:
    """Fold computed charges into order buckets and compute the payable amount.

    Discount-type charges are magnitudes and are subtracted here. Only the
    first delivery charge counts; the evaluator returns at most one anyway.
    """
    buckets: Dict[str, float] = {
        "gst": 0.0,
        "delivery": 0.0,
        "packaging": 0.0,
        "rain": 0.0,
        "service": 0.0,
        "discount": float(coupon_discount or 0.0),
    }
    delivery_seen = False

    for ch in charges:
        amount = float(ch.calculated_amount or 0.0)
        bucket = CHARGE_BUCKETS.get(ch.charge_type, "service")
        if bucket == "delivery":
            if delivery_seen:
                continue
            delivery_seen = True
        buckets[bucket] += amount

    total = (
        subtotal
        - buckets["discount"]
        + buckets["gst"]
        + buckets["delivery"]
        + buckets["packaging"]
        + buckets["rain"]
        + buckets["service"]
    )
    final_amount = max(round(total, 2), 0.0)

    return OrderCharges(
        subtotal=subtotal,
        gst=round(buckets["gst"], 2),
        delivery=round(buckets["delivery"], 2),
        packaging=round(buckets["packaging"], 2),
        rain=round(buckets["rain"], 2),
        service=round(buckets["service"], 2),
        discount=round(buckets["discount"], 2),
        final_amount=final_amount,
    )


__all__ = ["CHARGE_BUCKETS", "OrderCharges", "summarize_charges"]
