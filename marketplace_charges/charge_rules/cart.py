"""
cart.py

Turns checkout payloads into evaluation requests.

Category classification
-----------------------
Cart items reach us in several shapes, depending on which client built them:

- ``{"category": {"_id": "6882...", "name": "Sweets"}}``  (populated document)
- ``{"category": {"id": "6882..."}}``
- ``{"category": "6882..."}``                              (bare id)
- ``{"category": {"_id": null}}`` or no category at all     (unclassified)

``category_ref`` folds all of them into ``CategoryRef | None``. Unclassified
items never count towards the distinct-category check.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .types import CartItem, CategoryRef, EvaluationRequest

# Values clients send when there is no weather surcharge context.
_NO_WEATHER = {"", "none", "clear", "no_rain", "null"}


def category_ref(raw: Any) -> Optional[CategoryRef]:
    if raw is None:
        return None
    if isinstance(raw, CategoryRef):
        return raw
    if isinstance(raw, dict):
        cat_id = raw.get("_id") or raw.get("id") or raw.get("categoryId")
        if cat_id in (None, ""):
            return None
        return CategoryRef(id=str(cat_id).strip(), name=str(raw.get("name") or ""))
    text = str(raw).strip()
    return CategoryRef(id=text) if text else None


def distinct_category_ids(items: Iterable[CartItem]) -> List[str]:
    """Distinct category ids in first-seen order, ignoring unclassified items."""
    seen: List[str] = []
    for item in items:
        if item.category is None or not item.category.id:
            continue
        if item.category.id not in seen:
            seen.append(item.category.id)
    return seen


def _num(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def cart_item(raw: Any) -> CartItem:
    if isinstance(raw, CartItem):
        return raw
    if not isinstance(raw, dict):
        raise ValueError(f"cart item must be an object, got {type(raw).__name__}")
    return CartItem(
        category=category_ref(raw.get("category")),
        quantity=_num(raw.get("quantity"), 1.0),
        price=_num(raw.get("price"), 0.0),
    )


def normalize_weather(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    token = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    if token in _NO_WEATHER:
        return None
    return token


def _parse_order_date(raw: Any) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError as ex:
        raise ValueError(f"orderDate must be an ISO date, got {raw!r}") from ex


def build_request(payload: Dict[str, Any]) -> EvaluationRequest:
    """Build an ``EvaluationRequest`` from a cart JSON payload.

    ``subtotal`` is taken as given when present; otherwise it is the sum of
    ``price * quantity`` over the items.
    """
    if not isinstance(payload, dict):
        raise ValueError("cart payload must be an object")
    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise ValueError("'items' must be a list")
    items = tuple(cart_item(it) for it in raw_items)

    subtotal = payload.get("subtotal")
    if subtotal is None or subtotal == "":
        subtotal_value = round(sum(it.price * it.quantity for it in items), 2)
    else:
        subtotal_value = _num(subtotal, float("nan"))
        if not math.isfinite(subtotal_value):
            raise ValueError(f"subtotal must be a finite number, got {subtotal!r}")

    return EvaluationRequest(
        items=items,
        subtotal=subtotal_value,
        weather_condition=normalize_weather(payload.get("weatherCondition", payload.get("weather_condition"))),
        order_date=_parse_order_date(payload.get("orderDate", payload.get("order_date"))),
    )


__all__ = [
    "category_ref",
    "distinct_category_ids",
    "cart_item",
    "normalize_weather",
    "build_request",
]
