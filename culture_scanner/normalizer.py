"""
Normalizer: raw Gamma market records -> CanonicalMarket.

Upstream records are untrusted. Any field may be missing, null, a string
instead of a number, or garbage. ``normalize_market`` never raises; every
malformed field degrades to its default.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

# Fallback order is policy, not a provider guarantee.
ID_FIELDS = ("slug", "id", "conditionId")
VOLUME_FIELDS = ("volume24hr", "volume1wk", "volumeNum")
PRICE_CHANGE_FIELDS = ("oneDayPriceChange", "oneHourPriceChange")
ICON_FIELDS = ("icon", "image")


@dataclass(frozen=True)
class CanonicalMarket:
    id: str
    question: str
    category: Optional[str]
    yes_price: float
    no_price: float
    volume: float
    price_change: float
    signed_price_change: float
    icon: Optional[str]
    slug: Optional[str] = None

    @property
    def has_probability_data(self) -> bool:
        # 0/0 means the upstream sent no prices, not a 0% outcome
        return not (self.yes_price == 0.0 and self.no_price == 0.0)


def to_number(value: Any) -> float:
    """Parse ``value`` as a finite decimal number; anything else is 0.

    Strings must be a whole decimal literal: no trailing text ("12abc") and
    no digit separators ("1_000"), both of which map to 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if not isinstance(value, (int, float, str)):
        return 0.0
    if isinstance(value, str) and '_' in value:
        return 0.0
    try:
        num = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def _first_nonzero(raw: Mapping[str, Any], fields: Iterable[str]) -> float:
    # Coercion failure yields 0, so an explicit 0 falls through like an absent field.
    for name in fields:
        num = to_number(raw.get(name))
        if num != 0.0:
            return num
    return 0.0


def _first_text(raw: Mapping[str, Any], fields: Iterable[str]) -> Optional[str]:
    for name in fields:
        value = raw.get(name)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _parse_list_field(value: Any) -> list:
    """Gamma often returns list fields as JSON-encoded strings."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


def _probability(value: Any) -> float:
    num = to_number(value)
    return num if 0.0 <= num <= 1.0 else 0.0


def _outcome_prices(raw: Mapping[str, Any]) -> Tuple[float, float]:
    prices = _parse_list_field(raw.get("outcomePrices"))
    if len(prices) != 2:
        return 0.0, 0.0
    return _probability(prices[0]), _probability(prices[1])


def normalize_market(raw: Any) -> CanonicalMarket:
    if not isinstance(raw, Mapping):
        raw = {}

    signed_change = _first_nonzero(raw, PRICE_CHANGE_FIELDS)
    yes_price, no_price = _outcome_prices(raw)
    category = raw.get("category")

    return CanonicalMarket(
        id=_first_text(raw, ID_FIELDS) or "",
        question=_first_text(raw, ("question",)) or "",
        category=str(category) if isinstance(category, str) and category else None,
        yes_price=yes_price,
        no_price=no_price,
        volume=max(_first_nonzero(raw, VOLUME_FIELDS), 0.0),
        price_change=abs(signed_change),
        signed_price_change=signed_change,
        icon=_first_text(raw, ICON_FIELDS),
        slug=_first_text(raw, ("slug",)),
    )
