"""Shape scored markets into the rows the dashboard cards render."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .config import CONFIG
from .snapshot_store import DELTA_EPSILON, MarketDelta, delta_direction, is_visible_change
from .scoring import ScoredMarket

NO_PROBABILITY_DATA = "no_probability_data"


def market_url(slug: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    if not slug:
        return None
    return f"{(base_url or CONFIG['POLYMARKET_BASE_URL']).rstrip('/')}/{slug}"


def market_row(scored: ScoredMarket, delta: Optional[float] = None,
               epsilon: float = DELTA_EPSILON,
               big_move_threshold: Optional[float] = None) -> dict:
    m = scored.market
    if big_move_threshold is None:
        big_move_threshold = CONFIG['BIG_MOVE_THRESHOLD']
    has_prob = m.has_probability_data
    return {
        "id": m.id,
        "slug": m.slug,
        "question": m.question,
        "category": m.category,
        "yes_price": m.yes_price,
        "no_price": m.no_price,
        "yes_pct": round(m.yes_price * 100, 1) if has_prob else None,
        "no_pct": round(m.no_price * 100, 1) if has_prob else None,
        "has_probability_data": has_prob,
        "probability_marker": None if has_prob else NO_PROBABILITY_DATA,
        "volume": m.volume,
        "price_change": m.signed_price_change,
        "price_change_abs": m.price_change,
        "price_direction": "up" if m.signed_price_change >= 0 else "down",
        "attention": scored.attention,
        "delta": delta,
        "delta_direction": delta_direction(delta, epsilon),
        "moved": is_visible_change(delta, epsilon),
        "big_move": m.price_change > big_move_threshold,
        "icon": m.icon,
        "market_url": market_url(m.slug),
    }


def format_markets(scored: Iterable[ScoredMarket]) -> List[dict]:
    """Rows for a one-off ranking; deltas are unknown without a prior snapshot."""
    return [market_row(s) for s in scored]


def format_deltas(deltas: Iterable[MarketDelta], epsilon: float = DELTA_EPSILON) -> List[dict]:
    return [market_row(d.scored, d.delta, epsilon) for d in deltas]
