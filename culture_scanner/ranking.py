"""
Ranker and the synchronous normalize -> score -> rank pipeline.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .normalizer import normalize_market
from .scoring import ScoredMarket, score_market


@dataclass(frozen=True)
class Snapshot:
    """One refresh cycle's ranked result set."""
    markets: Tuple[ScoredMarket, ...]
    captured_at: float

    def __len__(self) -> int:
        return len(self.markets)


def rank_markets(scored: Iterable[ScoredMarket], limit: int) -> List[ScoredMarket]:
    """Top ``limit`` markets by attention, highest first.

    ``sorted`` is stable, so equal scores keep their input order.
    Precondition: ``limit > 0`` (clamp with ``config.coerce_limit``).
    """
    ordered = sorted(scored, key=lambda s: s.attention, reverse=True)
    return ordered[:limit]


def build_snapshot(
    raw_markets: Sequence[Any],
    volume_weight: float = 1.0,
    noise_weight: float = 1.0,
    limit: int = 50,
    captured_at: Optional[float] = None,
) -> Snapshot:
    scored = [
        score_market(normalize_market(raw), volume_weight, noise_weight)
        for raw in raw_markets
    ]
    return Snapshot(
        markets=tuple(rank_markets(scored, limit)),
        captured_at=time.time() if captured_at is None else captured_at,
    )
