"""
Snapshot Store: the one previous ScoreMap kept for delta computation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .ranking import Snapshot
from .scoring import ScoredMarket

logger = logging.getLogger(__name__)

DELTA_EPSILON = 1e-6

ScoreMap = Dict[str, float]


@dataclass(frozen=True)
class MarketDelta:
    scored: ScoredMarket
    # None means no prior signal for this id, which is not the same as 0
    delta: Optional[float]


def score_map(snapshot: Snapshot) -> Tuple[ScoreMap, int]:
    """Build id -> attention for ``snapshot``.

    Returns the map and the number of id collisions. On a collision the
    first (higher ranked) entry wins.
    """
    scores: ScoreMap = {}
    collisions = 0
    for scored in snapshot.markets:
        if scored.id in scores:
            collisions += 1
            continue
        scores[scored.id] = scored.attention
    return scores, collisions


def compute_deltas(snapshot: Snapshot, previous: Optional[ScoreMap]) -> Tuple[MarketDelta, ...]:
    previous = previous or {}
    out = []
    for scored in snapshot.markets:
        prior = previous.get(scored.id)
        out.append(MarketDelta(scored=scored, delta=None if prior is None else scored.attention - prior))
    return tuple(out)


def is_visible_change(delta: Optional[float], epsilon: float = DELTA_EPSILON) -> bool:
    """Highlighting threshold. The numeric delta itself is never rounded."""
    return delta is not None and abs(delta) >= epsilon


def delta_direction(delta: Optional[float], epsilon: float = DELTA_EPSILON) -> str:
    if delta is None:
        return "unknown"
    if not is_visible_change(delta, epsilon):
        return "flat"
    return "up" if delta > 0 else "down"


class SnapshotStore:
    """Holds at most one ScoreMap, replaced (never merged) on every apply."""

    def __init__(self):
        self._scores: Optional[ScoreMap] = None
        self.id_collisions = 0

    @property
    def scores(self) -> Optional[ScoreMap]:
        return None if self._scores is None else dict(self._scores)

    def has_previous(self) -> bool:
        return self._scores is not None

    def apply(self, snapshot: Snapshot) -> Tuple[MarketDelta, ...]:
        deltas = compute_deltas(snapshot, self._scores)
        new_scores, collisions = score_map(snapshot)
        if collisions:
            self.id_collisions += collisions
            logger.warning(
                "snapshot_store.id_collisions count=%d", collisions,
                extra={'event': 'id_collisions'},
            )
        self._scores = new_scores
        return deltas

    def clear(self) -> None:
        self._scores = None
