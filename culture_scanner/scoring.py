"""Attention scoring for canonical markets."""
from __future__ import annotations

import math
import sys
from dataclasses import dataclass

from .normalizer import CanonicalMarket

# Overflowing products clamp here; scores are always finite
MAX_ATTENTION = sys.float_info.max


@dataclass(frozen=True)
class ScoredMarket:
    market: CanonicalMarket
    attention: float

    @property
    def id(self) -> str:
        return self.market.id


def attention(volume: float, price_change: float,
              volume_weight: float = 1.0, noise_weight: float = 1.0) -> float:
    """(volume * volume_weight) * (|price_change| * noise_weight).

    Zero volume or zero change gives 0, which is a valid score and sorts last.
    A product that overflows is clamped to ``MAX_ATTENTION``.
    """
    if volume == 0 or price_change == 0:
        return 0.0
    score = (volume * volume_weight) * (abs(price_change) * noise_weight)
    return score if math.isfinite(score) else MAX_ATTENTION


def score_market(market: CanonicalMarket,
                 volume_weight: float = 1.0, noise_weight: float = 1.0) -> ScoredMarket:
    return ScoredMarket(
        market=market,
        attention=attention(market.volume, market.price_change, volume_weight, noise_weight),
    )
