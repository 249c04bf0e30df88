import math

import pytest

from culture_scanner.normalizer import normalize_market
from culture_scanner.ranking import build_snapshot, rank_markets
from culture_scanner.scoring import MAX_ATTENTION, ScoredMarket, attention, score_market


def _scored(market_id, score):
    return ScoredMarket(market=normalize_market({"slug": market_id}), attention=score)


@pytest.mark.unit
def test_attention_formula():
    assert attention(1000, -0.1) == pytest.approx(100.0)
    assert attention(1000, 0.1, 2.0, 3.0) == pytest.approx(600.0)


@pytest.mark.unit
@pytest.mark.parametrize("v,p,wv,wp", [
    (1000, 0.1, 2.0, 0.5),
    (3.5, -0.25, 10.0, 10.0),
    (0, 0.3, 4.0, 1.0),
    (12345.0, 0.0, 1.0, 7.0),
])
def test_attention_weight_scaling_law(v, p, wv, wp):
    assert attention(v, p, wv, wp) == pytest.approx(attention(v, p, 1, 1) * wv * wp)


def test_attention_is_monotonic():
    assert attention(200, 0.1) >= attention(100, 0.1)
    assert attention(100, -0.2) >= attention(100, 0.1)


def test_zero_volume_or_change_scores_zero():
    assert attention(0, 0.5) == 0
    assert attention(500, 0) == 0


def test_overflowing_score_is_clamped_to_a_finite_value():
    m = normalize_market({"slug": "huge", "volume24hr": "1e308", "oneDayPriceChange": "10"})
    scored = score_market(m, volume_weight=5.0)
    assert scored.attention == MAX_ATTENTION
    assert math.isfinite(scored.attention)
    assert attention(1e308, 0.0, 10.0, 10.0) == 0.0


def test_score_market_uses_own_fields_only():
    m = normalize_market({"slug": "x", "volume24hr": 50, "oneDayPriceChange": -0.4})
    assert score_market(m, 2.0, 0.5).attention == pytest.approx(50 * 2.0 * 0.4 * 0.5)


def test_rank_markets_sorted_and_stable():
    items = [_scored("a", 1.0), _scored("b", 5.0), _scored("c", 1.0), _scored("d", 5.0), _scored("e", 0.0)]
    ranked = rank_markets(items, limit=10)
    assert [s.id for s in ranked] == ["b", "d", "a", "c", "e"]
    scores = [s.attention for s in ranked]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("limit,expected", [(1, 1), (3, 3), (5, 5), (50, 5)])
def test_rank_markets_length_is_min_of_limit_and_size(limit, expected):
    items = [_scored(str(i), float(i)) for i in range(5)]
    assert len(rank_markets(items, limit)) == expected


def test_build_snapshot_scenario(scenario_market):
    snap = build_snapshot([scenario_market, {"slug": "empty"}], captured_at=123.0)
    top = snap.markets[0]
    assert top.id == "a"
    assert top.attention == pytest.approx(100.0)
    assert snap.markets[-1].id == "empty"
    assert snap.markets[-1].attention == 0
    assert snap.captured_at == 123.0


def test_build_snapshot_applies_weights_and_limit(raw_markets):
    snap = build_snapshot(raw_markets, volume_weight=1.0, noise_weight=1.0, limit=2)
    # btc: 2000 * 0.2 = 400 ; fed: 5000 * 0.02 = 100
    assert [s.id for s in snap.markets] == ["btc-100k", "fed-cut-in-march"]
    assert len(snap) == 2
