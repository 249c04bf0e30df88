import pytest

from culture_scanner.ranking import build_snapshot
from culture_scanner.snapshot_store import (
    SnapshotStore, compute_deltas, delta_direction, is_visible_change, score_map,
)


def _raw(market_id, volume, change):
    return {"slug": market_id, "volume24hr": volume, "oneDayPriceChange": change}


def test_first_apply_reports_unknown_not_zero():
    store = SnapshotStore()
    deltas = store.apply(build_snapshot([_raw("a", 100, 0.1)]))
    assert deltas[0].delta is None
    assert store.has_previous()


def test_delta_law_between_consecutive_snapshots():
    store = SnapshotStore()
    s1 = build_snapshot([_raw("a", 100, 0.1), _raw("b", 10, 0.5)])
    store.apply(s1)
    s2 = build_snapshot([_raw("a", 300, 0.1), _raw("c", 50, 0.5)])
    deltas = {d.scored.id: d.delta for d in store.apply(s2)}
    a1 = next(s for s in s1.markets if s.id == "a").attention
    a2 = next(s for s in s2.markets if s.id == "a").attention
    assert deltas["a"] == a2 - a1
    assert deltas["c"] is None


def test_store_is_replaced_not_merged():
    store = SnapshotStore()
    store.apply(build_snapshot([_raw("a", 100, 0.1)]))
    store.apply(build_snapshot([_raw("b", 100, 0.1)]))
    assert set(store.scores) == {"b"}
    # "a" dropped out of the previous cycle, so it is unknown again
    deltas = store.apply(build_snapshot([_raw("a", 100, 0.1)]))
    assert deltas[0].delta is None


def test_identical_replay_gives_exact_zero_deltas(raw_markets):
    store = SnapshotStore()
    first = build_snapshot(raw_markets)
    store.apply(first)
    second = build_snapshot(raw_markets)
    deltas = store.apply(second)
    assert all(d.delta == 0.0 for d in deltas)
    assert [s.attention for s in first.markets] == [s.attention for s in second.markets]


def test_duplicate_ids_are_counted_not_raised():
    snap = build_snapshot([_raw("dup", 100, 0.5), _raw("dup", 10, 0.5)])
    scores, collisions = score_map(snap)
    assert collisions == 1
    assert scores["dup"] == pytest.approx(50.0)
    store = SnapshotStore()
    store.apply(snap)
    assert store.id_collisions == 1


def test_compute_deltas_without_previous_map():
    snap = build_snapshot([_raw("a", 1, 1)])
    assert compute_deltas(snap, None)[0].delta is None


@pytest.mark.parametrize("delta,expected", [
    (None, "unknown"), (0.0, "flat"), (1e-9, "flat"), (-1e-9, "flat"),
    (0.5, "up"), (-0.5, "down"),
])
def test_delta_direction(delta, expected):
    assert delta_direction(delta, epsilon=1e-6) == expected


def test_visible_change_threshold_keeps_numeric_delta():
    assert not is_visible_change(None)
    assert not is_visible_change(5e-7, epsilon=1e-6)
    assert is_visible_change(2e-6, epsilon=1e-6)
