"""Metrics exposition helpers for JSON and Prometheus outputs.

Kept apart from app.py so the routes stay thin.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional


def _p95(values: List[float]) -> Optional[float]:
    if not values:
        return None
    ordered = sorted(values)
    idx = max(0, int(round(0.95 * (len(ordered) - 1))))
    return ordered[idx]


def collect_refresh_metrics(loop) -> Dict[str, Any]:
    stats = loop.stats
    error_rate = None
    if stats.cycles:
        error_rate = round(100.0 * stats.failures / stats.cycles, 2)
    return {
        'cycles': stats.cycles,
        'successes': stats.successes,
        'failures': stats.failures,
        'discarded': stats.discarded,
        'skipped': stats.skipped,
        'id_collisions': loop.store.id_collisions,
        'last_fetch_duration_ms': stats.last_fetch_duration_ms,
        'last_success_time': stats.last_success_time,
        'last_failure_time': stats.last_failure_time,
        'p95_fetch_duration_ms': _p95(stats.durations_ms),
        'error_rate_percent': error_rate,
    }


def emit_prometheus(lines: list[str], name: str, value: Any, mtype: str, help_text: str):
    lines.append(f'# HELP {name} {help_text}')
    lines.append(f'# TYPE {name} {mtype}')
    if value is None:
        value = 'NaN'
    lines.append(f'{name} {value}')


def emit_refresh_prometheus(lines: list[str], refresh: Dict[str, Any], interval: float):
    emit_prometheus(lines, 'refresh_cycles_total', refresh['cycles'], 'counter', 'Refresh ticks started')
    emit_prometheus(lines, 'refresh_successes_total', refresh['successes'], 'counter', 'Refresh ticks that published a snapshot')
    emit_prometheus(lines, 'refresh_failures_total', refresh['failures'], 'counter', 'Refresh ticks that failed upstream')
    emit_prometheus(lines, 'refresh_discarded_total', refresh['discarded'], 'counter', 'Fetch results dropped after stop')
    emit_prometheus(lines, 'refresh_id_collisions_total', refresh['id_collisions'], 'counter', 'Duplicate market ids seen in snapshots')
    emit_prometheus(lines, 'refresh_last_fetch_duration_ms', refresh['last_fetch_duration_ms'], 'gauge', 'Duration of the last upstream fetch')
    emit_prometheus(lines, 'refresh_p95_fetch_duration_ms', refresh['p95_fetch_duration_ms'], 'gauge', 'p95 of recent upstream fetch durations')
    emit_prometheus(lines, 'refresh_last_success_time', refresh['last_success_time'], 'gauge', 'Epoch seconds of the last published snapshot')
    emit_prometheus(lines, 'refresh_interval_seconds', interval, 'gauge', 'Configured refresh interval')
