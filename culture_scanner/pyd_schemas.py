"""Pydantic response models for the dashboard API.

Endpoints build their JSON through these so the payload shapes stay in one place.
"""
from __future__ import annotations
from typing import List, Optional, Dict
from pydantic import BaseModel, ConfigDict, Field


class MarketRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    slug: Optional[str] = None
    question: str = ""
    category: Optional[str] = None
    yes_price: float = Field(ge=0, le=1)
    no_price: float = Field(ge=0, le=1)
    yes_pct: Optional[float] = None
    no_pct: Optional[float] = None
    has_probability_data: bool
    probability_marker: Optional[str] = None
    volume: float = Field(ge=0)
    price_change: float
    price_change_abs: float = Field(ge=0)
    price_direction: str
    attention: float = Field(ge=0, allow_inf_nan=False)
    delta: Optional[float] = Field(default=None, allow_inf_nan=False)
    delta_direction: str
    moved: bool
    big_move: bool
    icon: Optional[str] = None
    market_url: Optional[str] = None


class Weights(BaseModel):
    volumeWeight: float
    priceChangeWeight: float
    limit: int


class MarketsResponse(BaseModel):
    data: List[MarketRow]
    count: int
    captured_at: float
    weights: Weights


class RefreshBlock(BaseModel):
    state: str
    last_outcome: Optional[str] = None
    interval_seconds: float
    captured_at: Optional[float] = None
    next_tick_at: Optional[float] = None
    last_error: Optional[str] = None
    error_kind: Optional[str] = None
    error_at: Optional[float] = None
    cycles: int
    running: bool


class SnapshotResponse(BaseModel):
    data: List[MarketRow]
    count: int
    captured_at: float
    weights: Weights
    refresh: RefreshBlock


class ErrorResponse(BaseModel):
    error: str
    kind: str
    detail: Optional[str] = None
    refresh: Optional[RefreshBlock] = None


class HealthResponse(BaseModel):
    status: str = Field(pattern='^ok$')
    uptime_seconds: float
    errors_5xx: int
    refresh_running: bool


class RefreshMetrics(BaseModel):
    cycles: int
    successes: int
    failures: int
    discarded: int
    skipped: int
    id_collisions: int
    last_fetch_duration_ms: float
    last_success_time: Optional[float] = None
    last_failure_time: Optional[float] = None
    p95_fetch_duration_ms: Optional[float] = None
    error_rate_percent: Optional[float] = None


class MetricsResponse(BaseModel):
    status: str
    uptime_seconds: float
    errors_5xx: int
    refresh: RefreshMetrics
    settings: Dict[str, int | float]


__all__ = [
    'MarketRow', 'Weights', 'MarketsResponse', 'RefreshBlock', 'SnapshotResponse',
    'ErrorResponse', 'HealthResponse', 'RefreshMetrics', 'MetricsResponse',
]
