"""Runtime configuration for the Culture Scanner backend.

Values come from the environment (a local ``.env`` is loaded first) and are
exposed through the module-level ``CONFIG`` dict.
"""
from __future__ import annotations

import logging
import math
import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

logger = logging.getLogger(__name__)

# Dense view polls fast, summary view polls slowly. Same engine, different cadence.
REFRESH_PROFILES = {
    "dense": 15,
    "summary": 60,
}

DEFAULT_LIMIT = 50
DEFAULT_WEIGHT = 1.0


def _profile_interval(profile: str) -> int:
    return REFRESH_PROFILES.get(profile, REFRESH_PROFILES["summary"])


_PROFILE = os.environ.get("REFRESH_PROFILE", "summary").strip().lower() or "summary"

CONFIG = {
    "MARKETS_URL": os.environ.get("MARKETS_URL", "https://gamma-api.polymarket.com/markets"),
    "POLYMARKET_BASE_URL": os.environ.get("POLYMARKET_BASE_URL", "https://polymarket.com"),
    "API_TIMEOUT_CONNECT": int(os.environ.get("API_TIMEOUT_CONNECT", "5")),
    "API_TIMEOUT_READ": int(os.environ.get("API_TIMEOUT_READ", "10")),
    "HTTP_POOL_CONNECTIONS": int(os.environ.get("HTTP_POOL_CONNECTIONS", "4")),
    "HTTP_POOL_MAXSIZE": int(os.environ.get("HTTP_POOL_MAXSIZE", "8")),
    "REFRESH_PROFILE": _PROFILE if _PROFILE in REFRESH_PROFILES else "summary",
    "REFRESH_INTERVAL_SECONDS": float(
        os.environ.get("REFRESH_INTERVAL_SECONDS", str(_profile_interval(_PROFILE)))
    ),
    "DEFAULT_LIMIT": int(os.environ.get("DEFAULT_LIMIT", str(DEFAULT_LIMIT))),
    "DEFAULT_VOLUME_WEIGHT": float(os.environ.get("DEFAULT_VOLUME_WEIGHT", "1.0")),
    "DEFAULT_NOISE_WEIGHT": float(os.environ.get("DEFAULT_NOISE_WEIGHT", "1.0")),
    "DELTA_EPSILON": float(os.environ.get("DELTA_EPSILON", "1e-6")),
    "BIG_MOVE_THRESHOLD": float(os.environ.get("BIG_MOVE_THRESHOLD", "0.05")),
    "HOST": os.environ.get("HOST", "127.0.0.1"),
    "PORT": int(os.environ.get("PORT", "5001")),
    "CORS_ALLOWED_ORIGINS": os.environ.get("CORS_ALLOWED_ORIGINS", "*"),
}


def coerce_weight(value, default: float = DEFAULT_WEIGHT) -> float:
    """Return ``value`` as a positive finite float, else ``default``."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        weight = float(value)
    except (TypeError, ValueError):
        logger.debug("config.invalid_weight value=%r default=%s", value, default)
        return default
    if not math.isfinite(weight) or weight <= 0:
        logger.debug("config.invalid_weight value=%r default=%s", value, default)
        return default
    return weight


def coerce_limit(value, default: int = DEFAULT_LIMIT) -> int:
    """Return ``value`` as a positive int, else ``default``.

    Accepts integral floats ("50.0") but not fractional ones.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        logger.debug("config.invalid_limit value=%r default=%s", value, default)
        return default
    if not math.isfinite(as_float) or as_float != int(as_float) or as_float <= 0:
        logger.debug("config.invalid_limit value=%r default=%s", value, default)
        return default
    return int(as_float)


def coerce_interval(value, default: float) -> float:
    """Interval in seconds; named profiles ("dense", "summary") are accepted too."""
    if isinstance(value, str) and value.strip().lower() in REFRESH_PROFILES:
        return float(REFRESH_PROFILES[value.strip().lower()])
    return coerce_weight(value, default)
