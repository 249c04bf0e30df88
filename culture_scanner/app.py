"""
Flask backend for the Culture Scanner dashboard.

Routes:
  /api/markets   one-off ranking with caller-supplied weights (fetches upstream)
  /api/snapshot  latest snapshot published by the refresh loop, with deltas
  /api/config    read / update weights, limit and refresh interval
  /api/health, /api/metrics, /metrics.prom
"""
import argparse
import logging
import os
import time
import uuid
from dataclasses import asdict
from typing import Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request, Response
from flask_cors import CORS

from .config import CONFIG, REFRESH_PROFILES, coerce_interval, coerce_limit, coerce_weight
from .logging_config import REQUEST_ID_CTX, log_config, setup_logging
from .market_fetch import MarketDataProvider, UpstreamUnavailable
from .metrics import collect_refresh_metrics, emit_prometheus, emit_refresh_prometheus
from .presentation import format_deltas, format_markets
from .pyd_schemas import (
    ErrorResponse, HealthResponse, MarketRow, MarketsResponse, MetricsResponse,
    RefreshBlock, RefreshMetrics, SnapshotResponse, Weights,
)
from .ranking import build_snapshot
from .refresh import RefreshLoop
from .utils import find_available_port

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)

ERROR_FETCH_FAILED = "Failed to fetch markets"
ERROR_NO_SNAPSHOT = "No snapshot available yet"

# POST /api/config key -> RefreshLoop.configure kwarg, validator
_CONFIG_KEYS = {
    'volumeWeight': ('volume_weight', coerce_weight),
    'priceChangeWeight': ('noise_weight', coerce_weight),
    'priceWeight': ('noise_weight', coerce_weight),
    'limit': ('limit', coerce_limit),
    'interval': ('interval', coerce_interval),
    'profile': ('interval', coerce_interval),
}


def _loop() -> RefreshLoop:
    return current_app.extensions['refresh_loop']


def _provider() -> MarketDataProvider:
    return current_app.extensions['market_provider']


def _error(status: int, error: str, kind: str, detail: Optional[str] = None, refresh=None):
    body = ErrorResponse(error=error, kind=kind, detail=detail, refresh=refresh)
    return jsonify(body.model_dump()), status


@api_bp.route('/')
def root():
    return jsonify({
        'service': 'culture-scanner',
        'endpoints': ['/api/markets', '/api/snapshot', '/api/config', '/api/health', '/api/metrics'],
    })


@api_bp.route('/api/markets')
def get_markets():
    """Ranking Query Interface: fetch, score with the request's weights, rank."""
    volume_weight = coerce_weight(request.args.get('volumeWeight'))
    price_weight = coerce_weight(
        request.args.get('priceChangeWeight') or request.args.get('priceWeight')
    )
    limit = coerce_limit(request.args.get('limit'), CONFIG['DEFAULT_LIMIT'])
    try:
        raw = _provider().fetch_markets()
    except UpstreamUnavailable as e:
        logger.error("api.markets upstream unavailable: %s", e)
        return _error(502, ERROR_FETCH_FAILED, 'UpstreamUnavailable', detail=str(e))

    snapshot = build_snapshot(raw, volume_weight, price_weight, limit)
    rows = [MarketRow(**r) for r in format_markets(snapshot.markets)]
    body = MarketsResponse(
        data=rows,
        count=len(rows),
        captured_at=snapshot.captured_at,
        weights=Weights(volumeWeight=volume_weight, priceChangeWeight=price_weight, limit=limit),
    )
    return jsonify(body.model_dump())


@api_bp.route('/api/snapshot')
def get_snapshot():
    """Latest published refresh result plus the loop's status/error signal."""
    loop = _loop()
    latest = loop.latest
    refresh = RefreshBlock(**loop.status(latest))
    if latest is None:
        err = loop.last_error
        return _error(
            503, ERROR_NO_SNAPSHOT,
            err.kind if err else 'NotReady',
            detail=err.error if err else None,
            refresh=refresh,
        )
    rows = [MarketRow(**r) for r in format_deltas(latest.deltas, loop.delta_epsilon)]
    s = latest.settings
    body = SnapshotResponse(
        data=rows,
        count=len(rows),
        captured_at=latest.captured_at,
        weights=Weights(volumeWeight=s.volume_weight, priceChangeWeight=s.noise_weight, limit=s.limit),
        refresh=refresh,
    )
    return jsonify(body.model_dump())


@api_bp.route('/api/config')
def get_config():
    return jsonify({
        'config': CONFIG,
        'settings': asdict(_loop().settings),
        'profiles': REFRESH_PROFILES,
    })


@api_bp.route('/api/config', methods=['POST'])
def update_config():
    """Apply new weights/limit/interval; they take effect on the next tick.

    Returns JSON: { 'applied': {...}, 'errors': {...}, 'settings': {...} }
    Status codes: 200 all applied, 207 partial, 400 none applied/invalid
    """
    payload = request.get_json(silent=True)
    if not payload or not isinstance(payload, dict):
        return jsonify({"errors": {"_payload": "Invalid or empty payload"}}), 400

    applied = {}
    errors = {}
    updates = {}
    for key, val in payload.items():
        if key not in _CONFIG_KEYS:
            errors[key] = 'unknown_setting'
            continue
        target, validator = _CONFIG_KEYS[key]
        coerced = validator(val, None)
        if coerced is None:
            errors[key] = 'invalid_value'
            continue
        updates[target] = coerced
        applied[key] = coerced

    settings = _loop().configure(**updates) if updates else _loop().settings
    if applied and not errors:
        status = 200
    elif applied and errors:
        status = 207
    else:
        status = 400
    return jsonify({'applied': applied, 'errors': errors, 'settings': asdict(settings)}), status


@api_bp.route('/api/health')
def api_health():
    body = HealthResponse(
        status='ok',
        uptime_seconds=round(time.time() - current_app.config['STARTUP_TIME'], 2),
        errors_5xx=current_app.config['ERROR_STATS']['5xx'],
        refresh_running=_loop().running,
    )
    return jsonify(body.model_dump())


@api_bp.route('/health')
def health():
    return jsonify({'ok': True}), 200


@api_bp.route('/api/metrics')
def metrics_json():
    loop = _loop()
    body = MetricsResponse(
        status='ok',
        uptime_seconds=round(time.time() - current_app.config['STARTUP_TIME'], 2),
        errors_5xx=current_app.config['ERROR_STATS']['5xx'],
        refresh=RefreshMetrics(**collect_refresh_metrics(loop)),
        settings=asdict(loop.settings),
    )
    return jsonify(body.model_dump())


@api_bp.route('/metrics.prom')
def metrics_prom():
    loop = _loop()
    lines: list[str] = []
    emit_prometheus(lines, 'app_uptime_seconds', round(time.time() - current_app.config['STARTUP_TIME'], 2),
                    'gauge', 'Seconds since the backend started')
    emit_prometheus(lines, 'app_errors_5xx_total', current_app.config['ERROR_STATS']['5xx'],
                    'counter', 'Responses with a 5xx status')
    emit_refresh_prometheus(lines, collect_refresh_metrics(loop), loop.settings.interval)
    return Response('\n'.join(lines) + '\n', mimetype='text/plain; version=0.0.4')


def create_app(provider: Optional[MarketDataProvider] = None,
               loop: Optional[RefreshLoop] = None,
               start_loop: bool = False) -> Flask:
    app = Flask(__name__)
    app.config['STARTUP_TIME'] = time.time()
    app.config['ERROR_STATS'] = {'5xx': 0}

    cors_env = CONFIG['CORS_ALLOWED_ORIGINS']
    cors_origins = '*' if cors_env == '*' else [o.strip() for o in cors_env.split(',') if o.strip()]
    CORS(app, origins=cors_origins)

    provider = provider or MarketDataProvider()
    loop = loop or RefreshLoop(fetch=provider.fetch_markets)
    app.extensions['market_provider'] = provider
    app.extensions['refresh_loop'] = loop

    @app.before_request
    def _before_request():
        g._start_time = time.time()
        REQUEST_ID_CTX.set(request.headers.get('X-Request-ID') or uuid.uuid4().hex[:12])

    @app.after_request
    def _after_request(resp):
        if 500 <= resp.status_code < 600:
            app.config['ERROR_STATS']['5xx'] += 1
        rid = REQUEST_ID_CTX.get()
        if rid:
            resp.headers['X-Request-ID'] = rid
        return resp

    app.register_blueprint(api_bp)

    if start_loop:
        loop.start()
    return app


# =============================================================================
# COMMAND LINE
# =============================================================================

def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description='Culture Scanner dashboard backend')
    parser.add_argument('--port', type=int, help='Port to run the server on')
    parser.add_argument('--host', type=str, help='Host to bind the server to')
    parser.add_argument('--interval', type=float, help='Refresh interval in seconds')
    parser.add_argument('--profile', choices=sorted(REFRESH_PROFILES), help='Refresh cadence profile')
    parser.add_argument('--limit', type=int, help='Markets kept per snapshot')
    parser.add_argument('--auto-port', action='store_true', help='Automatically find available port')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    log_config(CONFIG)

    app = create_app()
    loop = app.extensions['refresh_loop']
    if args.profile:
        loop.configure(interval=args.profile)
    if args.interval:
        loop.configure(interval=args.interval)
    if args.limit:
        loop.configure(limit=args.limit)

    host = args.host or CONFIG['HOST']
    port = args.port or int(CONFIG['PORT'])
    if args.auto_port:
        port = find_available_port(start_port=port, host=host)

    # Avoid double-starting the loop under the auto-reloader
    if os.environ.get("WERKZEUG_RUN_MAIN") in (None, "true"):
        loop.start()
        logger.info("Refresh loop started (interval=%.0fs)", loop.settings.interval)
    try:
        app.run(host=host, port=port, debug=False)
    finally:
        loop.stop()
        app.extensions['market_provider'].close()
