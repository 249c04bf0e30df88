"""Market Data Provider: one GET against the Gamma markets endpoint."""
from __future__ import annotations

import logging
import time
from typing import Any, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .config import CONFIG

logger = logging.getLogger(__name__)


class UpstreamUnavailable(Exception):
    """The markets fetch failed: transport error, non-2xx status or unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _build_session() -> requests.Session:
    session = requests.Session()
    # Failures are isolated per refresh tick, so the adapter never retries.
    adapter = HTTPAdapter(
        pool_connections=CONFIG['HTTP_POOL_CONNECTIONS'],
        pool_maxsize=CONFIG['HTTP_POOL_MAXSIZE'],
        max_retries=Retry(total=0, raise_on_status=False),
    )
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


class MarketDataProvider:
    """Fetches the full market array each call. No pagination, no auth."""

    def __init__(self, url: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: Optional[Tuple[int, int]] = None):
        self.url = url or CONFIG['MARKETS_URL']
        self.session = session or _build_session()
        self.timeout = timeout or (CONFIG['API_TIMEOUT_CONNECT'], CONFIG['API_TIMEOUT_READ'])
        self.last_fetch_duration_ms = 0.0

    def fetch_markets(self) -> List[Any]:
        t0 = time.time()
        try:
            resp = self.session.get(
                self.url,
                headers={'Cache-Control': 'no-cache', 'Accept': 'application/json'},
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.warning('market_fetch.request_error %s', e, extra={'event': 'request_error'})
            raise UpstreamUnavailable(f"request failed: {type(e).__name__}: {e}") from e
        finally:
            self.last_fetch_duration_ms = round((time.time() - t0) * 1000.0, 2)

        if not 200 <= resp.status_code < 300:
            logger.warning('market_fetch.bad_status status=%s', resp.status_code,
                           extra={'event': 'bad_status'})
            raise UpstreamUnavailable(f"upstream returned HTTP {resp.status_code}",
                                      status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as e:
            logger.warning('market_fetch.unparsable_body', extra={'event': 'unparsable_body'})
            raise UpstreamUnavailable("upstream body is not valid JSON",
                                      status_code=resp.status_code) from e
        if not isinstance(body, list):
            raise UpstreamUnavailable(f"expected a JSON array, got {type(body).__name__}",
                                      status_code=resp.status_code)
        logger.debug('market_fetch.ok count=%d duration_ms=%.1f', len(body), self.last_fetch_duration_ms)
        return body

    def close(self) -> None:
        self.session.close()
