"""
Shared pytest fixtures: upstream payloads, a virtual clock and a scripted provider.
"""

import pytest

from culture_scanner.market_fetch import UpstreamUnavailable
from culture_scanner.refresh import RefreshLoop, RefreshSettings


# ============================================================================
# Upstream payload fixtures
# ============================================================================

@pytest.fixture
def raw_markets():
    """Gamma-shaped market records with the usual mix of types."""
    return [
        {
            "slug": "fed-cut-in-march",
            "question": "Will the Fed cut rates in March?",
            "category": "Economics",
            "outcomePrices": "[\"0.25\", \"0.75\"]",
            "volume24hr": 5000,
            "oneDayPriceChange": 0.02,
            "icon": "https://example.com/fed.png",
        },
        {
            "slug": "btc-100k",
            "question": "Will BTC hit 100k?",
            "category": "Crypto",
            "outcomePrices": ["0.6", "0.4"],
            "volume24hr": "2000",
            "oneDayPriceChange": "-0.2",
            "image": "https://example.com/btc.png",
        },
        {
            "slug": "quiet-market",
            "question": "Nothing happening here?",
            "outcomePrices": ["0.5", "0.5"],
        },
    ]


@pytest.fixture
def scenario_market():
    return {
        "id": "a",
        "volume24hr": "1000",
        "oneDayPriceChange": "-0.1",
        "outcomePrices": ["0.4", "0.6"],
    }


# ============================================================================
# Virtual clock + scripted provider
# ============================================================================

class FakeClock:
    """Virtual wall clock. ``sleep`` advances time instead of blocking."""

    def __init__(self, start=1_700_000_000.0):
        self.t = start
        self.sleeps = []
        self.on_sleep = None

    def now(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.t += seconds
        if self.on_sleep:
            self.on_sleep(len(self.sleeps))


class FakeProvider:
    """Returns queued payloads in order; an Exception instance in the queue is raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0
        self.closed = False

    def fetch_markets(self):
        self.calls += 1
        if not self.responses:
            raise UpstreamUnavailable("no scripted response")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider_cls():
    return FakeProvider


@pytest.fixture
def make_loop(clock):
    def _make(provider, **settings):
        base = dict(volume_weight=1.0, noise_weight=1.0, limit=50, interval=60.0)
        base.update(settings)
        return RefreshLoop(
            fetch=provider.fetch_markets,
            settings=RefreshSettings(**base),
            clock=clock.now,
            sleep=clock.sleep,
            delta_epsilon=1e-6,
        )
    return _make
