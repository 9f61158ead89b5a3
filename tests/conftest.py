"""Shared pytest fixtures for the Crypto-Analyst test suite.

Provides synthetic price/volume series, CoinGecko and Tavily payloads and
mocked HTTP sessions. No test touches the network.
"""

import threading
from unittest.mock import MagicMock

import numpy as np
import pytest

from crypto_analyst.data_sources.market_data import MarketDataClient
from crypto_analyst.data_sources.web_search import WebSearchClient
from crypto_analyst.utils.cache import RequestCache
from crypto_analyst.utils.rate_limiter import RateLimiter


# ---------------------------------------------------------------------------
# 1. Price / volume series
# ---------------------------------------------------------------------------

@pytest.fixture
def scenario_prices():
    """Five-point series with a +12% move."""
    return [100.0, 105.0, 103.0, 108.0, 112.0]


@pytest.fixture
def random_prices():
    """60 prices following a seeded random walk around 30k."""
    np.random.seed(42)
    log_returns = np.random.normal(0.001, 0.03, 60)
    return list(30000.0 * np.exp(np.cumsum(log_returns)))


# ---------------------------------------------------------------------------
# 2. Provider payloads
# ---------------------------------------------------------------------------

def _chart_payload(prices, volumes=None, start_ms=1_700_000_000_000, step_ms=86_400_000):
    volumes = volumes if volumes is not None else [1_000_000.0 + i for i in range(len(prices))]
    return {
        "prices": [[start_ms + i * step_ms, p] for i, p in enumerate(prices)],
        "market_caps": [[start_ms + i * step_ms, p * 1e6] for i, p in enumerate(prices)],
        "total_volumes": [[start_ms + i * step_ms, v] for i, v in enumerate(volumes)],
    }


def _coin_payload(**overrides):
    payload = {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "market_cap_rank": 1,
        "sentiment_votes_up_percentage": 80.0,
        "sentiment_votes_down_percentage": 20.0,
        "market_data": {
            "current_price": {"usd": 65000.0},
            "market_cap": {"usd": 1.28e12},
            "total_volume": {"usd": 3.2e10},
            "price_change_percentage_24h": 1.5,
            "price_change_percentage_7d": 4.2,
            "price_change_percentage_30d": 8.0,
            "ath": {"usd": 73000.0},
            "ath_change_percentage": {"usd": -11.0},
            "atl": {"usd": 67.81},
            "atl_change_percentage": {"usd": 95800.0},
            "circulating_supply": 19_700_000.0,
            "total_supply": 21_000_000.0,
            "max_supply": 21_000_000.0,
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def chart_payload():
    """Factory: ``chart_payload(prices, volumes=None)`` -> market_chart JSON."""
    return _chart_payload


@pytest.fixture
def coin_payload():
    """Factory: ``coin_payload(**overrides)`` -> /coins/{id} JSON."""
    return _coin_payload


# ---------------------------------------------------------------------------
# 3. HTTP mocks
# ---------------------------------------------------------------------------

def _response(status=200, payload=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload if payload is not None else {}
    return resp


@pytest.fixture
def make_response():
    """Factory: ``make_response(status=200, payload=None, json_error=False)``."""
    return _response


@pytest.fixture
def market_client():
    """Factory for a ``MarketDataClient`` over a mocked session, no throttling."""
    def _make(session=None, cache=None, cancel_event=None, rate_limiter=None, **kwargs):
        return MarketDataClient(
            cache=cache if cache is not None else RequestCache(),
            session=session or MagicMock(),
            base_url="https://api.test/v3",
            timeout=5,
            rate_limiter=rate_limiter or RateLimiter(calls_per_minute=0),
            cancel_event=cancel_event or threading.Event(),
            api_key="",
            **kwargs,
        )
    return _make


@pytest.fixture
def search_client():
    """Factory for a ``WebSearchClient`` over a mocked session."""
    def _make(session=None, api_key="tvly-test", **kwargs):
        return WebSearchClient(
            api_key=api_key,
            session=session or MagicMock(),
            url="https://search.test/search",
            timeout=5,
            **kwargs,
        )
    return _make
