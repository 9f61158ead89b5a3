"""Tests for the per-run request cache and the CoinGecko market data client."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from crypto_analyst.data_sources.market_data import (
    CoinDetail,
    decode_coin_detail,
    decode_market_chart,
)
from crypto_analyst.errors import (
    DecodingError,
    PipelineCancelled,
    ProviderError,
    ProviderTimeoutError,
)
from crypto_analyst.utils.cache import RequestCache
from crypto_analyst.utils.rate_limiter import RateLimiter

URL = "https://api.test/v3/coins/bitcoin"


# ---------------------------------------------------------------------------
# RequestCache
# ---------------------------------------------------------------------------

class TestRequestCache:

    def setup_method(self):
        self.cache = RequestCache()

    def test_loader_called_once(self):
        loader = MagicMock(return_value={"id": "bitcoin"})
        first = self.cache.get_or_load(URL, loader)
        second = self.cache.get_or_load(URL, loader)
        assert first == second == {"id": "bitcoin"}
        assert loader.call_count == 1
        assert self.cache.stats() == {"entries": 1, "hits": 1, "misses": 1, "coalesced": 0}

    def test_failure_not_cached(self):
        loader = MagicMock(side_effect=[ProviderError("boom"), {"ok": True}])
        with pytest.raises(ProviderError):
            self.cache.get_or_load(URL, loader)
        assert URL not in self.cache
        assert self.cache.get_or_load(URL, loader) == {"ok": True}
        assert loader.call_count == 2

    def test_concurrent_callers_coalesce(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_loader():
            calls.append(1)
            started.set()
            release.wait(5)
            return {"id": "bitcoin"}

        with ThreadPoolExecutor(max_workers=5) as pool:
            futures = [pool.submit(self.cache.get_or_load, URL, slow_loader) for _ in range(5)]
            assert started.wait(5)
            # let the other callers reach the in-flight future before releasing
            deadline = time.monotonic() + 5
            while self.cache.coalesced < 4 and time.monotonic() < deadline:
                time.sleep(0.01)
            release.set()
            results = [f.result(timeout=5) for f in futures]

        assert len(calls) == 1
        assert all(r == {"id": "bitcoin"} for r in results)
        assert self.cache.coalesced == 4

    def test_waiters_see_owner_failure(self):
        started = threading.Event()
        release = threading.Event()

        def failing_loader():
            started.set()
            release.wait(5)
            raise ProviderError("CoinGecko API error (500)", status_code=500)

        with ThreadPoolExecutor(max_workers=2) as pool:
            owner = pool.submit(self.cache.get_or_load, URL, failing_loader)
            assert started.wait(5)
            waiter = pool.submit(self.cache.get_or_load, URL, failing_loader)
            deadline = time.monotonic() + 5
            while self.cache.coalesced < 1 and time.monotonic() < deadline:
                time.sleep(0.01)
            release.set()
            with pytest.raises(ProviderError):
                owner.result(timeout=5)
            with pytest.raises(ProviderError):
                waiter.result(timeout=5)
        assert len(self.cache) == 0


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------

class TestDecoders:

    def test_market_chart_sorted_utc(self, chart_payload):
        payload = chart_payload([1.0, 2.0, 3.0])
        payload["prices"].reverse()
        chart = decode_market_chart(payload, "bitcoin", 3)
        assert chart.price_values == [1.0, 2.0, 3.0]
        assert isinstance(chart.prices.index, pd.DatetimeIndex)
        assert str(chart.prices.index.tz) == "UTC"
        assert len(chart.volume_values) == 3

    def test_market_chart_bad_shape(self):
        with pytest.raises(DecodingError):
            decode_market_chart({"prices": "nope"})
        with pytest.raises(DecodingError):
            decode_market_chart([1, 2, 3])
        with pytest.raises(DecodingError):
            decode_market_chart({"prices": [[1, "x"]]})

    def test_coin_detail(self, coin_payload):
        coin = decode_coin_detail(coin_payload())
        assert isinstance(coin, CoinDetail)
        assert coin.symbol == "BTC"
        assert coin.market_cap_rank == 1
        assert coin.current_price == 65000.0
        assert coin.ath_change_pct == -11.0
        assert coin.sentiment_up_pct == 80.0

    def test_coin_detail_missing_id(self):
        with pytest.raises(DecodingError):
            decode_coin_detail({"name": "Bitcoin"})

    def test_coin_detail_missing_market_data(self):
        coin = decode_coin_detail({"id": "newcoin"})
        assert coin.current_price is None
        assert coin.market_cap_rank is None


# ---------------------------------------------------------------------------
# MarketDataClient
# ---------------------------------------------------------------------------

class TestMarketDataClient:

    def test_sequential_fetch_single_network_call(self, market_client, make_response, coin_payload):
        session = MagicMock()
        session.get.return_value = make_response(200, coin_payload())
        client = market_client(session=session)

        first = client.get_coin("bitcoin")
        second = client.get_coin("bitcoin")

        assert first == second
        assert session.get.call_count == 1
        assert client.network_calls == 1

    def test_concurrent_fetch_single_network_call(self, market_client, make_response, coin_payload):
        session = MagicMock()
        release = threading.Event()

        def slow_get(*args, **kwargs):
            release.wait(5)
            return make_response(200, coin_payload())

        session.get.side_effect = slow_get
        client = market_client(session=session)

        with ThreadPoolExecutor(max_workers=5) as pool:
            futures = [pool.submit(client.get_coin, "bitcoin") for _ in range(5)]
            deadline = time.monotonic() + 5
            while client.cache.coalesced < 4 and time.monotonic() < deadline:
                time.sleep(0.01)
            release.set()
            coins = [f.result(timeout=5) for f in futures]

        assert session.get.call_count == 1
        assert all(c.id == "bitcoin" for c in coins)

    def test_chart_url(self, market_client, make_response, chart_payload):
        session = MagicMock()
        session.get.return_value = make_response(200, chart_payload([1.0, 2.0]))
        client = market_client(session=session)
        client.get_market_chart("bitcoin", days=14)
        url = session.get.call_args.args[0]
        assert url == "https://api.test/v3/coins/bitcoin/market_chart?vs_currency=usd&days=14"
        assert session.get.call_args.kwargs["timeout"] == 5

    def test_non_success_raises_and_is_not_cached(self, market_client, make_response, coin_payload):
        session = MagicMock()
        session.get.side_effect = [make_response(429), make_response(200, coin_payload())]
        client = market_client(session=session)

        with pytest.raises(ProviderError) as exc_info:
            client.get_coin("bitcoin")
        assert exc_info.value.status_code == 429
        assert str(exc_info.value) == "CoinGecko API error (429)"

        assert client.get_coin("bitcoin").id == "bitcoin"
        assert session.get.call_count == 2

    def test_timeout_maps_to_provider_timeout(self, market_client):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("read timed out")
        client = market_client(session=session)
        with pytest.raises(ProviderTimeoutError) as exc_info:
            client.get_coin("bitcoin")
        assert isinstance(exc_info.value, TimeoutError)

    def test_connection_error_maps_to_provider_error(self, market_client):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        client = market_client(session=session)
        with pytest.raises(ProviderError):
            client.get_coin("bitcoin")

    def test_invalid_json(self, market_client, make_response):
        session = MagicMock()
        session.get.return_value = make_response(200, json_error=True)
        client = market_client(session=session)
        with pytest.raises(DecodingError):
            client.get_coin("bitcoin")

    def test_cancel_blocks_network_but_serves_cache(self, market_client, make_response, coin_payload):
        session = MagicMock()
        session.get.return_value = make_response(200, coin_payload())
        cancel = threading.Event()
        client = market_client(session=session, cancel_event=cancel)

        client.get_coin("bitcoin")
        cancel.set()

        assert client.get_coin("bitcoin").id == "bitcoin"
        with pytest.raises(PipelineCancelled):
            client.get_market_chart("bitcoin", days=30)
        assert session.get.call_count == 1

    def test_demo_key_header(self, market_client, make_response, coin_payload):
        session = MagicMock()
        session.get.return_value = make_response(200, coin_payload())
        client = market_client(session=session)
        client.api_key = "CG-demo"
        client.get_coin("bitcoin")
        assert session.get.call_args.kwargs["headers"]["x-cg-demo-api-key"] == "CG-demo"

    def test_cancel_during_throttle_skips_request(self, market_client, make_response, coin_payload):
        session = MagicMock()
        session.get.return_value = make_response(200, coin_payload())
        cancel = threading.Event()
        limiter = RateLimiter(calls_per_minute=1)
        limiter.wait()  # window is now full, the next call would sleep ~60s
        client = market_client(session=session, cancel_event=cancel, rate_limiter=limiter)

        errors = []

        def fetch():
            try:
                client.get_coin("bitcoin")
            except PipelineCancelled as exc:
                errors.append(exc)

        worker = threading.Thread(target=fetch)
        start = time.monotonic()
        worker.start()
        time.sleep(0.2)
        cancel.set()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert time.monotonic() - start < 5
        assert len(errors) == 1
        assert session.get.call_count == 0
        assert client.network_calls == 0
        assert len(client.cache) == 0


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------

class TestRateLimiter:

    def test_disabled(self):
        assert RateLimiter(calls_per_minute=0).wait() == 0.0

    def test_under_limit_does_not_sleep(self):
        limiter = RateLimiter(calls_per_minute=3)
        assert [limiter.wait() for _ in range(3)] == [0.0, 0.0, 0.0]

    def test_cancel_event_ends_sleep(self):
        limiter = RateLimiter(calls_per_minute=1)
        limiter.wait()
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        slept = limiter.wait(cancel)
        timer.join()
        assert 0.05 < slept < 5
