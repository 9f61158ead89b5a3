"""Market data client - coin detail, price and volume history.

Source: CoinGecko public REST API. Every GET goes through a per-run
``RequestCache`` so each distinct URL is fetched at most once per run,
even when several signal tasks ask for it at the same time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, asdict
from typing import Any

import pandas as pd
import requests

from crypto_analyst.config import Keys, section
from crypto_analyst.errors import (
    DecodingError,
    PipelineCancelled,
    ProviderError,
    ProviderTimeoutError,
)
from crypto_analyst.utils.cache import RequestCache
from crypto_analyst.utils.logger import setup_logger
from crypto_analyst.utils.rate_limiter import RateLimiter

logger = setup_logger("market_data")

_DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


# ---------------------------------------------------------------------------
# Typed payloads
# ---------------------------------------------------------------------------
@dataclass
class MarketChart:
    """Chronological price and volume series from ``/market_chart``.

    Both series are indexed by UTC timestamps; values are USD floats.
    """

    coin_id: str
    days: int
    prices: pd.Series
    volumes: pd.Series

    @property
    def price_values(self) -> list[float]:
        return [float(v) for v in self.prices.values]

    @property
    def volume_values(self) -> list[float]:
        return [float(v) for v in self.volumes.values]


@dataclass
class CoinDetail:
    """Subset of ``/coins/{id}`` used by the research signals."""

    id: str
    symbol: str = ""
    name: str = ""
    market_cap_rank: int | None = None
    current_price: float | None = None
    market_cap: float | None = None
    total_volume: float | None = None
    price_change_24h_pct: float | None = None
    price_change_7d_pct: float | None = None
    price_change_30d_pct: float | None = None
    ath: float | None = None
    ath_change_pct: float | None = None
    atl: float | None = None
    atl_change_pct: float | None = None
    circulating_supply: float | None = None
    total_supply: float | None = None
    max_supply: float | None = None
    sentiment_up_pct: float | None = None
    sentiment_down_pct: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Decoders (one per endpoint)
# ---------------------------------------------------------------------------
def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _usd(block: dict, key: str) -> float | None:
    value = block.get(key)
    if isinstance(value, dict):
        return _optional_float(value.get("usd"))
    return _optional_float(value)


def _decode_pairs(raw: Any, field_name: str) -> pd.Series:
    if not isinstance(raw, list):
        raise DecodingError(f"market_chart.{field_name} is not a list")
    timestamps: list[int] = []
    values: list[float] = []
    for pair in raw:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            raise DecodingError(f"market_chart.{field_name} entry is not a [ts, value] pair")
        try:
            timestamps.append(int(pair[0]))
            values.append(float(pair[1]))
        except (TypeError, ValueError) as exc:
            raise DecodingError(f"market_chart.{field_name} has non-numeric entry: {pair!r}") from exc
    index = pd.to_datetime(timestamps, unit="ms", utc=True)
    series = pd.Series(values, index=index, name=field_name, dtype=float)
    return series.sort_index()


def decode_market_chart(payload: Any, coin_id: str = "", days: int = 0) -> MarketChart:
    """Decode ``{prices: [[ts, p]], total_volumes: [[ts, v]]}``."""
    if not isinstance(payload, dict):
        raise DecodingError("market_chart payload is not an object")
    prices = _decode_pairs(payload.get("prices"), "prices")
    volumes = _decode_pairs(payload.get("total_volumes", []), "total_volumes")
    return MarketChart(coin_id=coin_id, days=days, prices=prices, volumes=volumes)


def decode_coin_detail(payload: Any) -> CoinDetail:
    """Decode the asset-detail payload from ``/coins/{id}``."""
    if not isinstance(payload, dict) or "id" not in payload:
        raise DecodingError("coin detail payload has no 'id'")
    md = payload.get("market_data") or {}
    if not isinstance(md, dict):
        raise DecodingError("coin detail 'market_data' is not an object")

    rank = payload.get("market_cap_rank", md.get("market_cap_rank"))
    return CoinDetail(
        id=str(payload["id"]),
        symbol=str(payload.get("symbol") or "").upper(),
        name=str(payload.get("name") or ""),
        market_cap_rank=int(rank) if isinstance(rank, (int, float)) else None,
        current_price=_usd(md, "current_price"),
        market_cap=_usd(md, "market_cap"),
        total_volume=_usd(md, "total_volume"),
        price_change_24h_pct=_optional_float(md.get("price_change_percentage_24h")),
        price_change_7d_pct=_optional_float(md.get("price_change_percentage_7d")),
        price_change_30d_pct=_optional_float(md.get("price_change_percentage_30d")),
        ath=_usd(md, "ath"),
        ath_change_pct=_usd(md, "ath_change_percentage"),
        atl=_usd(md, "atl"),
        atl_change_pct=_usd(md, "atl_change_percentage"),
        circulating_supply=_optional_float(md.get("circulating_supply")),
        total_supply=_optional_float(md.get("total_supply")),
        max_supply=_optional_float(md.get("max_supply")),
        sentiment_up_pct=_optional_float(payload.get("sentiment_votes_up_percentage")),
        sentiment_down_pct=_optional_float(payload.get("sentiment_votes_down_percentage")),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class MarketDataClient:
    """Deduplicating CoinGecko client shared by all signal tasks of a run.

    Args:
        cache: Per-run cache; a fresh one is created when omitted.
        session: ``requests.Session`` (injectable for tests).
        cancel_event: When set, no further network calls are issued; cached
            payloads are still served.
    """

    def __init__(
        self,
        cache: RequestCache | None = None,
        session: requests.Session | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        rate_limiter: RateLimiter | None = None,
        cancel_event: threading.Event | None = None,
        api_key: str | None = None,
    ):
        conf = section("providers").get("market_data", {}) or {}
        self.cache = cache if cache is not None else RequestCache()
        self.session = session or requests.Session()
        self.base_url = (base_url or conf.get("base_url") or _DEFAULT_BASE_URL).rstrip("/")
        self.timeout = float(timeout if timeout is not None else conf.get("timeout_seconds", 15))
        self.rate_limiter = rate_limiter or RateLimiter(int(conf.get("calls_per_minute", 30)))
        self.cancel_event = cancel_event or threading.Event()
        self.api_key = Keys.COINGECKO if api_key is None else api_key
        self.network_calls = 0
        self._count_lock = threading.Lock()

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def fetch(self, url: str) -> Any:
        """Return the decoded JSON payload for *url*.

        Raises:
            ProviderError: non-success status or transport failure.
            ProviderTimeoutError: the bounded timeout elapsed.
            DecodingError: the body is not JSON.
            PipelineCancelled: the run was cancelled before the call, or
                while the rate limiter was holding it back.
        """
        return self.cache.get_or_load(url, lambda: self._request(url))

    def _request(self, url: str) -> Any:
        if self.cancel_event.is_set():
            raise PipelineCancelled(f"Run cancelled before fetching {url}")

        self.rate_limiter.wait(self.cancel_event)
        if self.cancel_event.is_set():
            raise PipelineCancelled(f"Run cancelled while throttled before fetching {url}")
        with self._count_lock:
            self.network_calls += 1

        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        logger.info("Fetching %s", url)
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning("Timeout after %.0fs: %s", self.timeout, url)
            raise ProviderTimeoutError(f"Timed out after {self.timeout:.0f}s", url=url) from exc
        except requests.RequestException as exc:
            logger.warning("Request failed for %s: %s", url, exc)
            raise ProviderError(f"Request failed: {exc}", url=url) from exc

        if not resp.ok:
            logger.warning("CoinGecko API error %s for %s", resp.status_code, url)
            raise ProviderError(
                f"CoinGecko API error ({resp.status_code})",
                status_code=resp.status_code,
                url=url,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodingError(f"Invalid JSON from {url}") from exc

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def get_coin(self, coin_id: str) -> CoinDetail:
        """``GET /coins/{id}`` decoded into a ``CoinDetail``."""
        return decode_coin_detail(self.fetch(self.url_for(f"coins/{coin_id}")))

    def get_market_chart(self, coin_id: str, days: int = 30) -> MarketChart:
        """``GET /coins/{id}/market_chart?vs_currency=usd&days={days}``."""
        url = self.url_for(f"coins/{coin_id}/market_chart?vs_currency=usd&days={days}")
        return decode_market_chart(self.fetch(url), coin_id=coin_id, days=days)
