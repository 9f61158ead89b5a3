"""Market positioning: overview, recent performance and supply metrics.

Combines the asset-detail payload (price, market cap, rank, ATH/ATL,
supply) with a price history window for period return and volatility.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd

from crypto_analyst.analysis.base import BaseSignalTask
from crypto_analyst.data_sources.market_data import CoinDetail
from crypto_analyst.errors import DecodingError
from crypto_analyst.pipeline.context import MARKET_DATA, ResearchContext
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("market")

DEFAULT_HISTORY_DAYS = 30


@dataclass
class PricePerformance:
    days: int
    period_return_pct: float | None
    volatility_pct: float | None
    high: float | None
    low: float | None


@dataclass
class MarketDataResult:
    coin: CoinDetail
    performance: PricePerformance
    volume_to_market_cap: float | None
    circulating_ratio: float | None

    def to_dict(self) -> dict:
        return {
            "coin": self.coin.to_dict(),
            "performance": asdict(self.performance),
            "volume_to_market_cap": self.volume_to_market_cap,
            "circulating_ratio": self.circulating_ratio,
        }


def _safe_divide(numerator: float | None, denominator: float | None) -> float | None:
    if numerator is None or not denominator:
        return None
    return numerator / denominator


def price_performance(prices: pd.Series, days: int) -> PricePerformance:
    """Period return and volatility (std of step-to-step % changes)."""
    values = prices.astype(float)
    if len(values) < 2 or float(values.iloc[0]) == 0:
        return PricePerformance(days=days, period_return_pct=None, volatility_pct=None,
                                high=float(values.max()) if len(values) else None,
                                low=float(values.min()) if len(values) else None)
    returns = values.pct_change().dropna()
    returns = returns.replace([np.inf, -np.inf], np.nan).dropna()
    vol = float(returns.std(ddof=1) * 100) if len(returns) > 1 else None
    return PricePerformance(
        days=days,
        period_return_pct=float((values.iloc[-1] / values.iloc[0] - 1) * 100),
        volatility_pct=vol,
        high=float(values.max()),
        low=float(values.min()),
    )


def market_metrics(coin: CoinDetail) -> tuple[float | None, float | None]:
    """Return ``(volume_to_market_cap, circulating_ratio)``."""
    supply_cap = coin.max_supply or coin.total_supply
    return (
        _safe_divide(coin.total_volume, coin.market_cap),
        _safe_divide(coin.circulating_supply, supply_cap),
    )


def _fmt_usd(val: float | None) -> str:
    if val is None:
        return "N/A"
    if abs(val) >= 1e12:
        return f"${val/1e12:.2f}T"
    if abs(val) >= 1e9:
        return f"${val/1e9:.2f}B"
    if abs(val) >= 1e6:
        return f"${val/1e6:.2f}M"
    return f"${val:,.2f}"


def _fmt_pct(val: float | None) -> str:
    return "N/A" if val is None else f"{val:+.2f}%"


class MarketDataTask(BaseSignalTask):
    """Market overview, price history performance and key ratios."""

    @property
    def name(self) -> str:
        return MARKET_DATA

    def collect(self, ctx: ResearchContext) -> MarketDataResult:
        days = int(self.params.get("history_days", DEFAULT_HISTORY_DAYS))
        coin = ctx.market.get_coin(ctx.asset_id)
        if coin.current_price is None:
            raise DecodingError(f"no market data published for {ctx.asset_id}")

        chart = ctx.market.get_market_chart(ctx.asset_id, days=days)
        performance = price_performance(chart.prices, days)
        vol_mcap, circ_ratio = market_metrics(coin)

        logger.info(
            "%s: rank=%s price=%s mcap=%s",
            ctx.asset_id, coin.market_cap_rank, coin.current_price, coin.market_cap,
        )
        return MarketDataResult(
            coin=coin,
            performance=performance,
            volume_to_market_cap=vol_mcap,
            circulating_ratio=circ_ratio,
        )

    def summarize(self, record: MarketDataResult) -> str:
        c = record.coin
        p = record.performance
        rank = f"#{c.market_cap_rank}" if c.market_cap_rank is not None else "unranked"
        lines = [
            f"{c.name or c.id} ({c.symbol}) - rank {rank}",
            f"Price: {_fmt_usd(c.current_price)} | Market cap: {_fmt_usd(c.market_cap)} "
            f"| 24h volume: {_fmt_usd(c.total_volume)}",
            f"Change: 24h {_fmt_pct(c.price_change_24h_pct)}, 7d {_fmt_pct(c.price_change_7d_pct)}, "
            f"30d {_fmt_pct(c.price_change_30d_pct)}",
            f"ATH: {_fmt_usd(c.ath)} ({_fmt_pct(c.ath_change_pct)}) | "
            f"ATL: {_fmt_usd(c.atl)} ({_fmt_pct(c.atl_change_pct)})",
            f"{p.days}d return: {_fmt_pct(p.period_return_pct)}, volatility: "
            + ("N/A" if p.volatility_pct is None else f"{p.volatility_pct:.2f}%"),
        ]
        if record.volume_to_market_cap is not None:
            lines.append(f"Volume/market cap: {record.volume_to_market_cap:.4f}")
        if record.circulating_ratio is not None:
            lines.append(f"Circulating supply ratio: {record.circulating_ratio:.2%}")
        return "\n".join(lines)
