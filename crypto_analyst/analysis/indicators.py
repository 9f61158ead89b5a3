"""Momentum indicators (MA, RSI) and volume statistics.

RSI uses a Wilder-style approximation over the whole requested window:
summed gains and losses across consecutive prices are divided by ``days``
(not by the number of deltas). When there are no losses RS is pinned to
100 rather than infinity, so a flat or one-point series still yields a
defined value (RSI = 100 - 100/101).
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Sequence

import numpy as np

from crypto_analyst.analysis.base import BaseSignalTask
from crypto_analyst.errors import DecodingError
from crypto_analyst.pipeline.context import INDICATORS_VOLUME, ResearchContext
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("indicators")

DEFAULT_RSI_DAYS = 14
DEFAULT_VOLUME_DAYS = 30
_RS_NO_LOSS = 100.0


@dataclass
class IndicatorResult:
    ma: float
    rsi: float
    days: int
    gains: float
    losses: float
    last_price: float

    def summary(self) -> str:
        return f"MA: ${self.ma:.2f}, RSI: {self.rsi:.2f}"


@dataclass
class VolumeResult:
    avg_volume: float
    max_volume: float
    min_volume: float
    last_volume: float
    days: int

    def summary(self) -> str:
        return (
            f"Avg Vol: {self.avg_volume:.0f}, Max Vol: {self.max_volume:.0f}, "
            f"Min Vol: {self.min_volume:.0f}"
        )


@dataclass
class IndicatorsVolumeResult:
    indicators: IndicatorResult
    volume: VolumeResult

    def to_dict(self) -> dict:
        return {"indicators": asdict(self.indicators), "volume": asdict(self.volume)}


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------
def _as_array(values: Sequence[float], what: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise DecodingError(f"{what} series is empty")
    return arr


def moving_average(prices: Sequence[float]) -> float:
    """Simple mean of every price in the series."""
    return float(np.mean(_as_array(prices, "price")))


def relative_strength_index(prices: Sequence[float], days: int = DEFAULT_RSI_DAYS) -> tuple[float, float, float]:
    """Return ``(rsi, gains, losses)`` for *prices* over a *days* window."""
    if days <= 0:
        raise ValueError("days must be positive")
    arr = _as_array(prices, "price")
    deltas = np.diff(arr)
    gains = float(deltas[deltas > 0].sum())
    losses = float(-deltas[deltas < 0].sum())
    avg_gain = gains / days
    avg_loss = losses / days
    rs = _RS_NO_LOSS if avg_loss == 0 else avg_gain / avg_loss
    rsi = 100.0 - 100.0 / (1.0 + rs)
    return rsi, gains, losses


def compute_indicators(prices: Sequence[float], days: int = DEFAULT_RSI_DAYS) -> IndicatorResult:
    arr = _as_array(prices, "price")
    rsi, gains, losses = relative_strength_index(arr, days)
    return IndicatorResult(
        ma=moving_average(arr),
        rsi=rsi,
        days=days,
        gains=gains,
        losses=losses,
        last_price=float(arr[-1]),
    )


def compute_volume_stats(volumes: Sequence[float], days: int = DEFAULT_VOLUME_DAYS) -> VolumeResult:
    """Mean, max and min over the whole volume series."""
    arr = _as_array(volumes, "volume")
    return VolumeResult(
        avg_volume=float(np.mean(arr)),
        max_volume=float(np.max(arr)),
        min_volume=float(np.min(arr)),
        last_volume=float(arr[-1]),
        days=days,
    )


# ---------------------------------------------------------------------------
# Signal task
# ---------------------------------------------------------------------------
class IndicatorsVolumeTask(BaseSignalTask):
    """RSI/MA over a short window plus volume statistics over a longer one."""

    @property
    def name(self) -> str:
        return INDICATORS_VOLUME

    def collect(self, ctx: ResearchContext) -> IndicatorsVolumeResult:
        indicator_days = int(self.params.get("indicator_days", DEFAULT_RSI_DAYS))
        volume_days = int(self.params.get("volume_days", DEFAULT_VOLUME_DAYS))

        short = ctx.market.get_market_chart(ctx.asset_id, days=indicator_days)
        indicators = compute_indicators(short.price_values, indicator_days)

        history = ctx.market.get_market_chart(ctx.asset_id, days=volume_days)
        volume = compute_volume_stats(history.volume_values, volume_days)

        logger.info(
            "%s: MA=%.2f RSI=%.2f avg_vol=%.0f",
            ctx.asset_id, indicators.ma, indicators.rsi, volume.avg_volume,
        )
        return IndicatorsVolumeResult(indicators=indicators, volume=volume)

    def summarize(self, record: IndicatorsVolumeResult) -> str:
        return f"{record.indicators.summary()}\n{record.volume.summary()}"
