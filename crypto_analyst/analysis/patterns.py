"""Price trend, support/resistance and double top/bottom detection."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Literal, Sequence

import numpy as np

from crypto_analyst.analysis.base import BaseSignalTask
from crypto_analyst.errors import DecodingError
from crypto_analyst.pipeline.context import PRICE_PATTERN, ResearchContext
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("patterns")

TrendType = Literal["Bullish", "Bearish", "Sideways"]

DEFAULT_PATTERN_DAYS = 30
_TREND_THRESHOLD_PCT = 5.0
_PATTERN_DOUBLE_TOL = 0.03   # 3 % tolerance between half-window extremes


@dataclass
class TrendResult:
    direction: TrendType
    change_pct: float

    def summary(self) -> str:
        if self.direction == "Bullish":
            return f"Bullish (+{self.change_pct:.2f}%)"
        return f"{self.direction} ({self.change_pct:.2f}%)"


@dataclass
class LevelsResult:
    support: float
    resistance: float

    @property
    def range_pct(self) -> float:
        if self.support <= 0:
            return 0.0
        return (self.resistance - self.support) / self.support * 100

    def summary(self) -> str:
        return f"Support: ${self.support:.2f}, Resistance: ${self.resistance:.2f}"


@dataclass
class ChartPatternResult:
    double_top: bool
    double_bottom: bool
    first_peak: float
    second_peak: float
    first_trough: float
    second_trough: float

    @property
    def detected(self) -> bool:
        return self.double_top or self.double_bottom

    def summary(self) -> str:
        found = []
        if self.double_top:
            found.append("Double Top")
        if self.double_bottom:
            found.append("Double Bottom")
        if not found:
            return "No clear pattern detected."
        return " and ".join(found) + " pattern detected."


@dataclass
class PricePatternResult:
    trend: TrendResult
    levels: LevelsResult
    patterns: ChartPatternResult
    last_price: float
    points: int

    def to_dict(self) -> dict:
        return {
            "trend": asdict(self.trend),
            "levels": {**asdict(self.levels), "range_pct": round(self.levels.range_pct, 2)},
            "patterns": asdict(self.patterns),
            "last_price": self.last_price,
            "points": self.points,
        }


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------
def _as_array(prices: Sequence[float], minimum: int = 2) -> np.ndarray:
    arr = np.asarray(prices, dtype=float)
    if arr.ndim != 1 or arr.size < minimum:
        raise DecodingError(
            f"insufficient data: need at least {minimum} prices, got {arr.size}"
        )
    return arr


def classify_trend(prices: Sequence[float]) -> TrendResult:
    """Percentage change first -> last, classified at +/-5 %."""
    arr = _as_array(prices)
    first, last = float(arr[0]), float(arr[-1])
    if first == 0:
        raise DecodingError("first price is zero, trend undefined")
    pct = (last - first) / first * 100
    if pct > _TREND_THRESHOLD_PCT:
        direction: TrendType = "Bullish"
    elif pct < -_TREND_THRESHOLD_PCT:
        direction = "Bearish"
    else:
        direction = "Sideways"
    return TrendResult(direction=direction, change_pct=pct)


def support_resistance(prices: Sequence[float]) -> LevelsResult:
    arr = _as_array(prices, minimum=1)
    return LevelsResult(support=float(arr.min()), resistance=float(arr.max()))


def detect_double_patterns(prices: Sequence[float]) -> ChartPatternResult:
    """Compare extremes of the two halves split at ``floor(n/2)``.

    Double top: half maxima within 3 % of the first-half max.
    Double bottom: half minima within 3 % of the first-half min.
    Both flags may be set at once.
    """
    arr = _as_array(prices)
    mid = arr.size // 2
    first, second = arr[:mid], arr[mid:]
    first_peak, second_peak = float(first.max()), float(second.max())
    first_trough, second_trough = float(first.min()), float(second.min())

    double_top = first_peak != 0 and abs(first_peak - second_peak) / abs(first_peak) < _PATTERN_DOUBLE_TOL
    double_bottom = first_trough != 0 and abs(first_trough - second_trough) / abs(first_trough) < _PATTERN_DOUBLE_TOL
    return ChartPatternResult(
        double_top=bool(double_top),
        double_bottom=bool(double_bottom),
        first_peak=first_peak,
        second_peak=second_peak,
        first_trough=first_trough,
        second_trough=second_trough,
    )


def analyze_price_pattern(prices: Sequence[float]) -> PricePatternResult:
    arr = _as_array(prices)
    return PricePatternResult(
        trend=classify_trend(arr),
        levels=support_resistance(arr),
        patterns=detect_double_patterns(arr),
        last_price=float(arr[-1]),
        points=int(arr.size),
    )


# ---------------------------------------------------------------------------
# Signal task
# ---------------------------------------------------------------------------
class PricePatternTask(BaseSignalTask):
    """Trend, support/resistance and chart patterns over ``days`` of prices."""

    @property
    def name(self) -> str:
        return PRICE_PATTERN

    def collect(self, ctx: ResearchContext) -> PricePatternResult:
        days = int(self.params.get("days", DEFAULT_PATTERN_DAYS))
        chart = ctx.market.get_market_chart(ctx.asset_id, days=days)
        result = analyze_price_pattern(chart.price_values)
        logger.info(
            "%s: trend=%s (%.2f%%) support=%.2f resistance=%.2f",
            ctx.asset_id, result.trend.direction, result.trend.change_pct,
            result.levels.support, result.levels.resistance,
        )
        return result

    def summarize(self, record: PricePatternResult) -> str:
        return "\n".join([
            f"Trend: {record.trend.summary()}",
            record.levels.summary(),
            f"Chart patterns: {record.patterns.summary()}",
        ])
