"""Weighted scorecard and recommendation engine.

Combines the five research signals into four sub-scores and a single
weighted total:

    total = 0.35*technical + 0.30*fundamental + 0.25*sentiment - risk_adjustment

where ``risk_adjustment = 0.10 * (risk - 1) / 9 * 100`` so the risk band
costs between 0 and 10 points. Any sub-score whose inputs are unavailable
falls back to the neutral midpoint (50, or 5 for risk; both read from
``scoring.neutral_score`` and ``scoring.neutral_risk``); the engine never
raises and always returns a complete ``ScoreCard``.

Decision rules, first match wins:
  STRONG BUY  total > 70 and risk < 6
  BUY         55 <= total <= 70 and risk < 7
  HOLD        40 <= total < 55
  SELL        total < 40 or risk > 7
  HOLD        anything left over (e.g. total > 70 with risk 6-7)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from crypto_analyst.analysis.indicators import IndicatorsVolumeResult
from crypto_analyst.analysis.market import MarketDataResult
from crypto_analyst.analysis.patterns import PricePatternResult
from crypto_analyst.analysis.sentiment import SentimentResult
from crypto_analyst.analysis.web_research import WebResearchResult
from crypto_analyst.config import section
from crypto_analyst.pipeline.context import (
    INDICATORS_VOLUME,
    INTERNET_SEARCH,
    MARKET_DATA,
    PRICE_PATTERN,
    SENTIMENT,
    ResearchBundle,
)
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("scoring")

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------
RecommendationType = Literal["STRONG BUY", "BUY", "HOLD", "SELL"]

# ---------------------------------------------------------------------------
# Default weights -- sum to 1.0
# ---------------------------------------------------------------------------
_BASE_WEIGHTS: Dict[str, float] = {
    "technical": 0.35,
    "fundamental": 0.30,
    "sentiment": 0.25,
    "risk": 0.10,
}

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_NEUTRAL_SCORE: float = 50.0
_NEUTRAL_RISK: int = 5
_RISK_MIN, _RISK_MAX = 1, 10


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


@dataclass
class ScoreCard:
    technical_score: float
    fundamental_score: float
    sentiment_score: float
    risk_score: int
    weighted_total: float
    recommendation: RecommendationType
    weights: Dict[str, float] = field(default_factory=lambda: dict(_BASE_WEIGHTS))
    defaulted: List[str] = field(default_factory=list)
    drivers: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def contributions(self) -> Dict[str, float]:
        """Signed points each component adds to the weighted total."""
        return {
            "technical": round(self.technical_score * self.weights["technical"], 2),
            "fundamental": round(self.fundamental_score * self.weights["fundamental"], 2),
            "sentiment": round(self.sentiment_score * self.weights["sentiment"], 2),
            "risk": -round(risk_adjustment(self.risk_score, self.weights["risk"]), 2),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technical_score": self.technical_score,
            "fundamental_score": self.fundamental_score,
            "sentiment_score": self.sentiment_score,
            "risk_score": self.risk_score,
            "weighted_total": self.weighted_total,
            "recommendation": self.recommendation,
            "weights": self.weights,
            "contributions": self.contributions,
            "defaulted": self.defaulted,
            "drivers": self.drivers,
        }


# ===================================================================
# Weighting
# ===================================================================

def risk_adjustment(risk_score: float, weight: float = _BASE_WEIGHTS["risk"]) -> float:
    """Map risk 1..10 onto a 0..(weight*100) point penalty."""
    risk = _clamp(risk_score, _RISK_MIN, _RISK_MAX)
    return weight * (risk - _RISK_MIN) / (_RISK_MAX - _RISK_MIN) * 100


def weighted_total(
    technical: float,
    fundamental: float,
    sentiment: float,
    risk: float,
    weights: Optional[Dict[str, float]] = None,
) -> float:
    w = weights or _BASE_WEIGHTS
    raw = (
        w["technical"] * technical
        + w["fundamental"] * fundamental
        + w["sentiment"] * sentiment
        - risk_adjustment(risk, w["risk"])
    )
    return round(_clamp(raw, 0.0, 100.0), 2)


def compute_recommendation(total: float, risk_score: float) -> RecommendationType:
    """Apply the decision table (first match wins, HOLD as fallback)."""
    if total > 70 and risk_score < 6:
        return "STRONG BUY"
    if 55 <= total <= 70 and risk_score < 7:
        return "BUY"
    if 40 <= total < 55:
        return "HOLD"
    if total < 40 or risk_score > 7:
        return "SELL"
    return "HOLD"


# ===================================================================
# Sub-scores
# ===================================================================

def technical_score(
    pattern: Optional[PricePatternResult],
    indicators: Optional[IndicatorsVolumeResult],
    neutral: float = _NEUTRAL_SCORE,
) -> tuple[float, List[str]]:
    """Trend strength, RSI extremity, price vs MA and volume confirmation.

    Points are added to *neutral*, which is also returned unchanged when
    neither technical signal is available.
    """
    if pattern is None and indicators is None:
        return neutral, []

    score = neutral
    drivers: List[str] = []

    if pattern is not None:
        trend_pts = _clamp(pattern.trend.change_pct, -25.0, 25.0) * 0.8
        score += trend_pts
        drivers.append(f"trend {pattern.trend.direction} {pattern.trend.change_pct:+.2f}% ({trend_pts:+.1f})")
        if pattern.patterns.double_bottom:
            score += 5
            drivers.append("double bottom (+5)")
        if pattern.patterns.double_top:
            score -= 5
            drivers.append("double top (-5)")

    if indicators is not None:
        rsi = indicators.indicators.rsi
        if rsi < 30:
            rsi_pts = 10.0
        elif rsi > 70:
            rsi_pts = -10.0
        else:
            rsi_pts = (rsi - 50) * 0.25
        score += rsi_pts
        drivers.append(f"RSI {rsi:.1f} ({rsi_pts:+.1f})")

        ma = indicators.indicators.ma
        last = indicators.indicators.last_price
        if last > ma:
            score += 5
            drivers.append("price above MA (+5)")
        elif last < ma:
            score -= 5
            drivers.append("price below MA (-5)")

        if pattern is not None and indicators.volume.last_volume > indicators.volume.avg_volume:
            if pattern.trend.direction == "Bullish":
                score += 5
                drivers.append("volume confirms uptrend (+5)")
            elif pattern.trend.direction == "Bearish":
                score -= 5
                drivers.append("volume confirms downtrend (-5)")

    return round(_clamp(score, 0.0, 100.0), 2), drivers


def fundamental_score(
    market: Optional[MarketDataResult],
    neutral: float = _NEUTRAL_SCORE,
) -> tuple[float, List[str]]:
    """Ranking, liquidity, supply dilution and ATH distance."""
    if market is None:
        return neutral, []

    coin = market.coin
    score = neutral
    drivers: List[str] = []

    rank = coin.market_cap_rank
    if rank is None:
        rank_pts = -5
    elif rank <= 10:
        rank_pts = 20
    elif rank <= 50:
        rank_pts = 12
    elif rank <= 100:
        rank_pts = 6
    elif rank <= 500:
        rank_pts = 0
    else:
        rank_pts = -10
    score += rank_pts
    drivers.append(f"rank {rank if rank is not None else 'n/a'} ({rank_pts:+d})")

    ratio = market.volume_to_market_cap
    if ratio is not None:
        if ratio < 0.01:
            pts = -10
        elif 0.02 <= ratio <= 0.5:
            pts = 10
        elif ratio > 0.5:
            pts = -5
        else:
            pts = 0
        score += pts
        drivers.append(f"volume/mcap {ratio:.4f} ({pts:+d})")

    circ = market.circulating_ratio
    if circ is not None:
        if circ >= 0.8:
            pts = 10
        elif circ >= 0.5:
            pts = 5
        else:
            pts = -10
        score += pts
        drivers.append(f"circulating ratio {circ:.0%} ({pts:+d})")

    ath_change = coin.ath_change_pct
    if ath_change is not None:
        if ath_change > -20:
            score += 5
            drivers.append("near ATH (+5)")
        elif ath_change < -80:
            score -= 10
            drivers.append("far below ATH (-10)")

    if coin.price_change_30d_pct is not None:
        pts = _clamp(coin.price_change_30d_pct / 2, -5.0, 5.0)
        score += pts
        drivers.append(f"30d change {coin.price_change_30d_pct:+.1f}% ({pts:+.1f})")

    return round(_clamp(score, 0.0, 100.0), 2), drivers


def sentiment_score(
    votes: Optional[SentimentResult],
    research: Optional[WebResearchResult],
    neutral: float = _NEUTRAL_SCORE,
) -> tuple[float, List[str]]:
    """Mean of the vote up-share and the web-research tone."""
    components: List[float] = []
    drivers: List[str] = []
    if votes is not None:
        components.append(_clamp(votes.up_pct, 0.0, 100.0))
        drivers.append(f"up votes {votes.up_pct:g}%")
    if research is not None and research.hit_count > 0:
        tone_score = 50 + 50 * research.tone
        components.append(tone_score)
        drivers.append(f"web tone {research.tone:+.2f} ({tone_score:.1f})")
    if not components:
        return neutral, []
    return round(_clamp(sum(components) / len(components), 0.0, 100.0), 2), drivers


def risk_score(
    pattern: Optional[PricePatternResult],
    indicators: Optional[IndicatorsVolumeResult],
    market: Optional[MarketDataResult],
    research: Optional[WebResearchResult],
    neutral: int = _NEUTRAL_RISK,
) -> tuple[int, List[str]]:
    """Volatility, liquidity and regulatory proxies on a 1-10 scale.

    Volatility comes from the pattern price range and from the market
    signal's step-to-step volatility over its history window.
    """
    if pattern is None and indicators is None and market is None and research is None:
        return neutral, []

    risk = float(neutral)
    drivers: List[str] = []

    if pattern is not None:
        range_pct = pattern.levels.range_pct
        if range_pct > 50:
            risk += 2
            drivers.append(f"price range {range_pct:.0f}% (+2)")
        elif range_pct > 25:
            risk += 1
            drivers.append(f"price range {range_pct:.0f}% (+1)")
        elif range_pct < 10:
            risk -= 1
            drivers.append(f"price range {range_pct:.0f}% (-1)")

    if market is not None:
        vol = market.performance.volatility_pct
        if vol is not None:
            if vol > 10:
                risk += 2
                drivers.append(f"volatility {vol:.1f}% (+2)")
            elif vol > 5:
                risk += 1
                drivers.append(f"volatility {vol:.1f}% (+1)")
        ratio = market.volume_to_market_cap
        if ratio is not None and ratio < 0.01:
            risk += 2
            drivers.append("thin volume vs market cap (+2)")
        mcap = market.coin.market_cap
        if mcap is not None:
            if mcap < 100e6:
                risk += 2
                drivers.append("micro cap (+2)")
            elif mcap < 1e9:
                risk += 1
                drivers.append("small cap (+1)")
        rank = market.coin.market_cap_rank
        if rank is not None and rank <= 10:
            risk -= 1
            drivers.append("top-10 asset (-1)")

    if research is not None:
        hits = research.regulatory_hits
        if hits >= 3:
            risk += 2
            drivers.append(f"{hits} regulatory mentions (+2)")
        elif hits >= 1:
            risk += 1
            drivers.append(f"{hits} regulatory mention(s) (+1)")

    if indicators is not None:
        rsi = indicators.indicators.rsi
        if rsi > 80 or rsi < 20:
            risk += 1
            drivers.append(f"RSI extreme {rsi:.1f} (+1)")

    return int(_clamp(round(risk), _RISK_MIN, _RISK_MAX)), drivers


# ===================================================================
# Engine
# ===================================================================

class ScoringEngine:
    """Turn a ``ResearchBundle`` into a ``ScoreCard``."""

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        neutral_score: Optional[float] = None,
        neutral_risk: Optional[int] = None,
    ):
        conf = section("scoring")
        merged = dict(_BASE_WEIGHTS)
        merged.update({k: float(v) for k, v in (weights or conf.get("weights") or {}).items() if k in merged})
        self.weights = merged
        if neutral_score is None:
            neutral_score = conf.get("neutral_score", _NEUTRAL_SCORE)
        if neutral_risk is None:
            neutral_risk = conf.get("neutral_risk", _NEUTRAL_RISK)
        self.neutral_score = _clamp(float(neutral_score), 0.0, 100.0)
        self.neutral_risk = int(_clamp(int(neutral_risk), _RISK_MIN, _RISK_MAX))

    def score(self, bundle: ResearchBundle) -> ScoreCard:
        pattern = bundle.data(PRICE_PATTERN)
        indicators = bundle.data(INDICATORS_VOLUME)
        votes = bundle.data(SENTIMENT)
        research = bundle.data(INTERNET_SEARCH)
        market = bundle.data(MARKET_DATA)

        tech, tech_drivers = technical_score(pattern, indicators, self.neutral_score)
        fund, fund_drivers = fundamental_score(market, self.neutral_score)
        sent, sent_drivers = sentiment_score(votes, research, self.neutral_score)
        risk, risk_drivers = risk_score(pattern, indicators, market, research, self.neutral_risk)

        defaulted = []
        if pattern is None and indicators is None:
            defaulted.append("technical")
        if market is None:
            defaulted.append("fundamental")
        if votes is None and (research is None or research.hit_count == 0):
            defaulted.append("sentiment")
        if all(x is None for x in (pattern, indicators, market, research)):
            defaulted.append("risk")

        total = weighted_total(tech, fund, sent, risk, self.weights)
        rec = compute_recommendation(total, risk)

        logger.info(
            "%s: technical=%.1f fundamental=%.1f sentiment=%.1f risk=%d total=%.2f -> %s",
            bundle.asset_id, tech, fund, sent, risk, total, rec,
        )
        if defaulted:
            logger.info("%s: neutral defaults used for %s", bundle.asset_id, ", ".join(defaulted))

        return ScoreCard(
            technical_score=tech,
            fundamental_score=fund,
            sentiment_score=sent,
            risk_score=risk,
            weighted_total=total,
            recommendation=rec,
            weights=dict(self.weights),
            defaulted=defaulted,
            drivers={
                "technical": tech_drivers,
                "fundamental": fund_drivers,
                "sentiment": sent_drivers,
                "risk": risk_drivers,
            },
        )
