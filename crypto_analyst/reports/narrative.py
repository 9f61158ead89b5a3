"""LLM narrative report using Claude.

Sends the five research sections and the computed scorecard to the model
and returns a markdown investment report. The scorecard is computed
locally; the model is told to reuse it rather than invent its own.
"""

from __future__ import annotations

from crypto_analyst.analysis.scoring import ScoreCard
from crypto_analyst.config import Keys, section
from crypto_analyst.errors import ConfigError, ProviderError
from crypto_analyst.pipeline.context import (
    INDICATORS_VOLUME,
    INTERNET_SEARCH,
    MARKET_DATA,
    PRICE_PATTERN,
    SENTIMENT,
    ResearchBundle,
)
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("narrative")

ANALYST_SYSTEM_PROMPT = """\
You are a Senior Crypto Investment Analyst. You turn multi-source research
data into institutional-grade investment reports.

You will receive research data in tagged sections (<market_data>,
<price_patterns>, <indicators_volume>, <sentiment_analysis>,
<internet_research>) and a precomputed <scorecard>. A section that reads
"unavailable" has no data; say so instead of guessing.

Use the scorecard numbers and recommendation exactly as given. Do not
recompute them.

Write professional markdown, 1000-1500 words, with these sections:
1. Executive Summary (asset overview, recommendation, thesis)
2. Quantitative Scorecard (table: Metric | Score | Weight | Contribution)
3. Technical Analysis Synthesis (trend, support/resistance, RSI, MA, volume, patterns)
4. Fundamental Assessment (rank, market cap, volume ratios, supply dynamics)
5. Sentiment & Catalyst Analysis (votes, news, social)
6. Risk-Reward Assessment (volatility, liquidity, regulatory)
7. Investment Recommendation (recommendation, price ranges, monitoring triggers)

Use visual indicators: 🟢 Bullish | 🟡 Neutral | 🔴 Bearish.
Base every conclusion on the provided data and cite specific figures.\
"""

_SECTION_TAGS = [
    (MARKET_DATA, "market_data"),
    (PRICE_PATTERN, "price_patterns"),
    (INDICATORS_VOLUME, "indicators_volume"),
    (SENTIMENT, "sentiment_analysis"),
    (INTERNET_SEARCH, "internet_research"),
]


def build_prompt(bundle: ResearchBundle, scorecard: ScoreCard) -> str:
    """Assemble the user prompt from the bundle and scorecard."""
    parts = [f"# Research data for {bundle.asset_id}\n"]
    for name, tag in _SECTION_TAGS:
        result = bundle[name]
        body = result.summary if result.ok else f"unavailable ({result.error_kind}): {result.reason}"
        parts.append(f"<{tag}>\n{body}\n</{tag}>\n")

    contrib = scorecard.contributions
    parts.append("<scorecard>")
    parts.append(f"Technical: {scorecard.technical_score:.1f}/100 (35%, {contrib['technical']:+.1f})")
    parts.append(f"Fundamental: {scorecard.fundamental_score:.1f}/100 (30%, {contrib['fundamental']:+.1f})")
    parts.append(f"Sentiment: {scorecard.sentiment_score:.1f}/100 (25%, {contrib['sentiment']:+.1f})")
    parts.append(f"Risk: {scorecard.risk_score}/10 (10%, {contrib['risk']:+.1f})")
    parts.append(f"Final score: {scorecard.weighted_total:.2f}/100")
    parts.append(f"Recommendation: {scorecard.recommendation}")
    if scorecard.defaulted:
        parts.append(f"Neutral defaults used for: {', '.join(scorecard.defaulted)}")
    parts.append("</scorecard>")
    return "\n".join(parts)


class NarrativeReportWriter:
    """Write the final report with Claude as the synthesis engine."""

    def __init__(self, model: str | None = None, max_tokens: int | None = None, api_key: str | None = None):
        conf = section("llm")
        self.model = model or conf.get("model", "claude-sonnet-4-5-20250929")
        self.max_tokens = int(max_tokens or conf.get("max_tokens", 4096))
        self.api_key = Keys.ANTHROPIC if api_key is None else api_key
        self._client = None

    def require_key(self) -> None:
        if not self.api_key:
            raise ConfigError("ANTHROPIC_API_KEY not set. Add it to your .env file.")

    @property
    def client(self):
        if self._client is None:
            self.require_key()
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def write(self, bundle: ResearchBundle, scorecard: ScoreCard) -> str:
        """Return the markdown report.

        Raises:
            ConfigError: no model credential.
            ProviderError: the model call failed or returned no text.
        """
        prompt = build_prompt(bundle, scorecard)
        logger.info("Requesting narrative report for %s (%s)", bundle.asset_id, self.model)
        client = self.client

        import anthropic
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=ANALYST_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            logger.error("Narrative report failed for %s: %s", bundle.asset_id, exc)
            raise ProviderError(f"Model provider error: {exc}") from exc

        text = "".join(
            getattr(block, "text", "") for block in response.content
        ).strip()
        if not text:
            raise ProviderError("Model provider returned an empty report")
        return text
