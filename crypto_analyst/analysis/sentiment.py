"""Community sentiment from CoinGecko up/down votes."""

from __future__ import annotations

from dataclasses import dataclass, asdict

from crypto_analyst.analysis.base import BaseSignalTask
from crypto_analyst.errors import DecodingError
from crypto_analyst.pipeline.context import SENTIMENT, ResearchContext


@dataclass
class SentimentResult:
    up_pct: float
    down_pct: float

    def to_dict(self) -> dict:
        return asdict(self)

    def summary(self) -> str:
        return f"Up votes: {self.up_pct:g}%, Down votes: {self.down_pct:g}%"


class SentimentTask(BaseSignalTask):
    """Vote percentages verbatim from the asset-detail endpoint."""

    @property
    def name(self) -> str:
        return SENTIMENT

    def collect(self, ctx: ResearchContext) -> SentimentResult:
        coin = ctx.market.get_coin(ctx.asset_id)
        if coin.sentiment_up_pct is None or coin.sentiment_down_pct is None:
            raise DecodingError(f"no sentiment votes published for {ctx.asset_id}")
        return SentimentResult(up_pct=coin.sentiment_up_pct, down_pct=coin.sentiment_down_pct)

    def summarize(self, record: SentimentResult) -> str:
        return record.summary()
