"""Internet research: batched web searches summarised per query.

A non-success status for one query becomes an inline error note and the
batch carries on. Only a missing search credential makes the whole batch
unavailable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from crypto_analyst.analysis.base import BaseSignalTask
from crypto_analyst.config import section
from crypto_analyst.data_sources.web_search import SearchResponse, WebSearchClient
from crypto_analyst.errors import (
    ConfigError,
    DecodingError,
    ProviderError,
    ProviderTimeoutError,
)
from crypto_analyst.pipeline.context import INTERNET_SEARCH, ResearchContext
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("web_research")

QUERY_DELIMITER = "\n\n---\n\n"
DEFAULT_QUERY_TEMPLATES = ["{asset} latest news", "{asset} reddit", "{asset} tweets"]

# Keyword lexicons for tone scoring of search snippets
POSITIVE_KEYWORDS: set[str] = {
    "adoption", "approval", "approved", "breakout", "bull", "bullish",
    "gain", "gains", "growth", "inflow", "inflows", "integration",
    "launch", "moon", "optimistic", "outperform", "partnership", "rally",
    "record", "recover", "recovery", "surge", "surges", "upgrade", "uptrend",
}
NEGATIVE_KEYWORDS: set[str] = {
    "bear", "bearish", "collapse", "crash", "decline", "delist", "dump",
    "exploit", "fear", "hack", "hacked", "liquidation", "liquidations",
    "loss", "losses", "outflow", "outflows", "plunge", "rug", "scam",
    "selloff", "slump", "warning", "weak", "downtrend",
}
REGULATORY_KEYWORDS: set[str] = {
    "ban", "banned", "crackdown", "enforcement", "investigation",
    "lawsuit", "probe", "regulator", "regulators", "sanction", "sanctions",
    "sec", "subpoena", "sued", "hack", "hacked", "exploit",
}

_WORD_RE = re.compile(r"[a-z][a-z']*")


@dataclass
class QueryOutcome:
    query: str
    response: SearchResponse | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WebResearchResult:
    outcomes: list[QueryOutcome] = field(default_factory=list)
    text: str = ""
    tone: float = 0.0
    regulatory_hits: int = 0

    @property
    def queries(self) -> list[str]:
        return [o.query for o in self.outcomes]

    @property
    def failed_queries(self) -> list[str]:
        return [o.query for o in self.outcomes if not o.ok]

    @property
    def hit_count(self) -> int:
        return sum(len(o.response.results) for o in self.outcomes if o.response is not None)

    def to_dict(self) -> dict:
        return {
            "queries": self.queries,
            "failed_queries": self.failed_queries,
            "hit_count": self.hit_count,
            "tone": round(self.tone, 4),
            "regulatory_hits": self.regulatory_hits,
            "text": self.text,
        }


def _clamp(value: float, lo: float = -1.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def keyword_tone(text: str) -> float:
    """Return a tone score in [-1, 1] from keyword frequency.

    Score = (positive_count - negative_count) / total_keyword_count.
    Returns 0.0 when no keywords are found.
    """
    words = _WORD_RE.findall(text.lower())
    pos_count = sum(1 for w in words if w in POSITIVE_KEYWORDS)
    neg_count = sum(1 for w in words if w in NEGATIVE_KEYWORDS)
    total = pos_count + neg_count
    if total == 0:
        return 0.0
    return _clamp((pos_count - neg_count) / total)


def regulatory_mentions(text: str) -> int:
    return sum(1 for w in _WORD_RE.findall(text.lower()) if w in REGULATORY_KEYWORDS)


class WebResearchCollector:
    """Run a caller-supplied list of queries and format one block per query."""

    def __init__(
        self,
        client: WebSearchClient,
        top_results: int | None = None,
        snippet_chars: int | None = None,
    ):
        conf = section("providers").get("search", {}) or {}
        self.client = client
        self.top_results = int(top_results if top_results is not None else conf.get("top_results", 3))
        self.snippet_chars = int(snippet_chars if snippet_chars is not None else conf.get("snippet_chars", 200))

    def format_block(self, response: SearchResponse) -> str:
        if not response.results:
            return f"Query: '{response.query}'\nNo search results found."
        text = f"Query: '{response.query}'\n"
        if response.answer:
            text += f"Answer: {response.answer}\n\n"
        text += "Top results:\n"
        for i, hit in enumerate(response.results[: self.top_results], 1):
            text += f"{i}. {hit.title}\n   {hit.content[: self.snippet_chars]}...\n   URL: {hit.url}\n\n"
        return text.strip()

    def collect(self, queries: Sequence[str]) -> WebResearchResult:
        """Search every query in order.

        Raises:
            ConfigError: the search credential is missing.
            PipelineCancelled: the run was cancelled mid-batch.
        """
        self.client.require_key()

        outcomes: list[QueryOutcome] = []
        blocks: list[str] = []
        for query in queries:
            try:
                response = self.client.search(query)
            except (ProviderError, ProviderTimeoutError, DecodingError) as exc:
                logger.warning("Search failed for '%s': %s", query, exc)
                if isinstance(exc, ProviderError) and exc.status_code is not None:
                    note = f"Error for '{query}': Tavily API error ({exc.status_code})"
                else:
                    note = f"Error for '{query}': {exc}"
                outcomes.append(QueryOutcome(query=query, error=note))
                blocks.append(note)
                continue
            outcomes.append(QueryOutcome(query=query, response=response))
            blocks.append(self.format_block(response))

        text = QUERY_DELIMITER.join(blocks)
        scored_text = " ".join(
            " ".join([o.response.answer or ""] + [h.title + " " + h.content for h in o.response.results])
            for o in outcomes if o.response is not None
        )
        return WebResearchResult(
            outcomes=outcomes,
            text=text,
            tone=keyword_tone(scored_text),
            regulatory_hits=regulatory_mentions(scored_text),
        )


def default_queries(asset_id: str, templates: Sequence[str] | None = None) -> list[str]:
    """Format the configured query templates for *asset_id*."""
    if templates is None:
        templates = section("research").get("queries") or DEFAULT_QUERY_TEMPLATES
    name = asset_id.replace("-", " ")
    return [t.format(asset=name) for t in templates]


class WebResearchTask(BaseSignalTask):
    """News, Reddit and social search results for the asset."""

    @property
    def name(self) -> str:
        return INTERNET_SEARCH

    def collect(self, ctx: ResearchContext) -> WebResearchResult:
        if ctx.search is None:
            raise ConfigError("no search client configured")
        queries = list(ctx.queries) or default_queries(ctx.asset_id)
        collector = WebResearchCollector(ctx.search)
        result = collector.collect(queries)
        logger.info(
            "%s: %d queries, %d failed, %d hits",
            ctx.asset_id, len(result.outcomes), len(result.failed_queries), result.hit_count,
        )
        return result

    def summarize(self, record: WebResearchResult) -> str:
        return record.text

