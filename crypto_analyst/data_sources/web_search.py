"""Web search client - news, Reddit and social posts via Tavily.

One POST per query. Responses are decoded once into ``SearchResponse``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import requests

from crypto_analyst.config import Keys, section
from crypto_analyst.errors import (
    ConfigError,
    DecodingError,
    PipelineCancelled,
    ProviderError,
    ProviderTimeoutError,
)
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("web_search")

_DEFAULT_URL = "https://api.tavily.com/search"


@dataclass
class SearchHit:
    title: str
    url: str
    content: str
    score: float = 0.0


@dataclass
class SearchResponse:
    query: str
    answer: str | None = None
    results: list[SearchHit] = field(default_factory=list)


def decode_search_response(query: str, payload: Any) -> SearchResponse:
    """Decode ``{answer?, results: [{title, url, content, score}]}``."""
    if not isinstance(payload, dict):
        raise DecodingError("search payload is not an object")
    raw_results = payload.get("results") or []
    if not isinstance(raw_results, list):
        raise DecodingError("search 'results' is not a list")
    hits = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        try:
            score = float(item.get("score") or 0.0)
        except (TypeError, ValueError):
            score = 0.0
        hits.append(SearchHit(
            title=str(item.get("title") or ""),
            url=str(item.get("url") or ""),
            content=str(item.get("content") or ""),
            score=score,
        ))
    answer = payload.get("answer")
    return SearchResponse(query=query, answer=str(answer) if answer else None, results=hits)


class WebSearchClient:
    """Thin Tavily search client."""

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        url: str | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ):
        conf = section("providers").get("search", {}) or {}
        self.api_key = Keys.TAVILY if api_key is None else api_key
        self.session = session or requests.Session()
        self.url = url or conf.get("url") or _DEFAULT_URL
        self.timeout = float(timeout if timeout is not None else conf.get("timeout_seconds", 20))
        self.search_depth = conf.get("search_depth", "basic")
        self.max_results = int(conf.get("max_results", 5))
        self.cancel_event = cancel_event or threading.Event()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def require_key(self) -> None:
        if not self.api_key:
            raise ConfigError(
                "Tavily API key not found. Please set TAVILY_API_KEY environment variable."
            )

    def search(self, query: str) -> SearchResponse:
        """Run one search request.

        Raises:
            ConfigError: no API key.
            ProviderError: non-2xx status (``status_code`` is set).
            ProviderTimeoutError: the bounded timeout elapsed.
            DecodingError: malformed body.
        """
        self.require_key()
        if self.cancel_event.is_set():
            raise PipelineCancelled(f"Run cancelled before searching '{query}'")

        body = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": self.search_depth,
            "include_answer": True,
            "include_raw_content": False,
            "max_results": self.max_results,
            "include_domains": [],
            "exclude_domains": [],
        }
        logger.info("Searching: %s", query)
        try:
            resp = self.session.post(self.url, json=body, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ProviderTimeoutError(f"Timed out after {self.timeout:.0f}s", url=self.url) from exc
        except requests.RequestException as exc:
            raise ProviderError(f"Request failed: {exc}", url=self.url) from exc

        if not resp.ok:
            raise ProviderError(
                f"Tavily API error ({resp.status_code})",
                status_code=resp.status_code,
                url=self.url,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise DecodingError("Invalid JSON from Tavily") from exc
        return decode_search_response(query, payload)
