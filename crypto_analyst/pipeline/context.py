"""Research pipeline state: per-signal results, the bundle, the run context."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Literal, Mapping

if TYPE_CHECKING:
    from crypto_analyst.data_sources.market_data import MarketDataClient
    from crypto_analyst.data_sources.web_search import WebSearchClient

# Fixed signal names, in report order
PRICE_PATTERN = "price_pattern"
INDICATORS_VOLUME = "indicators_volume"
SENTIMENT = "sentiment"
INTERNET_SEARCH = "internet_search"
MARKET_DATA = "market_data"

SIGNAL_NAMES: tuple[str, ...] = (
    PRICE_PATTERN,
    INDICATORS_VOLUME,
    SENTIMENT,
    INTERNET_SEARCH,
    MARKET_DATA,
)

SignalStatus = Literal["ok", "unavailable"]


@dataclass(frozen=True)
class SignalResult:
    """Outcome of one signal task: ``ok`` with data, or ``unavailable``.

    ``summary`` is the human-readable text; ``data`` is the structured
    record consumed by the scoring engine. For unavailable results
    ``error_kind`` holds the originating error kind (``provider_error``,
    ``timeout``, ``decoding_error``, ``config_error``, ``cancelled`` or
    ``unexpected``) and ``reason`` its message.
    """

    name: str
    status: SignalStatus
    summary: str = ""
    data: Any = None
    error_kind: str | None = None
    reason: str | None = None
    elapsed: float = 0.0

    @classmethod
    def success(cls, name: str, data: Any, summary: str, elapsed: float = 0.0) -> SignalResult:
        return cls(name=name, status="ok", summary=summary, data=data, elapsed=elapsed)

    @classmethod
    def unavailable(
        cls, name: str, error_kind: str, reason: str, elapsed: float = 0.0,
    ) -> SignalResult:
        return cls(
            name=name,
            status="unavailable",
            summary=f"{name.replace('_', ' ').capitalize()} unavailable: {reason}",
            error_kind=error_kind,
            reason=reason,
            elapsed=elapsed,
        )

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict:
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        return {
            "name": self.name,
            "status": self.status,
            "summary": self.summary,
            "data": data,
            "error_kind": self.error_kind,
            "reason": self.reason,
            "elapsed": round(self.elapsed, 2),
        }


class ResearchBundle(Mapping[str, SignalResult]):
    """Read-only mapping of signal name -> ``SignalResult`` for one asset.

    Always holds every name in ``SIGNAL_NAMES``; missing results are filled
    with an ``unavailable`` entry at construction.
    """

    def __init__(self, asset_id: str, results: Mapping[str, SignalResult]):
        complete = {}
        for name in SIGNAL_NAMES:
            result = results.get(name)
            if result is None:
                result = SignalResult.unavailable(name, "unexpected", "no result collected")
            complete[name] = result
        self._asset_id = asset_id
        self._results = MappingProxyType(complete)

    @property
    def asset_id(self) -> str:
        return self._asset_id

    def __getitem__(self, name: str) -> SignalResult:
        return self._results[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def data(self, name: str) -> Any | None:
        """Structured record of *name*, or None if it is unavailable."""
        result = self._results.get(name)
        return result.data if result is not None and result.ok else None

    @property
    def available(self) -> list[str]:
        return [n for n, r in self._results.items() if r.ok]

    @property
    def unavailable(self) -> list[str]:
        return [n for n, r in self._results.items() if not r.ok]

    def to_dict(self) -> dict:
        return {
            "asset_id": self._asset_id,
            "signals": {n: r.to_dict() for n, r in self._results.items()},
        }

    def __repr__(self) -> str:
        return f"ResearchBundle({self._asset_id!r}, available={self.available})"


@dataclass
class ResearchContext:
    """Inputs shared by every signal task of one run."""

    asset_id: str
    market: MarketDataClient
    search: WebSearchClient | None = None
    queries: list[str] = field(default_factory=list)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    run_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d_%H%M%S"))
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
