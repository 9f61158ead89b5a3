"""Research fan-out/fan-in and the end-to-end analysis run."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from crypto_analyst.analysis.scoring import ScoreCard, ScoringEngine
from crypto_analyst.config import Paths, section
from crypto_analyst.data_sources.market_data import MarketDataClient
from crypto_analyst.data_sources.web_search import WebSearchClient
from crypto_analyst.errors import ProviderError
from crypto_analyst.pipeline.context import (
    SIGNAL_NAMES,
    ResearchBundle,
    ResearchContext,
    SignalResult,
)
from crypto_analyst.pipeline.registry import SignalRegistry, get_registry
from crypto_analyst.reports.renderer import ReportRenderer, write_report
from crypto_analyst.utils.cache import RequestCache
from crypto_analyst.utils.logger import setup_logger

if TYPE_CHECKING:
    from crypto_analyst.reports.narrative import NarrativeReportWriter

logger = setup_logger("pipeline")

ProgressCallback = Callable[[str, str, float], None]


class ResearchAggregator:
    """Run every signal task concurrently and join them into a bundle.

    All tasks are started together on a thread pool; the bundle is built
    only after every task has settled (a full barrier). A failing task never
    cancels its siblings and is not retried; its slot holds an
    ``unavailable`` result instead.

    Attributes:
        max_workers: Maximum number of threads in the executor pool.
        progress_callback: Optional callable invoked after each task with
            (signal_name, status, elapsed_seconds).
        last_timing: Timing breakdown from the most recent ``gather()`` call.
    """

    def __init__(
        self,
        registry: SignalRegistry | None = None,
        max_workers: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.registry = registry if registry is not None else get_registry()
        self.max_workers = max_workers or int(section("research").get("max_workers", len(SIGNAL_NAMES)))
        self.progress_callback = progress_callback
        self._lock = threading.Lock()
        self.last_timing: dict[str, Any] = {}

    def _run_task(self, name: str, ctx: ResearchContext) -> SignalResult:
        task = self.registry.get(name)
        if task is None:
            result = SignalResult.unavailable(name, "config_error", "no task registered")
        else:
            logger.info("Starting %s for %s", name, ctx.asset_id)
            result = task.run(ctx)
        if self.progress_callback is not None:
            self.progress_callback(name, result.status, result.elapsed)
        return result

    def gather(self, ctx: ResearchContext) -> ResearchBundle:
        """Collect one ``SignalResult`` per signal name for ``ctx.asset_id``."""
        start = time.monotonic()
        logger.info("Research started: asset=%s signals=%d", ctx.asset_id, len(SIGNAL_NAMES))

        results: dict[str, SignalResult] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="signal")
        try:
            futures: dict[Future, str] = {
                executor.submit(self._run_task, name, ctx): name for name in SIGNAL_NAMES
            }
            wait(futures, return_when=ALL_COMPLETED)
            for future, name in futures.items():
                try:
                    results[name] = future.result()
                except Exception as exc:
                    # task.run() converts errors itself; this guards the unexpected
                    logger.error("Unexpected error in %s: %s", name, exc)
                    results[name] = SignalResult.unavailable(
                        name, "unexpected", f"{type(exc).__name__}: {exc}",
                    )
        except KeyboardInterrupt:
            logger.warning("Research interrupted, cancelling outstanding requests")
            ctx.cancel_event.set()
            executor.shutdown(wait=False, cancel_futures=True)
            with self._lock:
                self.last_timing = {
                    "total": round(time.monotonic() - start, 2),
                    "status": "interrupted",
                }
            raise
        else:
            executor.shutdown(wait=True)

        bundle = ResearchBundle(ctx.asset_id, results)
        total = time.monotonic() - start
        with self._lock:
            self.last_timing = {
                "total": round(total, 2),
                "status": "completed",
                "signals": {
                    name: {"status": r.status, "elapsed": round(r.elapsed, 2)}
                    for name, r in bundle.items()
                },
            }
        logger.info(
            "Research completed in %.1fs: %d/%d signals available",
            total, len(bundle.available), len(bundle),
        )
        return bundle


@dataclass
class AnalysisResult:
    bundle: ResearchBundle
    scorecard: ScoreCard
    report: str = ""
    report_path: Path | None = None
    timing: dict[str, Any] = field(default_factory=dict)


class AnalysisEngine:
    """Research -> score -> report for one asset.

    A fresh ``RequestCache`` is created for every run so cached payloads
    never leak between runs.
    """

    def __init__(
        self,
        aggregator: ResearchAggregator | None = None,
        scorer: ScoringEngine | None = None,
        renderer: ReportRenderer | None = None,
        search_client: WebSearchClient | None = None,
    ):
        self.aggregator = aggregator or ResearchAggregator()
        self.scorer = scorer or ScoringEngine()
        self.renderer = renderer
        self.search_client = search_client

    def build_context(
        self,
        asset_id: str,
        queries: list[str] | None = None,
        market: MarketDataClient | None = None,
    ) -> ResearchContext:
        cancel_event = threading.Event()
        if market is None:
            market = MarketDataClient(cache=RequestCache(), cancel_event=cancel_event)
        else:
            cancel_event = market.cancel_event
        search = self.search_client or WebSearchClient(cancel_event=cancel_event)
        return ResearchContext(
            asset_id=asset_id,
            market=market,
            search=search,
            queries=list(queries or []),
            cancel_event=cancel_event,
        )

    def research(self, asset_id: str, queries: list[str] | None = None) -> ResearchBundle:
        return self.aggregator.gather(self.build_context(asset_id, queries))

    def run(
        self,
        asset_id: str,
        queries: list[str] | None = None,
        output_path: Path | None = None,
        narrative_writer: NarrativeReportWriter | None = None,
        ctx: ResearchContext | None = None,
    ) -> AnalysisResult:
        """Execute the full pipeline and optionally write the report.

        Args:
            asset_id: Provider asset id (e.g. "bitcoin").
            queries: Web research queries; defaults come from settings.
            output_path: Where to write the UTF-8 report. Nothing is written
                when None.
            narrative_writer: LLM writer; the Jinja2 report is used when None.
            ctx: Pre-built context (tests, custom clients).
        """
        ctx = ctx or self.build_context(asset_id, queries)
        bundle = self.aggregator.gather(ctx)
        scorecard = self.scorer.score(bundle)

        report = ""
        if narrative_writer is not None:
            try:
                report = narrative_writer.write(bundle, scorecard)
            except ProviderError as exc:
                logger.warning("Narrative report failed, using template report: %s", exc)
        if not report:
            renderer = self.renderer or ReportRenderer()
            report = renderer.render(bundle, scorecard, started_at=ctx.started_at)

        report_path = None
        if output_path is not None:
            report_path = write_report(Path(output_path), report)
            logger.info("Report saved: %s", report_path)

        timing = dict(self.aggregator.last_timing)
        timing["cache"] = ctx.market.cache.stats()
        return AnalysisResult(
            bundle=bundle,
            scorecard=scorecard,
            report=report,
            report_path=report_path,
            timing=timing,
        )


def default_report_path(asset_id: str, run_id: str, output_dir: Path | None = None) -> Path:
    output_dir = output_dir or Paths.REPORTS_OUTPUT
    return output_dir / f"{asset_id}_{run_id}.md"
