"""Base class for all research signal tasks."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from crypto_analyst.errors import AnalystError
from crypto_analyst.pipeline.context import SignalResult
from crypto_analyst.utils.logger import setup_logger

if TYPE_CHECKING:
    from crypto_analyst.pipeline.context import ResearchContext

logger = setup_logger("signals")


class BaseSignalTask(ABC):
    """Interface every signal task must implement.

    To create a new signal task:
    1. Create a module in crypto_analyst/analysis/
    2. Define a class that extends BaseSignalTask
    3. Implement name, collect() and summarize()
    4. Register it in configs/settings.yaml under research.signals

    ``run()`` is the task boundary: it never raises. Pipeline errors become
    an ``unavailable`` result tagged with the error kind.
    """

    def __init__(self, **params: Any):
        self.params = params

    @property
    @abstractmethod
    def name(self) -> str:
        """Fixed signal name used as the bundle key."""
        ...

    @abstractmethod
    def collect(self, ctx: ResearchContext) -> Any:
        """Fetch and compute the structured record for ``ctx.asset_id``."""
        ...

    @abstractmethod
    def summarize(self, record: Any) -> str:
        """Render *record* as the signal's text summary."""
        ...

    def run(self, ctx: ResearchContext) -> SignalResult:
        start = time.monotonic()
        try:
            record = self.collect(ctx)
            summary = self.summarize(record)
        except AnalystError as exc:
            elapsed = time.monotonic() - start
            logger.warning(
                "%s unavailable for %s (%s): %s", self.name, ctx.asset_id, exc.kind, exc,
            )
            return SignalResult.unavailable(self.name, exc.kind, str(exc), elapsed)
        except Exception as exc:
            elapsed = time.monotonic() - start
            logger.exception("%s failed unexpectedly for %s", self.name, ctx.asset_id)
            return SignalResult.unavailable(
                self.name, "unexpected", f"{type(exc).__name__}: {exc}", elapsed,
            )
        elapsed = time.monotonic() - start
        logger.info("%s completed for %s in %.1fs", self.name, ctx.asset_id, elapsed)
        return SignalResult.success(self.name, record, summary, elapsed)
