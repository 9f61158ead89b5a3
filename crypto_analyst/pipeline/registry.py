"""SignalRegistry: discovers and manages research signal tasks."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

from crypto_analyst.config import section
from crypto_analyst.pipeline.context import SIGNAL_NAMES
from crypto_analyst.utils.logger import setup_logger

if TYPE_CHECKING:
    from crypto_analyst.analysis.base import BaseSignalTask

logger = setup_logger("registry")

# Built-in tasks used when settings.yaml has no research.signals section
_DEFAULT_SIGNALS: dict[str, dict] = {
    "price_pattern": {"module": "crypto_analyst.analysis.patterns", "class": "PricePatternTask"},
    "indicators_volume": {"module": "crypto_analyst.analysis.indicators", "class": "IndicatorsVolumeTask"},
    "sentiment": {"module": "crypto_analyst.analysis.sentiment", "class": "SentimentTask"},
    "internet_search": {"module": "crypto_analyst.analysis.web_research", "class": "WebResearchTask"},
    "market_data": {"module": "crypto_analyst.analysis.market", "class": "MarketDataTask"},
}

_registry_instance = None


def get_registry() -> SignalRegistry:
    """Get or create the singleton registry."""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = SignalRegistry()
        _registry_instance.auto_discover()
    return _registry_instance


class SignalRegistry:
    """Central registry of the signal tasks run for every asset."""

    def __init__(self):
        self._tasks: dict[str, BaseSignalTask] = {}

    def register(self, task: BaseSignalTask) -> None:
        if task.name not in SIGNAL_NAMES:
            raise ValueError(f"Unknown signal name: {task.name}")
        self._tasks[task.name] = task
        logger.debug("Registered signal task: %s", task.name)

    def get(self, name: str) -> BaseSignalTask | None:
        return self._tasks.get(name)

    def items(self):
        return self._tasks.items()

    def names(self) -> list[str]:
        return list(self._tasks.keys())

    def auto_discover(self) -> None:
        """Load tasks from settings.yaml research.signals config."""
        signals_config = section("research").get("signals") or _DEFAULT_SIGNALS

        for name, conf in signals_config.items():
            if name not in SIGNAL_NAMES:
                logger.warning("Ignoring unknown signal in settings: %s", name)
                continue
            module_path = conf["module"]
            class_name = conf["class"]
            try:
                mod = importlib.import_module(module_path)
                cls = getattr(mod, class_name)
                self.register(cls(**(conf.get("params") or {})))
            except Exception as e:
                logger.error("Failed to load signal task %s: %s", name, e)
