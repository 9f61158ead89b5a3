"""Jinja2-based markdown report renderer."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from crypto_analyst.analysis.scoring import ScoreCard
from crypto_analyst.config import Paths
from crypto_analyst.pipeline.context import ResearchBundle
from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("renderer")

DEFAULT_TEMPLATE = "crypto_report.md.j2"

SECTION_TITLES = {
    "market_data": "Market Data",
    "price_pattern": "Price Patterns",
    "indicators_volume": "Indicators & Volume",
    "sentiment": "Sentiment",
    "internet_search": "Internet Research",
}

RECOMMENDATION_MARKERS = {
    "STRONG BUY": "🟢",
    "BUY": "🟢",
    "HOLD": "🟡",
    "SELL": "🔴",
}


def fmt_num(val, currency="$") -> str:
    if val is None:
        return "N/A"
    try:
        val = float(val)
    except (TypeError, ValueError):
        return str(val)
    if val != val:
        return "N/A"
    if abs(val) >= 1e12:
        return f"{currency}{val/1e12:.1f}T"
    elif abs(val) >= 1e9:
        return f"{currency}{val/1e9:.1f}B"
    elif abs(val) >= 1e6:
        return f"{currency}{val/1e6:.1f}M"
    elif abs(val) >= 1e3:
        return f"{currency}{val/1e3:.1f}K"
    else:
        return f"{currency}{val:.2f}"


def fmt_pct(val) -> str:
    if val is None:
        return "N/A"
    try:
        return f"{float(val)*100:.0f}%"
    except (TypeError, ValueError):
        return str(val)


def fmt_signed(val) -> str:
    if val is None:
        return "N/A"
    try:
        return f"{float(val):+.1f}"
    except (TypeError, ValueError):
        return str(val)


class ReportRenderer:
    """Render a research bundle and scorecard into markdown."""

    def __init__(self, template_dir: Path | None = None, template: str = DEFAULT_TEMPLATE):
        tpl_dir = template_dir or Paths.REPORTS_TEMPLATES
        self.template = template
        self.env = Environment(
            loader=FileSystemLoader(str(tpl_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["fmt_num"] = fmt_num
        self.env.filters["fmt_pct"] = fmt_pct
        self.env.filters["fmt_signed"] = fmt_signed

    def render(
        self,
        bundle: ResearchBundle,
        scorecard: ScoreCard,
        started_at: datetime | None = None,
    ) -> str:
        template = self.env.get_template(self.template)
        return template.render(
            bundle=bundle,
            card=scorecard,
            sections=SECTION_TITLES,
            marker=RECOMMENDATION_MARKERS.get(scorecard.recommendation, ""),
            now=started_at or datetime.now(),
        )


def write_report(path: Path, text: str) -> Path:
    """Write *text* to *path* as UTF-8, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
