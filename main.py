#!/usr/bin/env python3
"""Crypto-Analyst: multi-signal cryptocurrency research and scoring.

Usage:
    python main.py analyze BTC                           # full run, template report
    python main.py analyze ethereum --llm                # narrative report via Claude
    python main.py analyze sol --query "solana ETF" --output sol.md
    python main.py score BTC                             # scorecard JSON
    python main.py research BTC                          # research bundle JSON
    python main.py indicators BTC --days 14              # MA / RSI / volume
    python main.py patterns BTC --days 30                # trend, levels, patterns
    python main.py search bitcoin ETF inflows            # one web search
"""

import argparse
import json
import sys

from crypto_analyst.analysis.indicators import compute_indicators, compute_volume_stats
from crypto_analyst.analysis.patterns import analyze_price_pattern
from crypto_analyst.analysis.web_research import WebResearchCollector
from crypto_analyst.config import SETTINGS
from crypto_analyst.data_sources.market_data import MarketDataClient
from crypto_analyst.data_sources.web_search import WebSearchClient
from crypto_analyst.errors import AnalystError, ConfigError
from crypto_analyst.pipeline.engine import AnalysisEngine, ResearchAggregator, default_report_path
from crypto_analyst.resolver import AssetResolver
from crypto_analyst.utils.logger import set_level, setup_logger

logger = setup_logger("main", SETTINGS.get("app", {}).get("log_level", "INFO"))

resolver = AssetResolver()


def _print_progress(name: str, status: str, elapsed: float) -> None:
    mark = "done" if status == "ok" else "unavailable"
    print(f"  [{mark:>11s}] {name:18s} {elapsed:5.1f}s", file=sys.stderr)


def _engine(progress: bool = True) -> AnalysisEngine:
    callback = _print_progress if progress else None
    return AnalysisEngine(aggregator=ResearchAggregator(progress_callback=callback))


# ============================================================
# COMMANDS
# ============================================================

def cmd_analyze(args):
    """Research, score and write the report for one asset."""
    from crypto_analyst.reports.narrative import NarrativeReportWriter

    asset_id = resolver.resolve(args.asset)
    writer = None
    if args.llm:
        writer = NarrativeReportWriter()
        writer.require_key()

    engine = _engine()
    ctx = engine.build_context(asset_id, args.query)
    output = args.output or default_report_path(asset_id, ctx.run_id)
    result = engine.run(asset_id, output_path=output, narrative_writer=writer, ctx=ctx)

    card = result.scorecard
    print(f"\n{asset_id}: {card.recommendation} ({card.weighted_total:.2f}/100, risk {card.risk_score}/10)")
    print(f"Signals available: {', '.join(result.bundle.available) or 'none'}")
    print(f"Completed in {result.timing.get('total', 0):.1f}s")
    print(f"Report saved: {result.report_path}")


def cmd_score(args):
    """Print the scorecard as JSON."""
    asset_id = resolver.resolve(args.asset)
    engine = _engine()
    ctx = engine.build_context(asset_id, args.query)
    bundle = engine.aggregator.gather(ctx)
    card = engine.scorer.score(bundle)
    print(json.dumps({"asset": asset_id, **card.to_dict()}, indent=2))


def cmd_research(args):
    """Print the raw research bundle as JSON."""
    asset_id = resolver.resolve(args.asset)
    bundle = _engine().research(asset_id, args.query)
    print(json.dumps(bundle.to_dict(), indent=2, default=str))


def cmd_indicators(args):
    """MA, RSI and volume statistics."""
    asset_id = resolver.resolve(args.asset)
    client = MarketDataClient()
    chart = client.get_market_chart(asset_id, days=args.days)
    indicators = compute_indicators(chart.price_values, args.days)
    volume = compute_volume_stats(chart.volume_values, args.days)
    print(f"\n{'='*50}")
    print(f"  {asset_id} ({args.days}d, {len(chart.prices)} points)")
    print(f"{'='*50}")
    print(f"  {indicators.summary()}")
    print(f"  {volume.summary()}")


def cmd_patterns(args):
    """Trend, support/resistance and double top/bottom."""
    asset_id = resolver.resolve(args.asset)
    client = MarketDataClient()
    chart = client.get_market_chart(asset_id, days=args.days)
    result = analyze_price_pattern(chart.price_values)
    print(f"\n{'='*50}")
    print(f"  {asset_id} ({args.days}d)")
    print(f"{'='*50}")
    print(f"  Trend: {result.trend.summary()}")
    print(f"  {result.levels.summary()}")
    print(f"  Chart patterns: {result.patterns.summary()}")


def cmd_search(args):
    """Run a single web search and print the formatted block."""
    query = " ".join(args.query)
    collector = WebResearchCollector(WebSearchClient())
    result = collector.collect([query])
    print(result.text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crypto-Analyst: multi-signal cryptocurrency research and scoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Commands")

    # analyze
    p = sub.add_parser("analyze", help="Full research, scoring and report")
    p.add_argument("asset", help="Asset symbol, name or provider id")
    p.add_argument("--query", action="append", default=None,
                   help="Web research query (repeatable; default: configured templates)")
    p.add_argument("--llm", action="store_true", help="Write the report with Claude")
    p.add_argument("--output", default=None, help="Report path (default: reports/output/)")
    p.set_defaults(func=cmd_analyze)

    # score
    p = sub.add_parser("score", help="Scorecard as JSON")
    p.add_argument("asset")
    p.add_argument("--query", action="append", default=None)
    p.set_defaults(func=cmd_score)

    # research
    p = sub.add_parser("research", help="Research bundle as JSON")
    p.add_argument("asset")
    p.add_argument("--query", action="append", default=None)
    p.set_defaults(func=cmd_research)

    # indicators
    p = sub.add_parser("indicators", help="MA, RSI and volume")
    p.add_argument("asset")
    p.add_argument("--days", type=int, default=14)
    p.set_defaults(func=cmd_indicators)

    # patterns
    p = sub.add_parser("patterns", help="Trend, support/resistance, chart patterns")
    p.add_argument("asset")
    p.add_argument("--days", type=int, default=30)
    p.set_defaults(func=cmd_patterns)

    # search
    p = sub.add_parser("search", help="Single web search")
    p.add_argument("query", nargs="+")
    p.set_defaults(func=cmd_search)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(0)
    if args.verbose:
        set_level("DEBUG")
    try:
        args.func(args)
    except (ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except AnalystError as e:
        print(f"Error ({e.kind}): {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
