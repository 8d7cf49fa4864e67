#!/usr/bin/env python3
"""
Signal Bot CLI

Run an analysis, print a synthetic option chain, or classify a single post
without starting the web server.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from signalbot.errors import InputError, PipelineTimeout
from signalbot.logging_config import get_logger, setup_logging
from signalbot.nlp.classifier import ImpactClassifier
from signalbot.nlp.clean import normalize_post
from signalbot.nlp.sentiment import detect_sarcasm
from signalbot.orchestration.tasks import build_pipeline
from signalbot.services.types import AnalysisResult, Author, Post, utcnow
from signalbot.trading.options import get_available_options

logger = get_logger(__name__)


def print_analysis(result: AnalysisResult) -> None:
    print(f"\n{'='*60}")
    print(f"SIGNAL ANALYSIS ({result.status})")
    print(f"{'='*60}")
    print(f"Posts found: {result.posts_found}, classified: {result.posts_classified}, "
          f"source: {result.source or 'none'}")
    if result.degraded_sources:
        print(f"Degraded:    {'; '.join(result.degraded_sources)}")
    print()

    market = result.sentiment.market
    print(f"Market: {market.overall} ({market.bullish} bullish / {market.bearish} bearish / "
          f"{market.neutral} neutral)")
    for ticker, b in result.sentiment.tickers.items():
        pct = b.percentages()
        print(f"  {ticker:<8} {b.overall:<8} {b.bullish:>3}/{b.bearish:>3}/{b.neutral:>3}  "
              f"({pct['bullish']}% / {pct['bearish']}% / {pct['neutral']}%)")
    print()

    if result.stock_suggestions:
        print("Stock suggestions:")
        for s in result.stock_suggestions:
            print(f"  {s.action.upper():<5} {s.ticker:<8} {s.confidence:>3}%  {s.reason}")
    if result.option_suggestions:
        print("Option suggestions:")
        for o in result.option_suggestions:
            print(f"  {o.strategy:<10} {o.ticker} {o.strike:g} {o.option_type} "
                  f"exp {o.expiration:%Y-%m-%d}  ~${o.premium_estimate:.2f}  {o.confidence:>3}%")
    print(f"{'='*60}\n")


def run_analyze(tickers: List[str], watchlist: List[str], max_count: Optional[int], as_json: bool) -> int:
    pipeline = build_pipeline()
    try:
        result = asyncio.run(pipeline.analyze(tickers, watchlist, [], max_count=max_count))
    except InputError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    except PipelineTimeout as e:
        logger.error(str(e))
        return 1

    if as_json:
        print(result.model_dump_json(indent=2))
    else:
        print_analysis(result)
    return 0


def run_options(ticker: str, spot: float, as_json: bool) -> int:
    try:
        chain = get_available_options(ticker, spot)
    except InputError as e:
        logger.error(f"Invalid input: {e}")
        return 2

    if as_json:
        print(json.dumps([c.model_dump(mode="json") for c in chain], indent=2))
        return 0

    print(f"\nSynthetic option chain for {ticker.upper()} @ {spot:.2f}")
    print(f"{'='*60}")
    for c in chain:
        print(f"  {c.strike:>8.2f} {c.option_type:<4} {c.expiration:%Y-%m-%d}  "
              f"${c.premium:>6.2f}  vol {c.volume:>5}  oi {c.open_interest:>5}  iv {c.implied_volatility:.1f}%")
    print(f"{'='*60}\n")
    return 0


def run_classify(text: str, tickers: List[str]) -> int:
    post = Post(
        id="cli",
        author=Author(username="cli", display_name="CLI"),
        content=text,
        timestamp=utcnow(),
    )
    classification = ImpactClassifier(fanout=1).classify(post, tickers)

    print(f"\n{'='*60}")
    print("POST CLASSIFICATION")
    print(f"{'='*60}")
    print(f"Original text: {text}")
    print(f"Cleaned text:  {normalize_post(text)}")
    print(f"Sarcasm:       {detect_sarcasm(normalize_post(text)):.2f}")
    print(f"Impact:        {classification.market_impact}")
    for m in classification.mentions:
        print(f"  {m.ticker}: {m.direction}")
    if not classification.mentions:
        print("  (no watched ticker mentioned, or post excluded)")
    print(f"{'='*60}\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="signal-bot",
        description="Signal Bot CLI - social sentiment and trade ideas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  signal-bot analyze AAPL TSLA --watchlist NVDA
  signal-bot analyze BTC-USD --json
  signal-bot options AAPL 175
  signal-bot classify "$AAPL beats earnings" --tickers AAPL
        """
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )
    sub = parser.add_subparsers(dest="command")

    p_analyze = sub.add_parser("analyze", help="Analyze recent posts for tickers")
    p_analyze.add_argument("tickers", nargs="+")
    p_analyze.add_argument("--watchlist", "-w", nargs="*", default=[])
    p_analyze.add_argument("--max-count", "-n", type=int, default=None)
    p_analyze.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    p_options = sub.add_parser("options", help="Print the synthetic option chain")
    p_options.add_argument("ticker")
    p_options.add_argument("spot", type=float)
    p_options.add_argument("--json", action="store_true")

    p_classify = sub.add_parser("classify", help="Classify a single post")
    p_classify.add_argument("text")
    p_classify.add_argument("--tickers", "-t", nargs="+", required=True)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "analyze":
        return run_analyze(args.tickers, args.watchlist, args.max_count, args.json)
    if args.command == "options":
        return run_options(args.ticker, args.spot, args.json)
    if args.command == "classify":
        return run_classify(args.text, args.tickers)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
