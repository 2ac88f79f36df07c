#!/usr/bin/env python3
"""
Signal Analysis & Confluence Engine - Demo Runner

Runs the full signal pipeline against the deterministic simulated market
data provider and prints the resulting signal.

EXECUTION
    python run_demo.py
    python run_demo.py --symbol EURUSD --interval 5
    python run_demo.py --single --sentiment 45
    python run_demo.py --json

OUTPUT
    Text report with the primary signal, indicator readings, validator
    reasons and (unless --single) the per-timeframe confluence, or the
    same content as JSON with --json.

Version: 1.0.0
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from typing import Optional, Sequence

from confluence_engine.engine import SignalEngine, format_signal_report, result_to_dict
from confluence_engine.market_data import InsufficientMarketData, SimulatedMarketData
from confluence_engine.sentiment import SentimentSnapshot


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION: str = "1.0.0"
DEFAULT_SYMBOL: str = "EURUSD"
DEFAULT_INTERVAL: str = "1"
DEFAULT_SEED: int = 7


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Signal Analysis & Confluence Engine - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                           # EURUSD, 1-minute confluence
  python run_demo.py --symbol BTCUSD -i 5      # 5-minute primary timeframe
  python run_demo.py --single                  # Single timeframe only
  python run_demo.py --sentiment -40 --json    # Bearish sentiment, JSON output
        """
    )

    parser.add_argument(
        "--symbol", "-s",
        type=str,
        default=DEFAULT_SYMBOL,
        help=f"Instrument symbol (default: {DEFAULT_SYMBOL})"
    )

    parser.add_argument(
        "--interval", "-i",
        type=str,
        default=DEFAULT_INTERVAL,
        help=f"Selected interval code: 1, 5, 15, 60, 240, D, W (default: {DEFAULT_INTERVAL})"
    )

    parser.add_argument(
        "--single",
        action="store_true",
        help="Analyze the selected interval only (no multi-timeframe confluence)"
    )

    parser.add_argument(
        "--sentiment",
        type=float,
        default=None,
        help="External sentiment score in [-100, 100]"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_SEED,
        help=f"Seed for the simulated market data (default: {DEFAULT_SEED})"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 when there is no market data)
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    sentiment = SentimentSnapshot.from_score(args.sentiment) if args.sentiment is not None else None
    engine = SignalEngine(provider=SimulatedMarketData(seed=args.seed))

    try:
        result = engine.analyze(
            args.symbol,
            interval=args.interval,
            sentiment=sentiment,
            multi_timeframe=not args.single
        )
    except InsufficientMarketData as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
        return 0

    print_section_header(f"SIGNAL ANALYSIS: {args.symbol}")
    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Interval:          {args.interval}")
    print(f"  Mode:              {'single timeframe' if args.single else 'multi-timeframe confluence'}")
    print(f"  Version:           {VERSION}")
    print()
    print(format_signal_report(result))

    logger.info(f"Completed in {time.time() - start_time:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
