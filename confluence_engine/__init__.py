"""
Signal Analysis & Confluence Engine

Turns a price/volume series into a CALL/PUT signal with a confidence
score, entry/expiry timing and the reasons behind it, optionally
confirmed across several timeframes.
"""

from .cache import ResultCache, generate_key
from .config import Config, ConfluenceDirection, SignalDirection
from .confluence import ConfluenceResult, TimeframeSignal
from .engine import MarketAnalysisResult, SignalEngine, format_signal_report, result_to_dict
from .market_data import (
    InMemoryMarketData,
    InsufficientMarketData,
    MarketDataProvider,
    MarketSeries,
    SimulatedMarketData,
)
from .regime import MarketRegime, classify_regime
from .sentiment import MarketImpact, SentimentProvider, SentimentSnapshot, StaticSentimentProvider
from .timing import Clock, FixedClock, SystemClock
from .validator import ValidationOutcome, WarningLevel

__version__ = "1.0.0"
