"""
Signal Engine
=============

Orchestrates the full pipeline for one symbol:

    market data -> indicators -> regime -> strategy + direction vote
                -> validation -> timing -> (per timeframe) -> confluence

Results are memoized in the shared ResultCache for two minutes under a
key built from the operation, symbol, interval and sentiment score. The
``on_signal`` callback fires only when a result is freshly computed.

The only error surfaced to callers is InsufficientMarketData, raised when
the provider has no usable price series for the requested interval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .cache import ResultCache, generate_key
from .config import Config, SignalDirection
from .confluence import (
    ConfluenceResult,
    TimeframeSignal,
    adjust_primary_confidence,
    aggregate_confluence,
    select_primary,
)
from .direction import DirectionVote, DirectionVoter
from .indicators import (
    ArrayLike,
    IndicatorSnapshot,
    SupportResistance,
    TechnicalScores,
    compute_snapshot,
    compute_technical_scores,
)
from .market_data import InsufficientMarketData, MarketDataProvider, MarketSeries
from .regime import MarketRegime, classify_regime
from .sentiment import SentimentProvider, SentimentSnapshot
from .strategies import (
    PERFORMANCE_HISTORY_KEY,
    STRATEGY_PERFORMANCE_HISTORY,
    StrategyPerformance,
    StrategySelection,
    StrategySelector,
)
from .timing import Clock, SystemClock, TimingOptimizer
from .validator import SignalValidator, ValidationOutcome, warning_level_for

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class MarketAnalysisResult:
    """Single-timeframe signal with its supporting readings."""
    symbol: str
    interval: str
    direction: SignalDirection
    confidence: int
    validation: ValidationOutcome
    regime: MarketRegime
    strategy: StrategySelection
    vote: DirectionVote
    snapshot: IndicatorSnapshot
    support_resistance: SupportResistance
    technical_scores: TechnicalScores
    entry_time: datetime
    expiry_time: datetime
    expiry_minutes: int
    countdown_seconds: int
    timestamp: datetime
    sentiment: Optional[SentimentSnapshot] = None
    notes: Tuple[str, ...] = ()

    @property
    def trend_strength(self) -> float:
        return self.snapshot.trend_strength

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid


AnalysisResult = Union[ConfluenceResult, MarketAnalysisResult]


# =============================================================================
# ENGINE
# =============================================================================

class SignalEngine:
    """
    Signal analysis and confluence engine.

    Parameters
    ----------
    provider : MarketDataProvider
        Source of price/volume series
    sentiment_provider : SentimentProvider, optional
        Consulted when ``analyze`` receives no explicit sentiment
    clock : Clock, optional
        Time source for timing and cache expiry (defaults to SystemClock)
    cache : ResultCache, optional
        Shared cache (a private one is created if omitted)
    timeframes : Sequence[Tuple[str, str]]
        (interval code, label) pairs analyzed for confluence
    lookback : int
        Bars requested from the provider per analysis
    use_heuristic_ranking : bool
        Rank strategies by heuristic confidence instead of rule scores
    on_signal : Callable, optional
        Called with every freshly computed result
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        sentiment_provider: Optional[SentimentProvider] = None,
        clock: Optional[Clock] = None,
        cache: Optional[ResultCache] = None,
        timeframes: Sequence[Tuple[str, str]] = Config.TIMEFRAMES,
        lookback: int = Config.DEFAULT_LOOKBACK,
        use_heuristic_ranking: bool = False,
        on_signal: Optional[Callable[[AnalysisResult], None]] = None
    ):
        if lookback <= 0:
            raise ValueError(f"Lookback must be positive, got {lookback}")
        if not timeframes:
            raise ValueError("At least one timeframe is required")

        self.provider = provider
        self.sentiment_provider = sentiment_provider
        self.clock = clock or SystemClock()
        self.cache = cache if cache is not None else ResultCache(clock=self.clock)
        self.timeframes = tuple(timeframes)
        self.lookback = lookback
        self.use_heuristic_ranking = use_heuristic_ranking
        self.on_signal = on_signal

        self.voter = DirectionVoter()
        self.validator = SignalValidator()
        self.timing = TimingOptimizer(self.clock)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def analyze(
        self,
        symbol: str,
        interval: str = "1",
        sentiment: Optional[SentimentSnapshot] = None,
        multi_timeframe: bool = True
    ) -> AnalysisResult:
        """
        Cached analysis of one symbol.

        Parameters
        ----------
        symbol : str
            Instrument identifier passed to the provider
        interval : str
            Selected interval code ("1", "5", "15", "60", ...)
        sentiment : SentimentSnapshot, optional
            Overrides the sentiment provider
        multi_timeframe : bool
            Confluence across the configured timeframes (default) or the
            selected interval alone

        Returns
        -------
        ConfluenceResult or MarketAnalysisResult

        Raises
        ------
        InsufficientMarketData
            When there is no usable price series
        """
        sentiment = self._resolve_sentiment(symbol, sentiment)
        operation = "full-analysis" if multi_timeframe else "market-analysis"
        key = generate_key(
            operation,
            symbol=symbol,
            interval=interval,
            sentiment=sentiment.score if sentiment is not None else None
        )

        runner = self._analyze_confluence if multi_timeframe else self._analyze_single
        compute = partial(runner, symbol, interval, sentiment)

        result, computed = self.cache.get_or_compute(key, compute, Config.ANALYSIS_TTL)

        if computed:
            logger.info(f"Analysis complete: {symbol} ({interval}) {_summary(result)}")
            if self.on_signal is not None:
                self.on_signal(result)

        return result

    def analyze_market(
        self,
        symbol: str,
        interval: str = "1",
        sentiment: Optional[SentimentSnapshot] = None
    ) -> MarketAnalysisResult:
        """Uncached single-timeframe analysis of one symbol."""
        return self._analyze_single(symbol, interval, self._resolve_sentiment(symbol, sentiment))

    def analyze_series(
        self,
        prices: ArrayLike,
        volumes: Optional[ArrayLike] = None,
        interval: str = "1",
        sentiment: Optional[SentimentSnapshot] = None,
        symbol: str = "SERIES"
    ) -> MarketAnalysisResult:
        """Single-timeframe analysis of caller-provided arrays."""
        series = MarketSeries.build(symbol, interval, prices, volumes)
        return self._run_pipeline(self._usable(series), interval, sentiment)

    def performance_history(self) -> Mapping[str, StrategyPerformance]:
        """Strategy win-rate table, cached for an hour."""
        history, _ = self.cache.get_or_compute(
            PERFORMANCE_HISTORY_KEY,
            lambda: STRATEGY_PERFORMANCE_HISTORY,
            Config.PERFORMANCE_HISTORY_TTL
        )
        return history

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _resolve_sentiment(
        self,
        symbol: str,
        sentiment: Optional[SentimentSnapshot]
    ) -> Optional[SentimentSnapshot]:
        if sentiment is not None or self.sentiment_provider is None:
            return sentiment
        key = generate_key("sentiment", symbol=symbol)
        value, _ = self.cache.get_or_compute(
            key,
            lambda: self.sentiment_provider.get_sentiment(symbol),
            Config.SENTIMENT_TTL
        )
        return value

    def _load(self, symbol: str, interval: str) -> MarketSeries:
        series = self.provider.get_series(symbol, interval, self.lookback)
        return self._usable(series)

    @staticmethod
    def _usable(series: MarketSeries) -> MarketSeries:
        if series is None or len(series) == 0:
            symbol = getattr(series, "symbol", "?")
            interval = getattr(series, "interval", "?")
            raise InsufficientMarketData(symbol, interval)
        if not series.is_usable:
            raise InsufficientMarketData(series.symbol, series.interval, "no finite prices")
        return series.cleaned()

    def _selector(self) -> StrategySelector:
        history = self.performance_history() if self.use_heuristic_ranking else None
        return StrategySelector(use_heuristic_ranking=self.use_heuristic_ranking, history=history)

    def _run_pipeline(
        self,
        series: MarketSeries,
        interval: str,
        sentiment: Optional[SentimentSnapshot]
    ) -> MarketAnalysisResult:
        prices = series.prices
        volumes = series.volumes if np.any(series.volumes) else None
        sentiment_score = sentiment.score if sentiment is not None else None

        snapshot = compute_snapshot(prices, volumes)
        regime = classify_regime(prices, volumes, rsi=snapshot.rsi, volatility=snapshot.volatility)
        selection = self._selector().select(regime, snapshot, prices, volumes, sentiment_score)
        vote = self.voter.vote(regime, snapshot, sentiment_score)
        validation = self.validator.validate(vote.direction, snapshot, regime, prices)
        timing = self.timing.plan(interval, snapshot.trend_strength, snapshot.volatility)

        return MarketAnalysisResult(
            symbol=series.symbol,
            interval=interval,
            direction=vote.direction,
            confidence=validation.confidence,
            validation=validation,
            regime=regime,
            strategy=selection,
            vote=vote,
            snapshot=snapshot,
            support_resistance=snapshot.levels.rounded(2),
            technical_scores=compute_technical_scores(snapshot),
            entry_time=timing.entry_time,
            expiry_time=timing.expiry_time,
            expiry_minutes=timing.expiry_minutes,
            countdown_seconds=timing.countdown_seconds,
            timestamp=self.clock.now(),
            sentiment=sentiment
        )

    def _analyze_single(
        self,
        symbol: str,
        interval: str,
        sentiment: Optional[SentimentSnapshot]
    ) -> MarketAnalysisResult:
        return self._run_pipeline(self._load(symbol, interval), interval, sentiment)

    def _analyze_confluence(
        self,
        symbol: str,
        interval: str,
        sentiment: Optional[SentimentSnapshot]
    ) -> ConfluenceResult:
        codes = [code for code, _ in self.timeframes]
        primary_code = interval if interval in codes else codes[0]

        analyses: List[MarketAnalysisResult] = []
        signals: List[TimeframeSignal] = []
        for code, label in self.timeframes:
            try:
                series = self._load(symbol, code)
            except InsufficientMarketData:
                if code == primary_code:
                    raise
                logger.warning(f"No data for {symbol} on {label}, leaving it out of the confluence")
                continue

            analysis = self._run_pipeline(series, code, sentiment)
            analyses.append(analysis)
            signals.append(TimeframeSignal(
                timeframe=code,
                label=label,
                direction=analysis.direction,
                confidence=analysis.confidence,
                strength=analysis.trend_strength,
                regime=analysis.regime
            ))

        score = aggregate_confluence(signals, interval)
        primary = analyses[select_primary(signals, primary_code)]

        confidence, notes = adjust_primary_confidence(
            primary.confidence,
            primary.direction,
            primary.trend_strength,
            score,
            primary.snapshot
        )
        timing = self.timing.plan(interval, primary.trend_strength, primary.snapshot.volatility)
        validation = replace(
            primary.validation,
            is_valid=confidence >= Config.VALID_CONFIDENCE,
            confidence=confidence,
            warning_level=warning_level_for(confidence)
        )
        primary = replace(
            primary,
            interval=interval,
            confidence=confidence,
            validation=validation,
            entry_time=timing.entry_time,
            expiry_time=timing.expiry_time,
            expiry_minutes=timing.expiry_minutes,
            countdown_seconds=timing.countdown_seconds,
            notes=tuple(notes)
        )

        logger.info(
            f"Confluence for {symbol}: {score.direction.value} {score.overall}% "
            f"across {len(signals)} timeframes"
        )

        return ConfluenceResult(
            primary_signal=primary,
            timeframes=tuple(signals),
            overall_confluence=score.overall,
            confluence_direction=score.direction,
            countdown_seconds=timing.countdown_seconds,
            adjustments=tuple(notes)
        )


def _summary(result: AnalysisResult) -> str:
    if isinstance(result, ConfluenceResult):
        primary = result.primary_signal
        return (
            f"{primary.direction.value} {primary.confidence}% "
            f"(confluence {result.confluence_direction.value} {result.overall_confluence}%)"
        )
    return f"{result.direction.value} {result.confidence}%"


# =============================================================================
# OUTPUT
# =============================================================================

def _market_to_dict(result: MarketAnalysisResult) -> Dict[str, Any]:
    snapshot = result.snapshot
    scores = result.technical_scores
    return {
        "symbol": result.symbol,
        "interval": result.interval,
        "direction": result.direction.value,
        "confidence": result.confidence,
        "is_valid": result.validation.is_valid,
        "warning_level": result.validation.warning_level.value,
        "reasons": list(result.validation.reasons),
        "regime": result.regime.value,
        "strategy": {
            "key": result.strategy.strategy.key,
            "name": result.strategy.strategy.name,
            "score": round(result.strategy.score, 2),
            "heuristic_confidence": result.strategy.heuristic_confidence,
        },
        "vote": {
            "bullish": round(result.vote.bullish, 2),
            "bearish": round(result.vote.bearish, 2),
            "factors": list(result.vote.factors),
        },
        "indicators": {
            "price": snapshot.price,
            "rsi": round(snapshot.rsi, 2),
            "macd": {
                "line": snapshot.macd.line,
                "signal": snapshot.macd.signal,
                "histogram": snapshot.macd.histogram,
                "previous_histogram": snapshot.macd.previous_histogram,
            },
            "bollinger": {
                "upper": snapshot.bollinger.upper,
                "middle": snapshot.bollinger.middle,
                "lower": snapshot.bollinger.lower,
                "percent_b": round(snapshot.bollinger.percent_b, 4),
            },
            "trend_strength": round(snapshot.trend_strength, 2),
            "trend_category": snapshot.trend_category.value,
            "volatility": round(snapshot.volatility, 6),
            "volume_ratio": round(snapshot.volume_ratio, 4),
        },
        "support_resistance": {
            "support": result.support_resistance.support,
            "resistance": result.support_resistance.resistance,
        },
        "technical_scores": {
            "rsi": scores.rsi,
            "macd": scores.macd,
            "bollinger": scores.bollinger,
            "volume": scores.volume,
            "price_action": scores.price_action,
            "overall": scores.overall,
        },
        "entry_time": result.entry_time.isoformat(),
        "expiry_time": result.expiry_time.isoformat(),
        "expiry_minutes": result.expiry_minutes,
        "countdown_seconds": result.countdown_seconds,
        "timestamp": result.timestamp.isoformat(),
        "sentiment": result.sentiment.to_dict() if result.sentiment is not None else None,
        "notes": list(result.notes),
    }


def result_to_dict(result: AnalysisResult) -> Dict[str, Any]:
    """JSON-friendly representation of an analysis result."""
    if isinstance(result, ConfluenceResult):
        return {
            "primary_signal": _market_to_dict(result.primary_signal),
            "timeframes": [signal.to_dict() for signal in result.timeframes],
            "overall_confluence": result.overall_confluence,
            "confluence_direction": result.confluence_direction.value,
            "countdown_seconds": result.countdown_seconds,
            "adjustments": list(result.adjustments),
        }
    return _market_to_dict(result)


def format_signal_report(result: AnalysisResult) -> str:
    """
    Format an analysis result as human-readable text.

    Args:
        result: ConfluenceResult or MarketAnalysisResult from the engine

    Returns:
        Formatted string
    """
    primary = result.primary_signal if isinstance(result, ConfluenceResult) else result
    snapshot = primary.snapshot

    lines = [
        "=" * 70,
        "SIGNAL ANALYSIS REPORT",
        "=" * 70,
        f"Symbol: {primary.symbol}",
        f"Interval: {primary.interval}",
        f"Generated: {primary.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "-" * 70,
        "SIGNAL",
        "-" * 70,
        f"Direction: {primary.direction.value}",
        f"Confidence: {primary.confidence}%",
        f"Valid: {'yes' if primary.validation.is_valid else 'no'} "
        f"(warning: {primary.validation.warning_level.value})",
        f"Entry: {primary.entry_time.strftime('%H:%M:%S')} (in {primary.countdown_seconds}s)",
        f"Expiry: {primary.expiry_time.strftime('%H:%M:%S')} ({primary.expiry_minutes} min)",
        f"Strategy: {primary.strategy.strategy.name}",
        f"Regime: {primary.regime.value}",
        "",
        "-" * 70,
        "INDICATORS",
        "-" * 70,
        f"Price: {snapshot.price:.5f}",
        f"RSI: {snapshot.rsi:.1f}",
        f"MACD Histogram: {snapshot.macd.histogram:+.6f} (prev {snapshot.macd.previous_histogram:+.6f})",
        f"Bollinger %B: {snapshot.bollinger.percent_b:.2f}",
        f"Support / Resistance: {primary.support_resistance.support:.2f} / "
        f"{primary.support_resistance.resistance:.2f}",
        f"Trend Strength: {snapshot.trend_strength:.0f} ({snapshot.trend_category.value})",
        f"Volatility: {snapshot.volatility:.3%}",
        f"Technical Score: {primary.technical_scores.overall:.1f}",
    ]

    if primary.sentiment is not None:
        lines.append(f"Sentiment: {primary.sentiment.score:+.0f} ({primary.sentiment.impact.value} impact)")

    lines.extend([
        "",
        "-" * 70,
        "VALIDATION",
        "-" * 70,
    ])
    for reason in primary.validation.reasons:
        lines.append(f"  - {reason}")

    if isinstance(result, ConfluenceResult):
        lines.extend([
            "",
            "-" * 70,
            "TIMEFRAME CONFLUENCE",
            "-" * 70,
            f"Direction: {result.confluence_direction.value}",
            f"Confluence: {result.overall_confluence}%",
            "",
        ])
        for signal in result.timeframes:
            lines.append(
                f"  {signal.label:>4}: {signal.direction.value:<4} {signal.confidence:>3}%  "
                f"strength {signal.strength:5.1f}  {signal.regime.value}"
            )
        if result.adjustments:
            lines.append("")
            lines.append("Adjustments:")
            for note in result.adjustments:
                lines.append(f"  - {note}")

    lines.append("=" * 70)
    return "\n".join(lines)
