"""
Strategy Catalog, Rule-Based Selector and Heuristic Ranking
===========================================================

The catalog is a fixed, immutable table of named strategies. For a given
regime the selector scores every compatible strategy with a
strategy-specific rule, adds a flat base score and keeps the best one.
The selected strategy labels the signal; it never decides its direction.

A second, optional path ranks the same candidates by a heuristic
confidence blend of historical win rates, regime and volatility fit,
technical fit and sentiment alignment. Nothing here is trained.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .indicators import (
    ArrayLike,
    IndicatorSnapshot,
    safe_divide,
    round_half_up,
    to_series,
)
from .regime import MarketRegime

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

BASE_SCORE: float = 50.0
FIBONACCI_LEVELS: Tuple[float, ...] = (0.236, 0.382, 0.5, 0.618, 0.786)
FIBONACCI_WINDOW: int = 10
FIBONACCI_PROXIMITY: float = 0.01
TENKAN_PERIOD: int = 9
KIJUN_PERIOD: int = 26
PERFORMANCE_HISTORY_KEY: str = "strategy-performance-history"

HEURISTIC_WEIGHTS: Dict[str, float] = {
    "recent": 0.25,
    "overall": 0.15,
    "regime": 0.20,
    "volatility": 0.15,
    "technical": 0.15,
    "sentiment": 0.10,
}


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class StrategyDefinition:
    """Static catalog entry."""
    key: str
    name: str
    min_confidence: int
    max_confidence: int
    indicators: Tuple[str, ...]
    compatible_regimes: Tuple[MarketRegime, ...]
    preferred_timeframes: Tuple[str, ...]
    risk: str
    description: str


@dataclass(frozen=True)
class StrategySelection:
    """
    Selector output.

    scores maps every evaluated strategy key to its score, in the order
    the candidates were ranked.
    """
    strategy: StrategyDefinition
    score: float
    scores: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    reasons: Tuple[str, ...] = ()
    heuristic_confidence: Optional[int] = None


@dataclass(frozen=True)
class StrategyPerformance:
    """Historical win-rate profile of one strategy."""
    win_rate: float
    recent_win_rate: float
    volatility_performance: Mapping[str, float]
    regime_performance: Mapping[MarketRegime, float]


# =============================================================================
# STRATEGY CATALOG
# =============================================================================

_TRENDS = (
    MarketRegime.UPTREND,
    MarketRegime.DOWNTREND,
)
_STRONG_TRENDS = (
    MarketRegime.STRONG_UPTREND,
    MarketRegime.STRONG_DOWNTREND,
)

_CATALOG_ENTRIES: Tuple[StrategyDefinition, ...] = (
    StrategyDefinition(
        key="MACD_CROSSOVER",
        name="MACD Crossover",
        min_confidence=75,
        max_confidence=92,
        indicators=("MACD", "Signal Line", "EMA 200"),
        compatible_regimes=_TRENDS,
        preferred_timeframes=("5", "15", "60"),
        risk="medium",
        description="Trades MACD line crossings of its signal line",
    ),
    StrategyDefinition(
        key="RSI_DIVERGENCE",
        name="RSI Divergence",
        min_confidence=78,
        max_confidence=95,
        indicators=("RSI(14)", "Price Action", "Support/Resistance"),
        compatible_regimes=(MarketRegime.SIDEWAYS, MarketRegime.VOLATILE),
        preferred_timeframes=("1", "5", "15"),
        risk="medium",
        description="Fades moves where price and RSI disagree",
    ),
    StrategyDefinition(
        key="BOLLINGER_BREAKOUT",
        name="Bollinger Bands Breakout",
        min_confidence=80,
        max_confidence=93,
        indicators=("Bollinger Bands", "Volume", "ADX"),
        compatible_regimes=(MarketRegime.SIDEWAYS, MarketRegime.VOLATILE),
        preferred_timeframes=("1", "5"),
        risk="high",
        description="Trades band tests and squeezes",
    ),
    StrategyDefinition(
        key="SUPPORT_RESISTANCE",
        name="Key Level Reversal",
        min_confidence=82,
        max_confidence=94,
        indicators=("Support/Resistance", "Candlestick Patterns", "Volume"),
        compatible_regimes=(MarketRegime.SIDEWAYS,) + _TRENDS,
        preferred_timeframes=("5", "15", "60"),
        risk="low",
        description="Trades reactions at support and resistance",
    ),
    StrategyDefinition(
        key="TREND_FOLLOWING",
        name="Multi-Timeframe Trend",
        min_confidence=85,
        max_confidence=96,
        indicators=("EMA Stack", "ADX", "Momentum"),
        compatible_regimes=_STRONG_TRENDS + _TRENDS,
        preferred_timeframes=("15", "60", "240"),
        risk="medium",
        description="Follows the prevailing trend direction",
    ),
    StrategyDefinition(
        key="FIBONACCI_RETRACEMENT",
        name="Fibonacci Retracement",
        min_confidence=83,
        max_confidence=97,
        indicators=("Fibonacci Levels", "Price Action", "Previous Swings"),
        compatible_regimes=(MarketRegime.SIDEWAYS,) + _TRENDS,
        preferred_timeframes=("15", "60", "240"),
        risk="medium",
        description="Enters on pullbacks to Fibonacci levels of the recent swing",
    ),
    StrategyDefinition(
        key="ICHIMOKU_CLOUD",
        name="Ichimoku Cloud Analysis",
        min_confidence=87,
        max_confidence=98,
        indicators=("Kumo Cloud", "Tenkan/Kijun Cross", "Chikou Span"),
        compatible_regimes=_STRONG_TRENDS + _TRENDS,
        preferred_timeframes=("60", "240", "D"),
        risk="medium",
        description="Tenkan/Kijun equilibrium system",
    ),
)

STRATEGY_CATALOG: Mapping[str, StrategyDefinition] = MappingProxyType(
    {entry.key: entry for entry in _CATALOG_ENTRIES}
)

# Regime -> compatible strategy keys, in catalog order
REGIME_STRATEGIES: Mapping[MarketRegime, Tuple[str, ...]] = MappingProxyType({
    regime: tuple(
        key for key, definition in STRATEGY_CATALOG.items()
        if regime in definition.compatible_regimes
    )
    for regime in MarketRegime
})

# Built-in win-rate history used by the heuristic ranking
STRATEGY_PERFORMANCE_HISTORY: Mapping[str, StrategyPerformance] = MappingProxyType({
    "RSI_DIVERGENCE": StrategyPerformance(
        win_rate=0.76,
        recent_win_rate=0.71,
        volatility_performance={"low": 0.65, "medium": 0.76, "high": 0.52},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.82,
            MarketRegime.VOLATILE: 0.68,
            MarketRegime.UPTREND: 0.58,
            MarketRegime.DOWNTREND: 0.61,
            MarketRegime.STRONG_UPTREND: 0.42,
            MarketRegime.STRONG_DOWNTREND: 0.46,
        },
    ),
    "MACD_CROSSOVER": StrategyPerformance(
        win_rate=0.68,
        recent_win_rate=0.65,
        volatility_performance={"low": 0.52, "medium": 0.70, "high": 0.61},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.55,
            MarketRegime.VOLATILE: 0.62,
            MarketRegime.UPTREND: 0.78,
            MarketRegime.DOWNTREND: 0.76,
            MarketRegime.STRONG_UPTREND: 0.72,
            MarketRegime.STRONG_DOWNTREND: 0.71,
        },
    ),
    "BOLLINGER_BREAKOUT": StrategyPerformance(
        win_rate=0.72,
        recent_win_rate=0.77,
        volatility_performance={"low": 0.45, "medium": 0.68, "high": 0.89},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.51,
            MarketRegime.VOLATILE: 0.88,
            MarketRegime.UPTREND: 0.65,
            MarketRegime.DOWNTREND: 0.64,
            MarketRegime.STRONG_UPTREND: 0.59,
            MarketRegime.STRONG_DOWNTREND: 0.56,
        },
    ),
    "SUPPORT_RESISTANCE": StrategyPerformance(
        win_rate=0.79,
        recent_win_rate=0.73,
        volatility_performance={"low": 0.82, "medium": 0.75, "high": 0.48},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.89,
            MarketRegime.VOLATILE: 0.52,
            MarketRegime.UPTREND: 0.62,
            MarketRegime.DOWNTREND: 0.65,
            MarketRegime.STRONG_UPTREND: 0.51,
            MarketRegime.STRONG_DOWNTREND: 0.54,
        },
    ),
    "TREND_FOLLOWING": StrategyPerformance(
        win_rate=0.81,
        recent_win_rate=0.84,
        volatility_performance={"low": 0.72, "medium": 0.80, "high": 0.65},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.50,
            MarketRegime.VOLATILE: 0.59,
            MarketRegime.UPTREND: 0.85,
            MarketRegime.DOWNTREND: 0.83,
            MarketRegime.STRONG_UPTREND: 0.92,
            MarketRegime.STRONG_DOWNTREND: 0.90,
        },
    ),
    "FIBONACCI_RETRACEMENT": StrategyPerformance(
        win_rate=0.75,
        recent_win_rate=0.69,
        volatility_performance={"low": 0.66, "medium": 0.78, "high": 0.59},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.75,
            MarketRegime.VOLATILE: 0.61,
            MarketRegime.UPTREND: 0.72,
            MarketRegime.DOWNTREND: 0.70,
            MarketRegime.STRONG_UPTREND: 0.62,
            MarketRegime.STRONG_DOWNTREND: 0.65,
        },
    ),
    "ICHIMOKU_CLOUD": StrategyPerformance(
        win_rate=0.78,
        recent_win_rate=0.81,
        volatility_performance={"low": 0.73, "medium": 0.79, "high": 0.64},
        regime_performance={
            MarketRegime.SIDEWAYS: 0.60,
            MarketRegime.VOLATILE: 0.58,
            MarketRegime.UPTREND: 0.81,
            MarketRegime.DOWNTREND: 0.83,
            MarketRegime.STRONG_UPTREND: 0.88,
            MarketRegime.STRONG_DOWNTREND: 0.89,
        },
    ),
})


def compatible_strategies(regime: MarketRegime) -> Tuple[str, ...]:
    """
    Catalog keys compatible with a regime.

    Unknown regimes, and mappings that name no catalog strategy, fall back
    to the SIDEWAYS list.
    """
    keys = REGIME_STRATEGIES.get(regime)
    if keys is None:
        logger.warning(f"No strategy mapping for regime {regime!r}; using SIDEWAYS strategies")
        keys = REGIME_STRATEGIES[MarketRegime.SIDEWAYS]

    known = tuple(key for key in keys if key in STRATEGY_CATALOG)
    if len(known) != len(keys):
        logger.warning(f"Ignoring unknown strategy keys: {sorted(set(keys) - set(known))}")
    if not known:
        known = REGIME_STRATEGIES[MarketRegime.SIDEWAYS]
    return known


# =============================================================================
# RULE-BASED SCORING
# =============================================================================

def _score_rsi_divergence(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    deviation = abs(snapshot.rsi - 50.0)
    if snapshot.rsi < 30.0 or snapshot.rsi > 70.0:
        return deviation * 3.0
    return deviation * 1.5


def _score_macd_crossover(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    macd = snapshot.macd
    score = abs(macd.histogram) * 15.0
    if macd.previous_histogram != 0 and abs(macd.histogram) > abs(macd.previous_histogram):
        score += 10.0
    # Line sitting on its signal line: crossover imminent
    if abs(macd.line - macd.signal) < 0.0005:
        score += 15.0
    return score


def _score_bollinger_breakout(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    bands = snapshot.bollinger
    price = snapshot.price
    volatility = snapshot.volatility
    score = 0.0

    bandwidth = bands.bandwidth
    if bandwidth < 0.03:
        score += 25.0
    elif bandwidth < 0.05:
        score += 15.0

    # Distances measured in volatility units
    to_upper = abs(safe_divide(price - bands.upper, price))
    to_lower = abs(safe_divide(price - bands.lower, price))
    to_middle = abs(safe_divide(price - bands.middle, price))
    if to_upper < volatility or to_lower < volatility:
        score += 50.0
    elif to_middle < volatility / 2.0:
        score += 20.0
    return score


def _score_support_resistance(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    price = snapshot.price
    volatility = snapshot.volatility
    levels = snapshot.levels
    previous = float(close.iloc[-2]) if len(close) > 1 else price
    score = 0.0

    to_support = abs(safe_divide(price - levels.support, price))
    to_resistance = abs(safe_divide(price - levels.resistance, price))
    if to_support < volatility or to_resistance < volatility:
        score += 50.0
        if to_support < volatility and price > previous:
            score += 15.0
        elif to_resistance < volatility and price < previous:
            score += 15.0

    recent = close.iloc[-10:]
    support_tests = int((abs(recent - levels.support) / price < volatility).sum()) if price else 0
    resistance_tests = int((abs(recent - levels.resistance) / price < volatility).sum()) if price else 0
    if support_tests > 1 or resistance_tests > 1:
        score += 15.0
    return score


def _score_trend_following(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    score = snapshot.trend_strength / 2.0

    recent = close.iloc[-5:].to_numpy()
    if len(recent) > 1:
        steps = np.diff(recent)
        rising = recent[-1] > recent[0]
        if (rising and (steps >= 0).all()) or (not rising and (steps <= 0).all()):
            score += 20.0

    recent_volume = volume.iloc[-5:].to_numpy()
    if not (recent_volume[1:] < recent_volume[:-1] * 0.8).any():
        score += 15.0
    return score


def _score_fibonacci(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    window = close.iloc[-FIBONACCI_WINDOW:]
    high, low = float(window.max()), float(window.min())
    price = snapshot.price
    for level in FIBONACCI_LEVELS:
        fib_price = low + (high - low) * level
        if abs(safe_divide(price - fib_price, price, default=1.0)) < FIBONACCI_PROXIMITY:
            return 40.0
    return 0.0


def _score_ichimoku(snapshot: IndicatorSnapshot, close: pd.Series, volume: pd.Series) -> float:
    tenkan_window = close.iloc[-TENKAN_PERIOD:]
    kijun_window = close.iloc[-KIJUN_PERIOD:]
    tenkan = (tenkan_window.max() + tenkan_window.min()) / 2.0
    kijun = (kijun_window.max() + kijun_window.min()) / 2.0
    price = snapshot.price
    score = 0.0

    if abs(safe_divide(tenkan - kijun, kijun, default=1.0)) < 0.005:
        score += 30.0
    if (tenkan > kijun and price > tenkan) or (tenkan < kijun and price < tenkan):
        score += 25.0
    return score


STRATEGY_SCORERS: Mapping[str, Callable[[IndicatorSnapshot, pd.Series, pd.Series], float]] = MappingProxyType({
    "MACD_CROSSOVER": _score_macd_crossover,
    "RSI_DIVERGENCE": _score_rsi_divergence,
    "BOLLINGER_BREAKOUT": _score_bollinger_breakout,
    "SUPPORT_RESISTANCE": _score_support_resistance,
    "TREND_FOLLOWING": _score_trend_following,
    "FIBONACCI_RETRACEMENT": _score_fibonacci,
    "ICHIMOKU_CLOUD": _score_ichimoku,
})


def score_strategy(
    strategy_key: str,
    snapshot: IndicatorSnapshot,
    prices: ArrayLike,
    volumes: Optional[ArrayLike] = None
) -> float:
    """Rule score of one catalog strategy, including the flat base score."""
    close = to_series(prices)
    volume = to_series(volumes)
    if volume.empty:
        volume = pd.Series(np.zeros(len(close)))
    scorer = STRATEGY_SCORERS.get(strategy_key)
    rule_score = scorer(snapshot, close, volume) if scorer is not None else 0.0
    return BASE_SCORE + rule_score


# =============================================================================
# HEURISTIC RANKING
# =============================================================================

def volatility_bucket(volatility: float) -> str:
    """low below 1%, medium below 2%, high otherwise."""
    if volatility < 0.01:
        return "low"
    elif volatility < 0.02:
        return "medium"
    return "high"


def technical_fit(
    strategy_key: str,
    snapshot: IndicatorSnapshot,
    regime: MarketRegime,
    sma_ratio: float = 1.0
) -> float:
    """Strategy-specific technical fit in [0, 1]."""
    strength = snapshot.trend_strength
    if strategy_key == "RSI_DIVERGENCE":
        return 0.9 if snapshot.rsi < 30.0 or snapshot.rsi > 70.0 else 0.5
    elif strategy_key == "MACD_CROSSOVER":
        return min(0.9, 0.5 + abs(snapshot.macd.histogram) / 5.0)
    elif strategy_key == "BOLLINGER_BREAKOUT":
        return 0.85 if snapshot.volatility > 0.015 and snapshot.volume_ratio > 1.2 else 0.5
    elif strategy_key == "TREND_FOLLOWING":
        if strength > 75:
            return 0.95
        elif strength > 60:
            return 0.8
        elif strength > 40:
            return 0.6
        return 0.4
    elif strategy_key == "SUPPORT_RESISTANCE":
        return 0.85 if regime is MarketRegime.SIDEWAYS else 0.6
    elif strategy_key == "FIBONACCI_RETRACEMENT":
        return 0.8 if abs(sma_ratio - 1.0) > 0.03 else 0.6
    elif strategy_key == "ICHIMOKU_CLOUD":
        if strength > 70:
            return 0.9
        elif strength > 50:
            return 0.7
        return 0.5
    return 0.5


def sentiment_alignment(
    strategy_key: str,
    regime: MarketRegime,
    sentiment_score: Optional[float]
) -> float:
    """How well external sentiment suits a strategy in [0, 1]."""
    if sentiment_score is None:
        return 0.5

    if strategy_key in ("TREND_FOLLOWING", "ICHIMOKU_CLOUD"):
        if regime.bias > 0 and sentiment_score > 0:
            return 0.8 + min(sentiment_score, 100.0) / 500.0
        if regime.bias < 0 and sentiment_score < 0:
            return 0.8 + min(abs(sentiment_score), 100.0) / 500.0
        return 0.3

    if strategy_key in ("SUPPORT_RESISTANCE", "RSI_DIVERGENCE"):
        return 0.6

    return 0.5 + abs(sentiment_score) / 200.0


def heuristic_confidence(
    strategy_key: str,
    regime: MarketRegime,
    snapshot: IndicatorSnapshot,
    sentiment_score: Optional[float] = None,
    history: Optional[Mapping[str, StrategyPerformance]] = None,
    sma_ratio: float = 1.0
) -> int:
    """
    Weighted blend of historical and current-market fit, scaled to 0-100.

    Missing history entries default every rate to 0.5.
    """
    history = STRATEGY_PERFORMANCE_HISTORY if history is None else history
    performance = history.get(strategy_key)

    if performance is None:
        recent = overall = regime_rate = volatility_rate = 0.5
    else:
        recent = performance.recent_win_rate
        overall = performance.win_rate
        regime_rate = performance.regime_performance.get(regime, 0.5)
        volatility_rate = performance.volatility_performance.get(
            volatility_bucket(snapshot.volatility), 0.5
        )

    blended = (
        recent * HEURISTIC_WEIGHTS["recent"]
        + overall * HEURISTIC_WEIGHTS["overall"]
        + regime_rate * HEURISTIC_WEIGHTS["regime"]
        + volatility_rate * HEURISTIC_WEIGHTS["volatility"]
        + technical_fit(strategy_key, snapshot, regime, sma_ratio) * HEURISTIC_WEIGHTS["technical"]
        + sentiment_alignment(strategy_key, regime, sentiment_score) * HEURISTIC_WEIGHTS["sentiment"]
    )
    return round_half_up(blended * 100.0)


def rank_strategies(
    regime: MarketRegime,
    snapshot: IndicatorSnapshot,
    prices: ArrayLike,
    sentiment_score: Optional[float] = None,
    history: Optional[Mapping[str, StrategyPerformance]] = None
) -> List[Tuple[str, int]]:
    """Compatible strategies ordered by heuristic confidence, stable on catalog order."""
    close = to_series(prices)
    window = close.iloc[-50:]
    sma_ratio = safe_divide(snapshot.price, float(window.mean()) if len(window) else 0.0, default=1.0)

    ranked = [
        (key, heuristic_confidence(key, regime, snapshot, sentiment_score, history, sma_ratio))
        for key in compatible_strategies(regime)
    ]
    return sorted(ranked, key=lambda item: item[1], reverse=True)


# =============================================================================
# SELECTOR
# =============================================================================

class StrategySelector:
    """
    Pick the best-fit catalog strategy for the current regime and readings.

    Parameters
    ----------
    use_heuristic_ranking : bool
        Rank by heuristic confidence instead of rule scores
    history : Mapping[str, StrategyPerformance], optional
        Win-rate table for the heuristic ranking (built-in table if omitted)
    """

    def __init__(
        self,
        use_heuristic_ranking: bool = False,
        history: Optional[Mapping[str, StrategyPerformance]] = None
    ):
        self.use_heuristic_ranking = use_heuristic_ranking
        self.history = history

    def select(
        self,
        regime: MarketRegime,
        snapshot: IndicatorSnapshot,
        prices: ArrayLike,
        volumes: Optional[ArrayLike] = None,
        sentiment_score: Optional[float] = None
    ) -> StrategySelection:
        if self.use_heuristic_ranking:
            return self._select_heuristic(regime, snapshot, prices, sentiment_score)

        candidates = compatible_strategies(regime)
        scored = [(key, score_strategy(key, snapshot, prices, volumes)) for key in candidates]
        ranked = sorted(scored, key=lambda item: item[1], reverse=True)

        best_key, best_score = ranked[0]
        strategy = STRATEGY_CATALOG[best_key]
        reasons = [
            f"Compatible with {regime.value} regime",
            f"Highest rule score {best_score:.1f} of {len(ranked)} candidates",
        ]

        logger.debug(f"Strategy scores for {regime.value}: {dict(ranked)}")

        return StrategySelection(
            strategy=strategy,
            score=best_score,
            scores=MappingProxyType(dict(ranked)),
            reasons=tuple(reasons)
        )

    def _select_heuristic(
        self,
        regime: MarketRegime,
        snapshot: IndicatorSnapshot,
        prices: ArrayLike,
        sentiment_score: Optional[float]
    ) -> StrategySelection:
        ranked = rank_strategies(regime, snapshot, prices, sentiment_score, self.history)
        best_key, confidence = ranked[0]
        strategy = STRATEGY_CATALOG[best_key]

        history = STRATEGY_PERFORMANCE_HISTORY if self.history is None else self.history
        reasons = [f"Suited to current regime: {regime.value}"]
        performance = history.get(best_key)
        if performance is not None and performance.recent_win_rate > 0.65:
            reasons.append(f"High recent win rate ({performance.recent_win_rate:.0%})")
        if sentiment_score is not None and abs(sentiment_score) > 20:
            tone = "positive" if sentiment_score > 0 else "negative"
            reasons.append(f"Market sentiment {tone} ({sentiment_score:.0f})")

        return StrategySelection(
            strategy=strategy,
            score=float(confidence),
            scores=MappingProxyType({key: float(value) for key, value in ranked}),
            reasons=tuple(reasons),
            heuristic_confidence=confidence
        )
