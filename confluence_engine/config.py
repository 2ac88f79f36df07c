"""
Configuration Module for the Signal Analysis & Confluence Engine

This module centralizes the enumerations, protocol constants, thresholds
and weights used throughout the signal pipeline.

All "magic numbers" are defined here to ensure:
1. Single source of truth for thresholds shared by several stages
   (the volatility bands in particular must match in the validator,
   the confluence re-adjustment and the timing optimizer)
2. Easy inspection of the scoring rules without reading analysis code
3. Consistency across all modules
"""

import logging
from enum import Enum
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SignalDirection(Enum):
    """Directional call emitted by the engine."""
    CALL = "CALL"
    PUT = "PUT"

    @property
    def opposite(self) -> 'SignalDirection':
        """The other side of the trade."""
        return SignalDirection.PUT if self is SignalDirection.CALL else SignalDirection.CALL


class ConfluenceDirection(Enum):
    """Cross-timeframe agreement direction."""
    CALL = "CALL"
    PUT = "PUT"
    NEUTRAL = "NEUTRAL"

    def agrees_with(self, direction: SignalDirection) -> bool:
        """True when this confluence direction matches a signal direction."""
        return self.value == direction.value


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

class Config:
    """
    Centralized configuration for the signal pipeline.

    Values are protocol constants rather than tunables: changing one of
    them changes the meaning of every confidence score the engine emits.
    """

    # -------------------------------------------------------------------------
    # Indicator Periods
    # -------------------------------------------------------------------------
    RSI_PERIOD: int = 14
    MACD_FAST: int = 12
    MACD_SLOW: int = 26
    MACD_SIGNAL: int = 9
    BB_PERIOD: int = 20
    BB_STD_DEV: float = 2.0
    SR_LOOKBACK: int = 20
    SHORT_MA_PERIOD: int = 10
    LONG_MA_PERIOD: int = 50
    VOLATILITY_PERIOD: int = 14
    TREND_CONSISTENCY_WINDOW: int = 13
    VOLUME_AVG_PERIOD: int = 5
    PRICE_CHANGE_WINDOW: int = 5

    # -------------------------------------------------------------------------
    # Oscillator Bands
    # -------------------------------------------------------------------------
    RSI_OVERBOUGHT: float = 70.0
    RSI_OVERSOLD: float = 30.0
    RSI_BULLISH_MOMENTUM: float = 55.0
    RSI_BEARISH_MOMENTUM: float = 45.0
    RSI_NEUTRAL: float = 50.0
    BB_UPPER_ZONE: float = 0.8
    BB_LOWER_ZONE: float = 0.2

    # -------------------------------------------------------------------------
    # Volatility Bands (normalized mean absolute return)
    # -------------------------------------------------------------------------
    VOLATILITY_LOW: float = 0.005
    VOLATILITY_ELEVATED: float = 0.015
    VOLATILITY_HIGH: float = 0.020

    # -------------------------------------------------------------------------
    # Trend Strength
    # -------------------------------------------------------------------------
    TREND_STRENGTH_DEFAULT: float = 30.0        # Returned when < LONG_MA_PERIOD points
    TREND_VERY_STRONG: float = 80.0
    TREND_STRONG: float = 60.0
    TREND_MODERATE: float = 40.0
    TREND_VOLUME_BONUS: float = 5.0

    # -------------------------------------------------------------------------
    # Regime Classification
    # -------------------------------------------------------------------------
    STRONG_TREND_MA_RATIO: float = 0.05         # MA10 vs MA50 separation
    REGIME_MIN_POINTS: int = 50

    # -------------------------------------------------------------------------
    # Direction Voter Weights
    # -------------------------------------------------------------------------
    VOTE_REGIME: float = 2.0
    VOTE_RSI_EXTREME: float = 1.5
    VOTE_RSI_MOMENTUM: float = 0.5
    VOTE_MACD_ACCELERATING: float = 1.5
    VOTE_MACD_SIGN: float = 0.7
    VOTE_BB_REVERSAL: float = 0.8
    VOTE_BB_CONTINUATION: float = 1.2
    VOTE_TREND_STRENGTH: float = 1.5
    VOTE_PRICE_CHANGE: float = 1.0
    VOTE_VOLUME: float = 0.5
    VOTE_SENTIMENT_MAX: float = 1.0
    VOTE_TREND_STRENGTH_MIN: float = 70.0
    VOTE_PRICE_CHANGE_MIN: float = 0.01
    SENTIMENT_FLAT_THRESHOLD: float = 30.0
    SENTIMENT_SCALE: float = 50.0

    # -------------------------------------------------------------------------
    # Signal Validator
    # -------------------------------------------------------------------------
    BASE_CONFIDENCE: int = 70
    VALID_CONFIDENCE: int = 65
    DIVERGENCE_LOOKBACK: int = 10
    DIVERGENCE_BONUS: int = 10
    REGIME_ALIGNED_BONUS: int = 12
    REGIME_MISALIGNED_PENALTY: int = 15
    TREND_STRONG_THRESHOLD: float = 75.0
    TREND_WEAK_THRESHOLD: float = 40.0
    TREND_STRONG_BONUS: int = 8
    TREND_WEAK_PENALTY: int = 10
    LEVEL_PROXIMITY: float = 0.005
    LEVEL_BONUS: int = 15
    MACD_CONFIRM_BONUS: int = 12
    VOLUME_HIGH_RATIO: float = 1.3
    VOLUME_LOW_RATIO: float = 0.7
    VOLUME_HIGH_BONUS: int = 10
    VOLUME_LOW_PENALTY: int = 8
    VOLATILITY_PENALTY_SCALE: int = 500
    VOLATILITY_PENALTY_CAP: int = 25
    LOW_VOLATILITY_BONUS: int = 5
    CANDLE_MIN_POINTS: int = 5
    CANDLE_BODY_MOVE: float = 0.005
    CANDLE_DOJI_MOVE: float = 0.003
    CANDLE_BONUS: int = 15
    STALE_LOOKBACK: int = 10
    STALE_MOVE: float = 0.03
    STALE_PENALTY: int = 10
    WARNING_HIGH_BELOW: int = 60
    WARNING_MEDIUM_BELOW: int = 70
    WARNING_LOW_BELOW: int = 80

    # -------------------------------------------------------------------------
    # Confluence Aggregation
    # -------------------------------------------------------------------------
    TIMEFRAMES: Tuple[Tuple[str, str], ...] = (
        ("1", "1m"),
        ("5", "5m"),
        ("15", "15m"),
        ("60", "1h"),
    )
    WEIGHT_PRIMARY: float = 1.8
    WEIGHT_HIGHER: float = 1.4
    WEIGHT_OTHER: float = 1.0
    STRENGTH_NORMALIZER: float = 60.0
    CONFLUENCE_THRESHOLD: float = 0.15
    CONFLUENCE_CAP: int = 95
    AGREEMENT_DIVISOR: float = 8.0
    AGREEMENT_CAP: float = 15.0
    DISAGREEMENT_DIVISOR: float = 4.0
    DISAGREEMENT_CAP: float = 20.0
    NEUTRAL_PENALTY: int = 5
    TREND_ALIGNMENT_BONUS: int = 5
    LEVEL_ALIGNMENT_PROXIMITY: float = 0.01
    LEVEL_ALIGNMENT_BONUS: int = 5
    MOMENTUM_ALIGNMENT_MOVE: float = 0.005
    MOMENTUM_ALIGNMENT_BONUS: int = 3
    ADJUSTED_MIN_CONFIDENCE: int = 60
    ADJUSTED_MAX_CONFIDENCE: int = 96

    # -------------------------------------------------------------------------
    # Timing
    # -------------------------------------------------------------------------
    ENTRY_MIN_LEAD_SECONDS: int = 3
    EXPIRY_STRONG_TREND: float = 80.0
    EXPIRY_WEAK_TREND: float = 40.0
    EXPIRY_STRONG_FACTOR: float = 1.5
    EXPIRY_WEAK_FACTOR: float = 0.75
    EXPIRY_VOLATILE_FACTOR: float = 0.7
    EXPIRY_CALM_FACTOR: float = 1.2

    # -------------------------------------------------------------------------
    # Cache TTLs (seconds)
    # -------------------------------------------------------------------------
    ANALYSIS_TTL: float = 120.0
    SENTIMENT_TTL: float = 600.0
    PERFORMANCE_HISTORY_TTL: float = 3600.0

    # -------------------------------------------------------------------------
    # Data Requirements
    # -------------------------------------------------------------------------
    DEFAULT_LOOKBACK: int = 100


# Interval code -> expiry base minutes
INTERVAL_MINUTES: Dict[str, int] = {
    "1": 1,
    "5": 5,
    "15": 15,
    "30": 30,
    "60": 60,
    "240": 240,
    "D": 1440,
    "Day": 1440,
    "W": 10080,
    "Week": 10080,
}


def interval_to_minutes(interval: str, default: int = 1) -> int:
    """
    Resolve an interval code to its length in minutes.

    Known codes come from ``INTERVAL_MINUTES``; other numeric strings are
    read as minutes; anything else falls back to ``default``.
    """
    key = str(interval).strip()
    if key in INTERVAL_MINUTES:
        return INTERVAL_MINUTES[key]
    if key.isdigit() and int(key) > 0:
        return int(key)
    logger.warning(f"Unknown interval {interval!r}, using {default} minute(s)")
    return default
