"""
Signal Validator

Nine independent checks adjust a base confidence of 70 for a proposed
direction. Each check that fires appends one reason string, in check
order:

    1. RSI/price divergence                          +10
    2. Regime alignment                              +12 / -15
    3. Trend strength > 75 / < 40                    +8 / -10
    4. Price within 0.5% of support (CALL) or
       resistance (PUT)                              +15
    5. MACD histogram confirming and accelerating    +12
    6. Volume ratio > 1.3 / < 0.7                    +10 / -8
    7. Volatility > 2% / < 0.5%                      -min(round(v*500), 25) / +5
    8. Hammer, shooting star or engulfing pattern    +15
    9. Move > 3% already made over 10 points         -10

The result is clamped to [0, 100]; a signal is valid at 65 or above.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .config import Config, SignalDirection
from .indicators import (
    ArrayLike,
    IndicatorSnapshot,
    price_change,
    round_half_up,
    safe_divide,
    to_series,
)
from .regime import MarketRegime

logger = logging.getLogger(__name__)


class WarningLevel(Enum):
    """Severity of the warning attached to a validated signal."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def warning_level_for(confidence: int) -> WarningLevel:
    if confidence < Config.WARNING_HIGH_BELOW:
        return WarningLevel.HIGH
    elif confidence < Config.WARNING_MEDIUM_BELOW:
        return WarningLevel.MEDIUM
    elif confidence < Config.WARNING_LOW_BELOW:
        return WarningLevel.LOW
    return WarningLevel.NONE


@dataclass(frozen=True)
class ValidationOutcome:
    """Validator verdict for one proposed direction."""
    is_valid: bool
    confidence: int
    reasons: Tuple[str, ...] = ()
    warning_level: WarningLevel = WarningLevel.NONE


# =============================================================================
# PATTERN DETECTORS
# =============================================================================

def detect_rsi_divergence(prices: ArrayLike, rsi: float, direction: SignalDirection) -> bool:
    """
    Price pressing its 10-point extreme while RSI stays away from it.

    CALL: price within 0.5% of the 10-point low with RSI in (30, 45].
    PUT: price within 0.5% of the 10-point high with RSI in [55, 70).
    """
    close = to_series(prices)
    if len(close) < Config.DIVERGENCE_LOOKBACK:
        return False

    recent = close.iloc[-Config.DIVERGENCE_LOOKBACK:]
    price = close.iloc[-1]

    if direction is SignalDirection.CALL:
        return price <= recent.min() * 1.005 and 30.0 < rsi <= 45.0
    return price >= recent.max() * 0.995 and 55.0 <= rsi < 70.0


def detect_candle_pattern(prices: ArrayLike, direction: SignalDirection) -> Optional[str]:
    """
    Three-close reversal heuristic.

    Uses the two latest relative changes c0 (older) and c1 (latest).
    Needs at least five points.

    Returns
    -------
    Optional[str]
        Pattern name, or None
    """
    close = to_series(prices)
    if len(close) < Config.CANDLE_MIN_POINTS:
        return None

    p0, p1, p2 = close.iloc[-3], close.iloc[-2], close.iloc[-1]
    c0 = safe_divide(p1 - p0, p0)
    c1 = safe_divide(p2 - p1, p1)
    body = Config.CANDLE_BODY_MOVE
    doji = Config.CANDLE_DOJI_MOVE

    if direction is SignalDirection.CALL and c0 < -body:
        if abs(c1) < doji:
            return "Hammer"
        if c1 > abs(c0):
            return "Bullish engulfing"
    elif direction is SignalDirection.PUT and c0 > body:
        if abs(c1) < doji:
            return "Shooting star"
        if c1 < -abs(c0):
            return "Bearish engulfing"
    return None


# =============================================================================
# VALIDATOR
# =============================================================================

class SignalValidator:
    """
    Score a proposed direction against the current readings.

    The validator holds no state; ``validate`` is deterministic for
    identical inputs.
    """

    def validate(
        self,
        direction: SignalDirection,
        snapshot: IndicatorSnapshot,
        regime: MarketRegime,
        prices: ArrayLike,
        trend_strength: Optional[float] = None,
        volatility: Optional[float] = None
    ) -> ValidationOutcome:
        """
        Run all nine checks.

        Parameters
        ----------
        direction : SignalDirection
            Proposed direction
        snapshot : IndicatorSnapshot
            Indicator readings of ``prices``
        regime : MarketRegime
            Current regime
        prices : ArrayLike
            Close prices the snapshot was computed from
        trend_strength, volatility : float, optional
            Overrides for the snapshot readings

        Returns
        -------
        ValidationOutcome
        """
        close = to_series(prices)
        trend_strength = snapshot.trend_strength if trend_strength is None else trend_strength
        volatility = snapshot.volatility if volatility is None else volatility
        price = snapshot.price

        confidence = Config.BASE_CONFIDENCE
        reasons: List[str] = []

        # 1. RSI divergence
        if detect_rsi_divergence(close, snapshot.rsi, direction):
            confidence += Config.DIVERGENCE_BONUS
            reasons.append(f"RSI divergence supports {direction.value} (RSI {snapshot.rsi:.1f})")

        # 2. Regime alignment
        if regime.aligns_with(direction):
            confidence += Config.REGIME_ALIGNED_BONUS
            reasons.append(f"Aligned with {regime.value} regime")
        else:
            confidence -= Config.REGIME_MISALIGNED_PENALTY
            reasons.append(f"Against {regime.value} regime")

        # 3. Trend strength
        if trend_strength > Config.TREND_STRONG_THRESHOLD:
            confidence += Config.TREND_STRONG_BONUS
            reasons.append(f"Strong trend ({trend_strength:.0f})")
        elif trend_strength < Config.TREND_WEAK_THRESHOLD:
            confidence -= Config.TREND_WEAK_PENALTY
            reasons.append(f"Weak trend ({trend_strength:.0f})")

        # 4. Support/resistance proximity
        levels = snapshot.levels
        if direction is SignalDirection.CALL:
            distance = abs(safe_divide(price - levels.support, levels.support, default=1.0))
            if distance < Config.LEVEL_PROXIMITY:
                confidence += Config.LEVEL_BONUS
                reasons.append(f"Price near support ({distance:.2%})")
        else:
            distance = abs(safe_divide(levels.resistance - price, price, default=1.0))
            if distance < Config.LEVEL_PROXIMITY:
                confidence += Config.LEVEL_BONUS
                reasons.append(f"Price near resistance ({distance:.2%})")

        # 5. MACD momentum confirmation
        macd = snapshot.macd
        if direction is SignalDirection.CALL and macd.accelerating_up:
            confidence += Config.MACD_CONFIRM_BONUS
            reasons.append("MACD histogram positive and rising")
        elif direction is SignalDirection.PUT and macd.accelerating_down:
            confidence += Config.MACD_CONFIRM_BONUS
            reasons.append("MACD histogram negative and falling")

        # 6. Volume trend
        volume_ratio = snapshot.volume_ratio
        if volume_ratio > Config.VOLUME_HIGH_RATIO:
            confidence += Config.VOLUME_HIGH_BONUS
            reasons.append(f"Volume rising ({volume_ratio:.2f}x average)")
        elif volume_ratio < Config.VOLUME_LOW_RATIO:
            confidence -= Config.VOLUME_LOW_PENALTY
            reasons.append(f"Volume thin ({volume_ratio:.2f}x average)")

        # 7. Volatility filter
        if volatility > Config.VOLATILITY_HIGH:
            penalty = min(round_half_up(volatility * Config.VOLATILITY_PENALTY_SCALE), Config.VOLATILITY_PENALTY_CAP)
            confidence -= penalty
            reasons.append(f"High volatility ({volatility:.2%})")
        elif volatility < Config.VOLATILITY_LOW:
            confidence += Config.LOW_VOLATILITY_BONUS
            reasons.append(f"Low volatility ({volatility:.2%})")

        # 8. Candle pattern
        pattern = detect_candle_pattern(close, direction)
        if pattern is not None:
            confidence += Config.CANDLE_BONUS
            reasons.append(f"Candle pattern: {pattern}")

        # 9. Stale entry
        if len(close) >= Config.STALE_LOOKBACK:
            move = price_change(close, Config.STALE_LOOKBACK)
            if (direction is SignalDirection.CALL and move > Config.STALE_MOVE) or \
                    (direction is SignalDirection.PUT and move < -Config.STALE_MOVE):
                confidence -= Config.STALE_PENALTY
                reasons.append(f"Late entry: price already moved {move:.2%}")

        confidence = int(min(max(confidence, 0), 100))

        outcome = ValidationOutcome(
            is_valid=confidence >= Config.VALID_CONFIDENCE,
            confidence=confidence,
            reasons=tuple(reasons),
            warning_level=warning_level_for(confidence)
        )

        logger.debug(f"Validated {direction.value}: confidence={confidence} valid={outcome.is_valid}")

        return outcome
