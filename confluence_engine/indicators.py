"""
Technical Indicator Library for the Signal Analysis & Confluence Engine

INDICATOR ARCHITECTURE
    Pure, stateless calculators over a chronological close-price series
    (oldest first) and an optional parallel volume series. Every
    calculator accepts a list, numpy array or pandas Series.

    Family 1 - MOMENTUM
        - RSI (Relative Strength Index): Wilder's smoothing [0-100]

    Family 2 - TREND
        - MACD: line, signal, histogram, plus the histogram of the series
          without its latest point (momentum acceleration)
        - Simple moving averages
        - Trend strength [0-100]: MA separation, RSI deviation, directional
          consistency of recent moves and volume confirmation

    Family 3 - VOLATILITY
        - Bollinger Bands with %B
        - Normalized volatility: mean absolute relative price change

    Family 4 - LEVELS AND VOLUME
        - Support/resistance from the most recent swing points
        - Volume ratio of the latest bar to its trailing average

DEGRADATION POLICY
    Short series and zero-variance series never raise. Each calculator
    falls back to a neutral reading (RSI 50, %B 0.5, zero MACD, default
    trend strength) so downstream scoring stays finite.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from .config import Config

# Suppress warnings for cleaner output
warnings.filterwarnings('ignore', category=FutureWarning)
warnings.filterwarnings('ignore', category=RuntimeWarning)

# Module-level logger
logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


# =============================================================================
# UTILITIES
# =============================================================================

def safe_divide(a: float, b: float, default: float = 0.0) -> float:
    """Safe division handling zero and invalid values."""
    try:
        if b == 0 or not np.isfinite(b):
            return default
        result = a / b
        return default if not np.isfinite(result) else float(result)
    except (ZeroDivisionError, TypeError, ValueError):
        return default


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves away from zero."""
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def to_series(values: Optional[ArrayLike]) -> pd.Series:
    """Coerce any float sequence to a clean positional float Series."""
    if values is None:
        return pd.Series(dtype=float)
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(np.asarray(values, dtype=float))


def price_change(prices: ArrayLike, lookback: int = Config.PRICE_CHANGE_WINDOW) -> float:
    """
    Relative change from ``prices[-lookback]`` to the latest price.

    Falls back to the first available point on short series and to 0.0
    when the reference price is zero.
    """
    close = to_series(prices)
    if len(close) < 2:
        return 0.0
    reference = close.iloc[-lookback] if len(close) >= lookback else close.iloc[0]
    return safe_divide(close.iloc[-1] - reference, reference)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class TrendStrengthCategory(Enum):
    """Coarse classification of the 0-100 trend strength score."""
    VERY_STRONG = "VERY_STRONG"
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


def classify_trend_strength(strength: float) -> TrendStrengthCategory:
    """Map a trend strength score to its category."""
    if strength >= Config.TREND_VERY_STRONG:
        return TrendStrengthCategory.VERY_STRONG
    elif strength >= Config.TREND_STRONG:
        return TrendStrengthCategory.STRONG
    elif strength >= Config.TREND_MODERATE:
        return TrendStrengthCategory.MODERATE
    return TrendStrengthCategory.WEAK


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class MACDReading:
    """MACD triple plus the histogram of the series minus its latest point."""
    line: float
    signal: float
    histogram: float
    previous_histogram: float

    @property
    def accelerating_up(self) -> bool:
        return self.histogram > 0 and self.histogram > self.previous_histogram

    @property
    def accelerating_down(self) -> bool:
        return self.histogram < 0 and self.histogram < self.previous_histogram


@dataclass(frozen=True)
class BollingerReading:
    """
    Bollinger band levels at the latest bar.

    percent_b locates price inside the bands: 0 at the lower band, 1 at the
    upper band, 0.5 when the bands have zero width.
    """
    upper: float
    middle: float
    lower: float
    percent_b: float

    @property
    def bandwidth(self) -> float:
        """Band width relative to the middle band."""
        return safe_divide(self.upper - self.lower, self.middle)


@dataclass(frozen=True)
class SupportResistance:
    """Nearest support and resistance levels over the lookback window."""
    support: float
    resistance: float

    def rounded(self, digits: int = 2) -> 'SupportResistance':
        """Copy rounded for display."""
        return SupportResistance(
            support=round(self.support, digits),
            resistance=round(self.resistance, digits)
        )


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Immutable indicator readings for one price/volume series.

    Built once per analysis by ``compute_snapshot`` and shared read-only by
    the strategy selector, direction voter and validator.
    """
    price: float
    rsi: float
    macd: MACDReading
    bollinger: BollingerReading
    levels: SupportResistance
    trend_strength: float
    volatility: float
    volume_ratio: float
    price_change: float
    last_change: float

    @property
    def trend_category(self) -> TrendStrengthCategory:
        return classify_trend_strength(self.trend_strength)


@dataclass(frozen=True)
class TechnicalScores:
    """Per-family technical sub-scores, each 0 to 100."""
    rsi: float
    macd: float
    bollinger: float
    volume: float
    price_action: float
    overall: float


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================

class MomentumIndicators:
    """
    Momentum oscillator calculations.

    Indicators implemented:
    - RSI (Relative Strength Index): Wilder, 1978
    """

    @staticmethod
    def calculate_rsi(prices: ArrayLike, period: int = Config.RSI_PERIOD) -> float:
        """
        Calculate the latest Relative Strength Index using Wilder's smoothing.

        RSI = 100 - (100 / (1 + RS))
        where RS = Average Gain / Average Loss

        Parameters
        ----------
        prices : ArrayLike
            Closing prices, oldest first
        period : int
            Lookback period (default: 14)

        Returns
        -------
        float
            RSI in [0, 100]; 50 with fewer than ``period + 1`` points or
            when the series has not moved at all
        """
        if period <= 0:
            raise ValueError(f"RSI period must be positive, got {period}")

        close = to_series(prices)
        if len(close) < period + 1:
            return Config.RSI_NEUTRAL

        delta = close.diff().dropna()

        gains = delta.clip(lower=0.0)
        losses = (-delta).clip(lower=0.0)

        # Wilder's smoothing (exponential with alpha = 1/period)
        alpha = 1.0 / period
        avg_gain = float(gains.ewm(alpha=alpha, adjust=False).mean().iloc[-1])
        avg_loss = float(losses.ewm(alpha=alpha, adjust=False).mean().iloc[-1])

        if avg_loss == 0.0:
            return Config.RSI_NEUTRAL if avg_gain == 0.0 else 100.0

        rs = avg_gain / avg_loss
        rsi = 100.0 - (100.0 / (1.0 + rs))

        return float(rsi) if np.isfinite(rsi) else Config.RSI_NEUTRAL


# =============================================================================
# TREND INDICATORS
# =============================================================================

class TrendIndicators:
    """
    Trend-following calculations.

    Indicators implemented:
    - MACD: Appel, 1979
    - Simple moving average
    - Composite trend strength score
    """

    @staticmethod
    def calculate_macd(
        prices: ArrayLike,
        fast: int = Config.MACD_FAST,
        slow: int = Config.MACD_SLOW,
        signal: int = Config.MACD_SIGNAL
    ) -> Tuple[float, float, float]:
        """
        Calculate the latest MACD, Signal line, and Histogram.

        MACD = EMA(fast) - EMA(slow)
        Signal = EMA(MACD, signal_period)
        Histogram = MACD - Signal

        Returns
        -------
        Tuple[float, float, float]
            (MACD line, Signal line, Histogram); all zero when fewer than
            ``max(fast, slow) + signal`` points are available
        """
        close = to_series(prices)
        if len(close) < max(fast, slow) + signal:
            return 0.0, 0.0, 0.0

        # Constant series: EMA rounding would otherwise leak ulp-sized noise
        if close.max() == close.min():
            return 0.0, 0.0, 0.0

        ema_fast = close.ewm(span=fast, adjust=False, min_periods=fast).mean()
        ema_slow = close.ewm(span=slow, adjust=False, min_periods=slow).mean()

        macd_line = ema_fast - ema_slow
        signal_line = macd_line.ewm(span=signal, adjust=False, min_periods=signal).mean()
        histogram = macd_line - signal_line

        values = (float(macd_line.iloc[-1]), float(signal_line.iloc[-1]), float(histogram.iloc[-1]))
        if not all(np.isfinite(v) for v in values):
            return 0.0, 0.0, 0.0
        return values

    @staticmethod
    def calculate_macd_reading(prices: ArrayLike) -> MACDReading:
        """
        MACD at the latest bar together with the previous bar's histogram.

        The previous histogram is obtained by running MACD again on the
        series without its latest point.
        """
        close = to_series(prices)
        line, signal, histogram = TrendIndicators.calculate_macd(close)
        _, _, previous = TrendIndicators.calculate_macd(close.iloc[:-1])
        return MACDReading(
            line=line,
            signal=signal,
            histogram=histogram,
            previous_histogram=previous
        )

    @staticmethod
    def calculate_sma(prices: ArrayLike, period: int) -> float:
        """Simple moving average of the last ``period`` points (0.0 if too short)."""
        close = to_series(prices)
        if period <= 0 or len(close) < period:
            return 0.0
        return float(close.iloc[-period:].mean())

    @staticmethod
    def calculate_trend_strength(
        prices: ArrayLike,
        volumes: Optional[ArrayLike] = None
    ) -> float:
        """
        Composite trend strength score.

        score = 3 * |MA10 - MA50| / MA50 (in percent)
              + 0.8 * |RSI - 50|
              + 3 * (recent moves agreeing with the MA direction)
              +/- volume confirmation

        Parameters
        ----------
        prices : ArrayLike
            Closing prices
        volumes : ArrayLike, optional
            Volumes aligned with prices

        Returns
        -------
        float
            Score clipped to [0, 100]; 30 with fewer than 50 points
        """
        close = to_series(prices)
        if len(close) < Config.LONG_MA_PERIOD:
            return Config.TREND_STRENGTH_DEFAULT

        short_ma = TrendIndicators.calculate_sma(close, Config.SHORT_MA_PERIOD)
        long_ma = TrendIndicators.calculate_sma(close, Config.LONG_MA_PERIOD)

        ma_distance = abs(safe_divide(short_ma - long_ma, long_ma)) * 100.0
        rsi_deviation = abs(MomentumIndicators.calculate_rsi(close) - Config.RSI_NEUTRAL)

        trend_sign = np.sign(short_ma - long_ma)
        moves = np.sign(close.diff().iloc[-Config.TREND_CONSISTENCY_WINDOW:].to_numpy())
        consistent = int(np.sum(moves == trend_sign)) if trend_sign != 0 else 0

        score = ma_distance * 3.0 + rsi_deviation * 0.8 + consistent * 3.0

        volume = to_series(volumes)
        if trend_sign != 0 and len(volume) >= 25:
            recent = volume.iloc[-5:].mean()
            prior = volume.iloc[-25:-5].mean()
            ratio = safe_divide(recent, prior, default=1.0)
            if ratio > 1.2:
                score += Config.TREND_VOLUME_BONUS
            elif ratio < 0.8:
                score -= Config.TREND_VOLUME_BONUS

        return float(np.clip(score, 0.0, 100.0))


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================

class VolatilityIndicators:
    """
    Volatility band and dispersion calculations.

    Indicators implemented:
    - Bollinger Bands: Bollinger, 1980s
    - Normalized volatility (mean absolute relative change)
    """

    @staticmethod
    def calculate_bollinger_bands(
        prices: ArrayLike,
        period: int = Config.BB_PERIOD,
        std_dev: float = Config.BB_STD_DEV
    ) -> BollingerReading:
        """
        Calculate Bollinger Bands at the latest bar.

        Middle = SMA(close, period)
        Upper = Middle + std_dev * StdDev(close, period)
        Lower = Middle - std_dev * StdDev(close, period)
        %B = (Price - Lower) / (Upper - Lower)

        Uses population standard deviation over the available window when
        the series is shorter than ``period``. Zero-width bands give %B 0.5.
        """
        close = to_series(prices)
        if close.empty:
            return BollingerReading(upper=0.0, middle=0.0, lower=0.0, percent_b=0.5)

        window = close.iloc[-period:]
        price = float(close.iloc[-1])
        middle = float(window.mean())

        if window.max() == window.min():
            return BollingerReading(upper=middle, middle=middle, lower=middle, percent_b=0.5)

        std = float(window.std(ddof=0))
        upper = middle + std_dev * std
        lower = middle - std_dev * std

        percent_b = safe_divide(price - lower, upper - lower, default=0.5)

        return BollingerReading(upper=upper, middle=middle, lower=lower, percent_b=percent_b)

    @staticmethod
    def calculate_volatility(prices: ArrayLike, period: int = Config.VOLATILITY_PERIOD) -> float:
        """
        Mean absolute relative price change over the last ``period`` moves.

        Returns 0.0 for series with fewer than two points.
        """
        close = to_series(prices)
        if len(close) < 2:
            return 0.0

        returns = close.iloc[-(period + 1):].pct_change()
        returns = returns.replace([np.inf, -np.inf], np.nan).dropna()
        if returns.empty:
            return 0.0

        return float(returns.abs().mean())


# =============================================================================
# LEVEL AND VOLUME INDICATORS
# =============================================================================

class LevelIndicators:
    """Support and resistance detection from swing points."""

    @staticmethod
    def find_swing_points(values: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Indices of strict local maxima and minima.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            (high indices, low indices)
        """
        high_idx = argrelextrema(values, np.greater)[0]
        low_idx = argrelextrema(values, np.less)[0]
        return high_idx, low_idx

    @staticmethod
    def calculate_support_resistance(
        prices: ArrayLike,
        lookback: int = Config.SR_LOOKBACK
    ) -> SupportResistance:
        """
        Most recent swing low/high inside the lookback window.

        Falls back to the window minimum/maximum when the window holds no
        swing point. Full precision is kept; round with ``rounded()`` for
        display.
        """
        close = to_series(prices)
        if close.empty:
            return SupportResistance(support=0.0, resistance=0.0)

        window = close.iloc[-lookback:].to_numpy()
        high_idx, low_idx = LevelIndicators.find_swing_points(window)

        support = float(window[low_idx[-1]]) if len(low_idx) else float(window.min())
        resistance = float(window[high_idx[-1]]) if len(high_idx) else float(window.max())

        return SupportResistance(support=support, resistance=resistance)


class VolumeIndicators:
    """Volume confirmation measures."""

    @staticmethod
    def calculate_volume_ratio(
        volumes: Optional[ArrayLike],
        period: int = Config.VOLUME_AVG_PERIOD
    ) -> float:
        """Latest volume over the mean of the ``period`` volumes before it (1.0 if unknown)."""
        volume = to_series(volumes)
        if len(volume) < period + 1:
            return 1.0
        average = volume.iloc[-(period + 1):-1].mean()
        return safe_divide(volume.iloc[-1], average, default=1.0)


# =============================================================================
# SNAPSHOT AND TECHNICAL SCORES
# =============================================================================

def compute_snapshot(
    prices: ArrayLike,
    volumes: Optional[ArrayLike] = None
) -> IndicatorSnapshot:
    """
    Compute every indicator reading for a price/volume series.

    Parameters
    ----------
    prices : ArrayLike
        Closing prices, oldest first (non-empty)
    volumes : ArrayLike, optional
        Volumes aligned with prices

    Returns
    -------
    IndicatorSnapshot
    """
    close = to_series(prices)
    if close.empty:
        raise ValueError("Cannot compute indicators on an empty price series")

    snapshot = IndicatorSnapshot(
        price=float(close.iloc[-1]),
        rsi=MomentumIndicators.calculate_rsi(close),
        macd=TrendIndicators.calculate_macd_reading(close),
        bollinger=VolatilityIndicators.calculate_bollinger_bands(close),
        levels=LevelIndicators.calculate_support_resistance(close),
        trend_strength=TrendIndicators.calculate_trend_strength(close, volumes),
        volatility=VolatilityIndicators.calculate_volatility(close),
        volume_ratio=VolumeIndicators.calculate_volume_ratio(volumes),
        price_change=price_change(close),
        last_change=price_change(close, lookback=2),
    )

    logger.debug(
        f"Snapshot: price={snapshot.price:.4f} rsi={snapshot.rsi:.2f} "
        f"hist={snapshot.macd.histogram:.6f} %B={snapshot.bollinger.percent_b:.3f} "
        f"trend={snapshot.trend_strength:.1f} vol={snapshot.volatility:.5f}"
    )

    return snapshot


def compute_technical_scores(snapshot: IndicatorSnapshot) -> TechnicalScores:
    """
    Score each indicator family from 0 to 100.

    Extreme RSI, wide %B excursions, volume surges and large recent moves
    score high; MACD scores above 50 when line and histogram agree in sign.
    """
    rsi_score = min(100.0, abs(snapshot.rsi - Config.RSI_NEUTRAL) * 2.0)

    histogram = snapshot.macd.histogram
    if histogram * snapshot.macd.line > 0:
        macd_score = min(100.0, abs(histogram) * 1000.0 + 50.0)
    else:
        macd_score = max(0.0, 50.0 - abs(histogram) * 1000.0)

    bollinger_score = min(100.0, abs(snapshot.bollinger.percent_b - 0.5) * 200.0)
    volume_score = min(100.0, snapshot.volume_ratio * 50.0)
    price_action_score = min(100.0, abs(snapshot.price_change) * 2000.0)

    overall = (
        rsi_score * 0.2
        + macd_score * 0.2
        + bollinger_score * 0.15
        + volume_score * 0.15
        + price_action_score * 0.2
        + snapshot.trend_strength * 0.1
    )

    return TechnicalScores(
        rsi=round(rsi_score, 2),
        macd=round(macd_score, 2),
        bollinger=round(bollinger_score, 2),
        volume=round(volume_score, 2),
        price_action=round(price_action_score, 2),
        overall=round(overall, 2)
    )
