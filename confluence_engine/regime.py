"""
Market Regime Classification
============================

Coarse six-state market regime derived from moving-average separation,
RSI position and normalized volatility.

    STRONG_UPTREND    MA10 > MA50 * 1.05 and RSI > 70
    STRONG_DOWNTREND  MA10 < MA50 * 0.95 and RSI < 30
    UPTREND           MA10 > MA50 and RSI > 55
    DOWNTREND         MA10 < MA50 and RSI < 45
    VOLATILE          volatility > 0.020
    SIDEWAYS          everything else, including series too short to judge

The classifier is total: every input maps to exactly one regime.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from .config import Config, SignalDirection
from .indicators import (
    ArrayLike,
    MomentumIndicators,
    TrendIndicators,
    VolatilityIndicators,
    to_series,
)

logger = logging.getLogger(__name__)


class MarketRegime(Enum):
    """Market regime classification."""
    STRONG_UPTREND = "STRONG_UPTREND"
    UPTREND = "UPTREND"
    SIDEWAYS = "SIDEWAYS"
    DOWNTREND = "DOWNTREND"
    STRONG_DOWNTREND = "STRONG_DOWNTREND"
    VOLATILE = "VOLATILE"

    @property
    def bias(self) -> int:
        """Directional bias: +1 bullish, -1 bearish, 0 none."""
        return REGIME_BIAS[self]

    @property
    def is_strong(self) -> bool:
        return self in (MarketRegime.STRONG_UPTREND, MarketRegime.STRONG_DOWNTREND)

    def aligns_with(self, direction: SignalDirection) -> bool:
        """
        Whether a proposed direction fits this regime.

        Uptrends accept CALL, downtrends accept PUT, sideways accepts
        either and volatile accepts neither.
        """
        return {
            MarketRegime.STRONG_UPTREND: direction is SignalDirection.CALL,
            MarketRegime.UPTREND: direction is SignalDirection.CALL,
            MarketRegime.SIDEWAYS: True,
            MarketRegime.DOWNTREND: direction is SignalDirection.PUT,
            MarketRegime.STRONG_DOWNTREND: direction is SignalDirection.PUT,
            MarketRegime.VOLATILE: False,
        }[self]


REGIME_BIAS: Dict[MarketRegime, int] = {
    MarketRegime.STRONG_UPTREND: 1,
    MarketRegime.UPTREND: 1,
    MarketRegime.SIDEWAYS: 0,
    MarketRegime.DOWNTREND: -1,
    MarketRegime.STRONG_DOWNTREND: -1,
    MarketRegime.VOLATILE: 0,
}


def classify_regime(
    prices: ArrayLike,
    volumes: Optional[ArrayLike] = None,
    rsi: Optional[float] = None,
    volatility: Optional[float] = None
) -> MarketRegime:
    """
    Classify the market regime of a price series.

    Parameters
    ----------
    prices : ArrayLike
        Closing prices, oldest first
    volumes : ArrayLike, optional
        Accepted for interface symmetry with the other calculators; the
        regime rules are price-only
    rsi, volatility : float, optional
        Precomputed readings to reuse; recomputed when omitted

    Returns
    -------
    MarketRegime
        SIDEWAYS when fewer than 50 points are available
    """
    close = to_series(prices)
    if len(close) < Config.REGIME_MIN_POINTS:
        logger.debug(f"Regime: {len(close)} points < {Config.REGIME_MIN_POINTS}, defaulting to SIDEWAYS")
        return MarketRegime.SIDEWAYS

    short_ma = TrendIndicators.calculate_sma(close, Config.SHORT_MA_PERIOD)
    long_ma = TrendIndicators.calculate_sma(close, Config.LONG_MA_PERIOD)
    if rsi is None:
        rsi = MomentumIndicators.calculate_rsi(close)
    if volatility is None:
        volatility = VolatilityIndicators.calculate_volatility(close)

    upper = long_ma * (1.0 + Config.STRONG_TREND_MA_RATIO)
    lower = long_ma * (1.0 - Config.STRONG_TREND_MA_RATIO)

    if short_ma > upper and rsi > Config.RSI_OVERBOUGHT:
        regime = MarketRegime.STRONG_UPTREND
    elif short_ma < lower and rsi < Config.RSI_OVERSOLD:
        regime = MarketRegime.STRONG_DOWNTREND
    elif short_ma > long_ma and rsi > Config.RSI_BULLISH_MOMENTUM:
        regime = MarketRegime.UPTREND
    elif short_ma < long_ma and rsi < Config.RSI_BEARISH_MOMENTUM:
        regime = MarketRegime.DOWNTREND
    elif volatility > Config.VOLATILITY_HIGH:
        regime = MarketRegime.VOLATILE
    else:
        regime = MarketRegime.SIDEWAYS

    logger.debug(
        f"Regime: {regime.value} (MA10={short_ma:.4f}, MA50={long_ma:.4f}, "
        f"RSI={rsi:.2f}, vol={volatility:.5f})"
    )
    return regime
