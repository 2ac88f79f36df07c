"""
Direction Voter

Weighted bullish/bearish tally over the regime, oscillator readings,
recent price action, volume and optional sentiment. The side with the
larger tally wins; an exact tie resolves to PUT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import Config, SignalDirection
from .indicators import IndicatorSnapshot
from .regime import MarketRegime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectionVote:
    """Tally behind a direction decision."""
    direction: SignalDirection
    bullish: float
    bearish: float
    factors: Tuple[str, ...] = ()

    @property
    def margin(self) -> float:
        return self.bullish - self.bearish


class DirectionVoter:
    """
    Combine indicator readings into a CALL/PUT decision.

    Contributions (bullish or bearish):
        Regime bias                 2.0
        RSI < 30 or > 70 (reversal) 1.5
        RSI 55-70 or 30-45 (trend)  0.5
        MACD accelerating           1.5, sign only 0.7
        %B > 0.8 or < 0.2 (reversal) 0.8, mid-zone continuation 1.2
        Trend strength > 70         1.5 toward the regime bias
        5-point move > 1%           1.0
        Volume above 5-bar average  0.5 toward the latest move
        Sentiment                   1.0 beyond |30|, else score / 50
    """

    def vote(
        self,
        regime: MarketRegime,
        snapshot: IndicatorSnapshot,
        sentiment_score: Optional[float] = None
    ) -> DirectionVote:
        """
        Tally the votes for one snapshot.

        Parameters
        ----------
        regime : MarketRegime
            Current regime
        snapshot : IndicatorSnapshot
            Indicator readings
        sentiment_score : float, optional
            External sentiment in [-100, 100]
        """
        bullish = 0.0
        bearish = 0.0
        factors: List[str] = []

        # Regime
        bias = regime.bias
        if bias > 0:
            bullish += Config.VOTE_REGIME
            factors.append(f"{regime.value} regime (+{Config.VOTE_REGIME} bullish)")
        elif bias < 0:
            bearish += Config.VOTE_REGIME
            factors.append(f"{regime.value} regime (+{Config.VOTE_REGIME} bearish)")

        # RSI
        rsi = snapshot.rsi
        if rsi < Config.RSI_OVERSOLD:
            bullish += Config.VOTE_RSI_EXTREME
            factors.append(f"RSI oversold ({rsi:.1f})")
        elif rsi > Config.RSI_OVERBOUGHT:
            bearish += Config.VOTE_RSI_EXTREME
            factors.append(f"RSI overbought ({rsi:.1f})")
        elif rsi > Config.RSI_BULLISH_MOMENTUM:
            bullish += Config.VOTE_RSI_MOMENTUM
            factors.append(f"RSI bullish momentum ({rsi:.1f})")
        elif rsi < Config.RSI_BEARISH_MOMENTUM:
            bearish += Config.VOTE_RSI_MOMENTUM
            factors.append(f"RSI bearish momentum ({rsi:.1f})")

        # MACD
        macd = snapshot.macd
        if macd.histogram > 0:
            weight = Config.VOTE_MACD_ACCELERATING if macd.accelerating_up else Config.VOTE_MACD_SIGN
            bullish += weight
            factors.append(f"MACD histogram positive (+{weight})")
        elif macd.histogram < 0:
            weight = Config.VOTE_MACD_ACCELERATING if macd.accelerating_down else Config.VOTE_MACD_SIGN
            bearish += weight
            factors.append(f"MACD histogram negative (+{weight})")

        # Bollinger %B
        percent_b = snapshot.bollinger.percent_b
        if percent_b > Config.BB_UPPER_ZONE:
            bearish += Config.VOTE_BB_REVERSAL
            factors.append(f"Price near upper band (%B={percent_b:.2f})")
        elif percent_b < Config.BB_LOWER_ZONE:
            bullish += Config.VOTE_BB_REVERSAL
            factors.append(f"Price near lower band (%B={percent_b:.2f})")
        elif percent_b > 0.5:
            bullish += Config.VOTE_BB_CONTINUATION
            factors.append(f"Price above middle band (%B={percent_b:.2f})")
        elif percent_b < 0.5:
            bearish += Config.VOTE_BB_CONTINUATION
            factors.append(f"Price below middle band (%B={percent_b:.2f})")

        # Trend strength
        if snapshot.trend_strength > Config.VOTE_TREND_STRENGTH_MIN:
            if bias > 0:
                bullish += Config.VOTE_TREND_STRENGTH
                factors.append(f"Strong trend ({snapshot.trend_strength:.0f}) with bullish regime")
            elif bias < 0:
                bearish += Config.VOTE_TREND_STRENGTH
                factors.append(f"Strong trend ({snapshot.trend_strength:.0f}) with bearish regime")

        # Recent price action
        change = snapshot.price_change
        if change > Config.VOTE_PRICE_CHANGE_MIN:
            bullish += Config.VOTE_PRICE_CHANGE
            factors.append(f"Recent rise {change:.2%}")
        elif change < -Config.VOTE_PRICE_CHANGE_MIN:
            bearish += Config.VOTE_PRICE_CHANGE
            factors.append(f"Recent drop {change:.2%}")

        # Volume
        if snapshot.volume_ratio > 1.0:
            if snapshot.last_change > 0:
                bullish += Config.VOTE_VOLUME
                factors.append("Above-average volume on an up move")
            elif snapshot.last_change < 0:
                bearish += Config.VOTE_VOLUME
                factors.append("Above-average volume on a down move")

        # Sentiment
        if sentiment_score is not None and sentiment_score != 0:
            if abs(sentiment_score) > Config.SENTIMENT_FLAT_THRESHOLD:
                weight = Config.VOTE_SENTIMENT_MAX
            else:
                weight = abs(sentiment_score) / Config.SENTIMENT_SCALE
            if sentiment_score > 0:
                bullish += weight
            else:
                bearish += weight
            factors.append(f"Sentiment {sentiment_score:+.0f} (+{weight:.2f})")

        # Strict comparison: ties go to PUT
        direction = SignalDirection.CALL if bullish > bearish else SignalDirection.PUT

        logger.debug(f"Direction vote: {direction.value} (bullish={bullish:.2f}, bearish={bearish:.2f})")

        return DirectionVote(
            direction=direction,
            bullish=bullish,
            bearish=bearish,
            factors=tuple(factors)
        )
