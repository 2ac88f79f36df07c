"""
Confluence Aggregator
=====================

Combines independent per-timeframe signals into one agreement reading and
re-adjusts the primary signal's confidence with it.

WEIGHTING
    Each timeframe votes its validator confidence for its own direction,
    weighted by

        1.8   timeframe equal to the selected interval
        1.4   timeframe strictly longer than the selected interval
        1.0   anything else

    and then scaled by (timeframe trend strength / 60).

DIRECTION
    CALL or PUT when the winning share beats the other by more than 15
    percentage points, NEUTRAL otherwise. Overall confluence is
    round(|call - put| / total * 100), capped at 95.

PRIMARY RE-ADJUSTMENT
    agreement               + min(confluence / 8, 15)
    NEUTRAL confluence      - 5
    disagreement            - min(confluence / 4, 20)
    trend > 70 and agreeing + 5
    within 1% of the level  + 5   (support for CALL, resistance for PUT)
    5-point move > 0.5%     + 3   (in the signal's direction)

    The adjusted confidence is rounded and clamped to [60, 96].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence, Tuple

from .config import Config, ConfluenceDirection, SignalDirection, interval_to_minutes
from .indicators import IndicatorSnapshot, round_half_up, safe_divide
from .regime import MarketRegime

if TYPE_CHECKING:
    from .engine import MarketAnalysisResult

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class TimeframeSignal:
    """Outcome of the single-timeframe pipeline on one horizon."""
    timeframe: str
    label: str
    direction: SignalDirection
    confidence: int
    strength: float
    regime: MarketRegime

    def to_dict(self) -> dict:
        return {
            "timeframe": self.timeframe,
            "label": self.label,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "strength": round(self.strength, 2),
            "regime": self.regime.value,
        }


@dataclass(frozen=True)
class ConfluenceScore:
    """Weighted vote totals and the agreement they imply."""
    direction: ConfluenceDirection
    overall: int
    call_votes: float
    put_votes: float
    total: float

    @property
    def call_share(self) -> float:
        return safe_divide(self.call_votes, self.total)

    @property
    def put_share(self) -> float:
        return safe_divide(self.put_votes, self.total)


@dataclass(frozen=True)
class ConfluenceResult:
    """
    Final multi-timeframe artifact.

    primary_signal is the single-timeframe analysis of the selected
    interval with its confidence already re-adjusted by the confluence.
    """
    primary_signal: 'MarketAnalysisResult'
    timeframes: Tuple[TimeframeSignal, ...]
    overall_confluence: int
    confluence_direction: ConfluenceDirection
    countdown_seconds: int
    adjustments: Tuple[str, ...] = ()


# =============================================================================
# AGGREGATION
# =============================================================================

def timeframe_weight(timeframe: str, interval: str, strength: float) -> float:
    """Vote weight of one timeframe relative to the selected interval."""
    if timeframe == interval:
        weight = Config.WEIGHT_PRIMARY
    elif interval_to_minutes(timeframe) > interval_to_minutes(interval):
        weight = Config.WEIGHT_HIGHER
    else:
        weight = Config.WEIGHT_OTHER
    return weight * (strength / Config.STRENGTH_NORMALIZER)


def aggregate_confluence(signals: Sequence[TimeframeSignal], interval: str) -> ConfluenceScore:
    """
    Weighted CALL/PUT vote across timeframes.

    Returns NEUTRAL with zero confluence when no timeframe carries any
    weight (no signals, or zero confidence and strength everywhere).
    """
    call_votes = 0.0
    put_votes = 0.0
    total = 0.0

    for signal in signals:
        vote = signal.confidence * timeframe_weight(signal.timeframe, interval, signal.strength)
        if signal.direction is SignalDirection.CALL:
            call_votes += vote
        else:
            put_votes += vote
        total += vote

    if total <= 0.0:
        return ConfluenceScore(
            direction=ConfluenceDirection.NEUTRAL,
            overall=0,
            call_votes=call_votes,
            put_votes=put_votes,
            total=total
        )

    call_share = call_votes / total
    put_share = put_votes / total

    if call_share - put_share > Config.CONFLUENCE_THRESHOLD:
        direction = ConfluenceDirection.CALL
    elif put_share - call_share > Config.CONFLUENCE_THRESHOLD:
        direction = ConfluenceDirection.PUT
    else:
        direction = ConfluenceDirection.NEUTRAL

    overall = min(round_half_up(abs(call_votes - put_votes) / total * 100.0), Config.CONFLUENCE_CAP)

    logger.debug(
        f"Confluence votes: call={call_votes:.2f} put={put_votes:.2f} "
        f"-> {direction.value} {overall}"
    )

    return ConfluenceScore(
        direction=direction,
        overall=overall,
        call_votes=call_votes,
        put_votes=put_votes,
        total=total
    )


def adjust_primary_confidence(
    confidence: float,
    direction: SignalDirection,
    strength: float,
    score: ConfluenceScore,
    snapshot: IndicatorSnapshot
) -> Tuple[int, List[str]]:
    """
    Re-adjust the primary signal's validator confidence.

    Returns
    -------
    Tuple[int, List[str]]
        (confidence in [60, 96], adjustment notes in order applied)
    """
    adjusted = float(confidence)
    notes: List[str] = []
    agrees = score.direction.agrees_with(direction)

    if agrees:
        boost = min(score.overall / Config.AGREEMENT_DIVISOR, Config.AGREEMENT_CAP)
        adjusted += boost
        notes.append(f"Timeframes agree ({score.overall}% confluence, +{boost:.1f})")
    elif score.direction is ConfluenceDirection.NEUTRAL:
        adjusted -= Config.NEUTRAL_PENALTY
        notes.append(f"Mixed timeframes (-{Config.NEUTRAL_PENALTY})")
    else:
        cut = min(score.overall / Config.DISAGREEMENT_DIVISOR, Config.DISAGREEMENT_CAP)
        adjusted -= cut
        notes.append(f"Timeframes favour {score.direction.value} (-{cut:.1f})")

    if strength > Config.VOTE_TREND_STRENGTH_MIN and agrees:
        adjusted += Config.TREND_ALIGNMENT_BONUS
        notes.append(f"Strong trend behind the confluence (+{Config.TREND_ALIGNMENT_BONUS})")

    levels = snapshot.levels
    price = snapshot.price
    level = levels.support if direction is SignalDirection.CALL else levels.resistance
    distance = safe_divide(abs(price - level), price, default=1.0)
    if distance < Config.LEVEL_ALIGNMENT_PROXIMITY:
        adjusted += Config.LEVEL_ALIGNMENT_BONUS
        level_name = "support" if direction is SignalDirection.CALL else "resistance"
        notes.append(f"Within 1% of {level_name} (+{Config.LEVEL_ALIGNMENT_BONUS})")

    move = snapshot.price_change
    if (direction is SignalDirection.CALL and move > Config.MOMENTUM_ALIGNMENT_MOVE) or \
            (direction is SignalDirection.PUT and move < -Config.MOMENTUM_ALIGNMENT_MOVE):
        adjusted += Config.MOMENTUM_ALIGNMENT_BONUS
        notes.append(f"Recent move {move:.2%} in signal direction (+{Config.MOMENTUM_ALIGNMENT_BONUS})")

    final = min(max(round_half_up(adjusted), Config.ADJUSTED_MIN_CONFIDENCE), Config.ADJUSTED_MAX_CONFIDENCE)
    logger.debug(f"Primary confidence {confidence} -> {final}")
    return final, notes


def select_primary(signals: Sequence[TimeframeSignal], interval: str) -> int:
    """Index of the timeframe matching ``interval``, else 0."""
    for index, signal in enumerate(signals):
        if signal.timeframe == interval:
            return index
    return 0
