"""
Sentiment Inputs
================

External sentiment enters the engine as a single score in [-100, 100]
with a coarse market-impact label. The score is an additive vote in the
direction voter and a ranking input for the heuristic strategy ranking;
the engine runs the same pipeline without it.

Providers are collaborators supplied by the caller. Two helpers cover the
common cases: a static provider for fixed readings and a recency-weighted
aggregation of individual readings.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence

from .indicators import round_half_up

logger = logging.getLogger(__name__)


HIGH_IMPACT_KEYWORDS = (
    "crash", "breakout", "surge", "plunge", "record", "bankruptcy",
    "acquisition", "merger", "scandal", "investigation", "earnings", "default",
)


class MarketImpact(Enum):
    """Expected market impact of the current sentiment."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NEUTRAL = "neutral"


def classify_impact(score: float, keywords: Iterable[str] = ()) -> MarketImpact:
    """
    Impact label for a sentiment score.

    |score| > 70 is high, > 40 medium, > 15 low, otherwise neutral. Any
    keyword containing a high-impact term forces HIGH.
    """
    magnitude = abs(score)
    has_high_impact = any(
        term in word.lower() for word in keywords for term in HIGH_IMPACT_KEYWORDS
    )

    if magnitude > 70 or has_high_impact:
        return MarketImpact.HIGH
    elif magnitude > 40:
        return MarketImpact.MEDIUM
    elif magnitude > 15:
        return MarketImpact.LOW
    return MarketImpact.NEUTRAL


@dataclass(frozen=True)
class SentimentSnapshot:
    """Aggregated sentiment for one symbol."""
    score: float
    impact: MarketImpact = MarketImpact.NEUTRAL
    source_count: int = 0

    def __post_init__(self):
        clamped = float(min(max(self.score, -100.0), 100.0))
        if math.isnan(clamped):
            clamped = 0.0
        object.__setattr__(self, "score", clamped)

    @classmethod
    def from_score(cls, score: float, source_count: int = 0) -> 'SentimentSnapshot':
        """Snapshot with the impact derived from the score."""
        return cls(score=score, impact=classify_impact(score), source_count=source_count)

    @classmethod
    def neutral(cls) -> 'SentimentSnapshot':
        return cls(score=0.0, impact=MarketImpact.NEUTRAL, source_count=0)

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "impact": self.impact.value,
            "source_count": self.source_count,
        }


@dataclass(frozen=True)
class SentimentReading:
    """One scored item (headline, post, feed tick)."""
    score: float
    timestamp: datetime
    weight: float = 1.0


def aggregate_sentiment(
    readings: Sequence[SentimentReading],
    now: datetime,
    half_life_minutes: float = 60.0
) -> SentimentSnapshot:
    """
    Blend individual readings into one snapshot.

    Each reading counts with ``weight * 0.5 ** (age / half_life)``; readings
    time-stamped in the future count as age zero. The blended score is
    rounded half up to an integer.

    Parameters
    ----------
    readings : Sequence[SentimentReading]
        Scored items in any order
    now : datetime
        Reference instant for ages
    half_life_minutes : float
        Age at which a reading counts half (must be positive)

    Returns
    -------
    SentimentSnapshot
        Neutral snapshot when there is nothing to blend
    """
    if half_life_minutes <= 0:
        raise ValueError(f"Half-life must be positive, got {half_life_minutes}")

    total = 0.0
    total_weight = 0.0
    for reading in readings:
        age_minutes = max((now - reading.timestamp).total_seconds() / 60.0, 0.0)
        decay = 0.5 ** (age_minutes / half_life_minutes)
        weight = max(reading.weight, 0.0) * decay
        total += reading.score * weight
        total_weight += weight

    if total_weight == 0.0:
        return SentimentSnapshot.neutral()

    score = round_half_up(total / total_weight)
    logger.debug(f"Aggregated {len(readings)} sentiment readings to {score}")
    return SentimentSnapshot.from_score(score, source_count=len(readings))


# =============================================================================
# PROVIDERS
# =============================================================================

class SentimentProvider(ABC):
    """
    Abstract base class for sentiment sources.
    """

    @abstractmethod
    def get_sentiment(self, symbol: str) -> Optional[SentimentSnapshot]:
        """Current sentiment for a symbol, or None when unavailable."""


class StaticSentimentProvider(SentimentProvider):
    """
    Returns preset snapshots.

    Parameters
    ----------
    default : SentimentSnapshot, optional
        Snapshot for symbols without their own entry
    per_symbol : Dict[str, SentimentSnapshot], optional
        Symbol-specific snapshots
    """

    def __init__(
        self,
        default: Optional[SentimentSnapshot] = None,
        per_symbol: Optional[Dict[str, SentimentSnapshot]] = None
    ):
        self.default = default
        self.per_symbol = dict(per_symbol or {})
        self.calls = 0

    def get_sentiment(self, symbol: str) -> Optional[SentimentSnapshot]:
        self.calls += 1
        return self.per_symbol.get(symbol, self.default)
