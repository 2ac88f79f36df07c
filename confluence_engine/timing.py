"""
Timing Optimizer
----------------
Entry delay aligned to the next minute boundary and expiry duration
scaled by trend strength and volatility. Time is read through an
injected Clock so callers can pin it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import Config, interval_to_minutes
from .indicators import round_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# CLOCKS
# =============================================================================

class Clock(ABC):
    """
    Abstract base class for all clocks.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Returns the current time."""


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Clock that only moves when told to.
    """

    def __init__(self, start_time: datetime):
        self._current_time = start_time

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime):
        """Jump to an instant."""
        self._current_time = dt

    def advance(self, delta: timedelta):
        """Advance the clock by a duration."""
        self._current_time += delta


# =============================================================================
# TIMING
# =============================================================================

@dataclass(frozen=True)
class SignalTiming:
    """Entry and expiry schedule for a signal."""
    entry_time: datetime
    expiry_time: datetime
    countdown_seconds: int
    expiry_minutes: int


def entry_delay_seconds(now: datetime) -> int:
    """
    Seconds until the next minute boundary.

    With 3 seconds or less remaining the entry rolls to the boundary after.
    """
    remaining = 60 - now.second
    if remaining <= Config.ENTRY_MIN_LEAD_SECONDS:
        remaining += 60
    return remaining


def expiry_minutes(interval: str, trend_strength: float, volatility: float) -> int:
    """
    Expiry duration in minutes.

    Starts from the interval's length (1, 5, 15, 30, 60, 240; Day 1440;
    Week 10080; unknown intervals 1) and applies, in order:

        trend strength > 80     x1.5
        trend strength < 40     x0.75, floor 1
        volatility > 0.015      x0.7, floor 1
        volatility < 0.005      x1.2

    Factors compose on the unrounded value; the result is rounded half up
    once at the end and never drops below 1.
    """
    minutes = float(interval_to_minutes(interval))

    if trend_strength > Config.EXPIRY_STRONG_TREND:
        minutes *= Config.EXPIRY_STRONG_FACTOR
    elif trend_strength < Config.EXPIRY_WEAK_TREND:
        minutes = max(minutes * Config.EXPIRY_WEAK_FACTOR, 1.0)

    if volatility > Config.VOLATILITY_ELEVATED:
        minutes = max(minutes * Config.EXPIRY_VOLATILE_FACTOR, 1.0)
    elif volatility < Config.VOLATILITY_LOW:
        minutes *= Config.EXPIRY_CALM_FACTOR

    return max(round_half_up(minutes), 1)


class TimingOptimizer:
    """
    Schedule entry and expiry for signals using an injected clock.

    Parameters
    ----------
    clock : Clock, optional
        Time source (defaults to SystemClock)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def plan(self, interval: str, trend_strength: float, volatility: float) -> SignalTiming:
        now = self.clock.now()
        countdown = entry_delay_seconds(now)
        minutes = expiry_minutes(interval, trend_strength, volatility)

        entry_time = (now + timedelta(seconds=countdown)).replace(microsecond=0)
        expiry_time = entry_time + timedelta(minutes=minutes)

        logger.debug(f"Timing: entry in {countdown}s, expiry {minutes}m (interval={interval})")

        return SignalTiming(
            entry_time=entry_time,
            expiry_time=expiry_time,
            countdown_seconds=countdown,
            expiry_minutes=minutes
        )
