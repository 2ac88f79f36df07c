"""
Market Data Collaborators

The engine does not acquire market data. It asks a ``MarketDataProvider``
for a chronological close/volume series per (symbol, interval) and treats
whatever comes back as the truth. This module defines that contract, a
dictionary-backed provider for callers that already hold their series,
and a deterministic simulated provider for demos and tests.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .config import Config, interval_to_minutes
from .indicators import ArrayLike

logger = logging.getLogger(__name__)


class InsufficientMarketData(ValueError):
    """Raised when there is no usable price series to analyze."""

    def __init__(self, symbol: str, interval: str, detail: str = "empty price series"):
        self.symbol = symbol
        self.interval = interval
        super().__init__(f"Cannot analyze {symbol} ({interval}): {detail}")


@dataclass(frozen=True)
class MarketSeries:
    """
    Close prices and volumes for one symbol and interval, oldest first.

    Volumes are optional; a missing volume series becomes zeros and a
    series of a different length is aligned to the price tail.
    """
    symbol: str
    interval: str
    prices: np.ndarray
    volumes: np.ndarray

    @classmethod
    def build(
        cls,
        symbol: str,
        interval: str,
        prices: ArrayLike,
        volumes: Optional[ArrayLike] = None
    ) -> 'MarketSeries':
        price_array = np.asarray(prices if prices is not None else [], dtype=float).ravel()
        n = len(price_array)

        if volumes is None:
            volume_array = np.zeros(n)
        else:
            volume_array = np.asarray(volumes, dtype=float).ravel()
            if len(volume_array) != n:
                logger.warning(
                    f"{symbol} ({interval}): {len(volume_array)} volumes for {n} prices, "
                    f"aligning to the latest bars"
                )
                if len(volume_array) > n:
                    volume_array = volume_array[len(volume_array) - n:]
                else:
                    volume_array = np.concatenate([np.zeros(n - len(volume_array)), volume_array])

        return cls(symbol=symbol, interval=interval, prices=price_array, volumes=volume_array)

    def __len__(self) -> int:
        return len(self.prices)

    @property
    def is_usable(self) -> bool:
        """At least one finite price."""
        return len(self.prices) > 0 and bool(np.isfinite(self.prices).any())

    def tail(self, lookback: int) -> 'MarketSeries':
        """The latest ``lookback`` bars."""
        if lookback <= 0 or lookback >= len(self.prices):
            return self
        return MarketSeries(
            symbol=self.symbol,
            interval=self.interval,
            prices=self.prices[-lookback:],
            volumes=self.volumes[-lookback:]
        )

    def cleaned(self) -> 'MarketSeries':
        """Drop bars whose price is NaN or infinite."""
        mask = np.isfinite(self.prices)
        if mask.all():
            return self
        logger.warning(f"{self.symbol} ({self.interval}): dropping {int((~mask).sum())} non-finite prices")
        volumes = np.nan_to_num(self.volumes[mask], nan=0.0, posinf=0.0, neginf=0.0)
        return MarketSeries(
            symbol=self.symbol,
            interval=self.interval,
            prices=self.prices[mask],
            volumes=volumes
        )


# =============================================================================
# PROVIDERS
# =============================================================================

class MarketDataProvider(ABC):
    """
    Abstract base class for market data sources.
    """

    @abstractmethod
    def get_series(self, symbol: str, interval: str, lookback: int) -> MarketSeries:
        """Latest ``lookback`` bars for a symbol at an interval."""


class InMemoryMarketData(MarketDataProvider):
    """
    Serves series registered ahead of time.

    Lookups try the exact (symbol, interval) pair first and then the
    symbol's fallback series; unknown symbols yield an empty series.
    """

    def __init__(self):
        self._series: Dict[Tuple[str, str], MarketSeries] = {}
        self._fallback: Dict[str, MarketSeries] = {}
        self.requests = 0

    def add_series(
        self,
        symbol: str,
        prices: ArrayLike,
        volumes: Optional[ArrayLike] = None,
        interval: Optional[str] = None
    ) -> None:
        """Register a series; without ``interval`` it serves every interval."""
        if interval is None:
            self._fallback[symbol] = MarketSeries.build(symbol, "*", prices, volumes)
        else:
            self._series[(symbol, interval)] = MarketSeries.build(symbol, interval, prices, volumes)

    def get_series(self, symbol: str, interval: str, lookback: int) -> MarketSeries:
        self.requests += 1
        series = self._series.get((symbol, interval))
        if series is None:
            fallback = self._fallback.get(symbol)
            if fallback is None:
                return MarketSeries.build(symbol, interval, [])
            series = MarketSeries(symbol=symbol, interval=interval, prices=fallback.prices, volumes=fallback.volumes)
        return series.tail(lookback)


class SimulatedMarketData(MarketDataProvider):
    """
    Deterministic random-walk series for demos.

    The generator is seeded from a SHA-256 digest of (seed, symbol,
    interval), so the same request always returns the same bars. Longer
    intervals get proportionally wider steps.

    Parameters
    ----------
    seed : int
        Base seed
    drift : float
        Mean relative move per bar
    """

    def __init__(self, seed: int = 7, drift: float = 0.0002):
        self.seed = seed
        self.drift = drift

    def _rng(self, symbol: str, interval: str) -> np.random.Generator:
        digest = hashlib.sha256(f"{self.seed}|{symbol}|{interval}".encode("utf-8")).hexdigest()
        return np.random.default_rng(int(digest[:16], 16))

    @staticmethod
    def base_price(symbol: str) -> float:
        """Stable starting price in [1, 500) derived from the symbol."""
        digest = hashlib.sha256(symbol.encode("utf-8")).hexdigest()
        return 1.0 + (int(digest[:8], 16) % 49900) / 100.0

    def get_series(self, symbol: str, interval: str, lookback: int = Config.DEFAULT_LOOKBACK) -> MarketSeries:
        rng = self._rng(symbol, interval)
        n = max(int(lookback), 0)

        step = 0.002 * np.sqrt(interval_to_minutes(interval))
        returns = rng.normal(self.drift, step, size=n)
        prices = self.base_price(symbol) * np.cumprod(1.0 + returns)

        base_volume = rng.uniform(1_000, 10_000)
        volumes = base_volume * (1.0 + np.abs(returns) / step) * rng.uniform(0.8, 1.2, size=n)

        logger.debug(f"Simulated {n} bars for {symbol} ({interval})")
        return MarketSeries.build(symbol, interval, np.round(prices, 5), np.round(volumes))
