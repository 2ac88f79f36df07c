import pytest
import numpy as np
from datetime import datetime, timezone

from confluence_engine.cache import ResultCache
from confluence_engine.indicators import (
    BollingerReading,
    IndicatorSnapshot,
    MACDReading,
    SupportResistance,
)
from confluence_engine.market_data import InMemoryMarketData
from confluence_engine.timing import FixedClock


@pytest.fixture
def fixed_clock():
    return FixedClock(datetime(2025, 1, 1, 9, 15, 30, tzinfo=timezone.utc))


@pytest.fixture
def cache(fixed_clock):
    return ResultCache(clock=fixed_clock)


@pytest.fixture
def rising_prices():
    return np.linspace(100.0, 150.0, 150)


@pytest.fixture
def falling_prices():
    return np.linspace(150.0, 100.0, 150)


@pytest.fixture
def flat_prices():
    return np.full(100, 100.0)


@pytest.fixture
def steady_volumes():
    # Constant price steps, so volume proportional to the move is constant too
    return np.full(150, 1000.0)


@pytest.fixture
def provider(rising_prices, steady_volumes, flat_prices):
    data = InMemoryMarketData()
    data.add_series("RISE", rising_prices, steady_volumes)
    data.add_series("FLAT", flat_prices)
    return data


@pytest.fixture
def make_snapshot():
    """Factory for hand-built snapshots with neutral defaults."""
    def _make(**overrides):
        values = dict(
            price=100.0,
            rsi=50.0,
            macd=MACDReading(line=0.0, signal=0.0, histogram=0.0, previous_histogram=0.0),
            bollinger=BollingerReading(upper=110.0, middle=100.0, lower=90.0, percent_b=0.5),
            levels=SupportResistance(support=95.0, resistance=105.0),
            trend_strength=50.0,
            volatility=0.01,
            volume_ratio=1.0,
            price_change=0.0,
            last_change=0.0,
        )
        values.update(overrides)
        return IndicatorSnapshot(**values)
    return _make
