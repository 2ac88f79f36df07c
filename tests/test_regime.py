import pytest
import numpy as np

from confluence_engine.config import SignalDirection
from confluence_engine.regime import REGIME_BIAS, MarketRegime, classify_regime


def test_short_series_is_sideways():
    assert classify_regime(np.linspace(100, 200, 49)) is MarketRegime.SIDEWAYS


def test_rising_series_is_uptrend(rising_prices):
    assert classify_regime(rising_prices) is MarketRegime.UPTREND


def test_falling_series_is_strong_downtrend(falling_prices):
    assert classify_regime(falling_prices) is MarketRegime.STRONG_DOWNTREND


def test_flat_series_is_sideways(flat_prices):
    assert classify_regime(flat_prices) is MarketRegime.SIDEWAYS


def test_choppy_series_is_volatile():
    prices = np.tile([100.0, 103.0], 30)
    assert classify_regime(prices) is MarketRegime.VOLATILE


def test_precomputed_rsi_is_used(rising_prices):
    assert classify_regime(rising_prices, rsi=50.0) is MarketRegime.SIDEWAYS


def test_every_regime_has_a_bias():
    assert set(REGIME_BIAS) == set(MarketRegime)
    for regime in MarketRegime:
        assert regime.bias in (-1, 0, 1)


@pytest.mark.parametrize("regime,call_ok,put_ok", [
    (MarketRegime.STRONG_UPTREND, True, False),
    (MarketRegime.UPTREND, True, False),
    (MarketRegime.SIDEWAYS, True, True),
    (MarketRegime.DOWNTREND, False, True),
    (MarketRegime.STRONG_DOWNTREND, False, True),
    (MarketRegime.VOLATILE, False, False),
])
def test_alignment_table(regime, call_ok, put_ok):
    assert regime.aligns_with(SignalDirection.CALL) is call_ok
    assert regime.aligns_with(SignalDirection.PUT) is put_ok


def test_strong_regimes():
    assert MarketRegime.STRONG_UPTREND.is_strong
    assert MarketRegime.STRONG_DOWNTREND.is_strong
    assert not MarketRegime.UPTREND.is_strong
