import pytest
import numpy as np
import pandas as pd

from confluence_engine.indicators import (
    LevelIndicators,
    MomentumIndicators,
    TrendIndicators,
    TrendStrengthCategory,
    VolatilityIndicators,
    VolumeIndicators,
    classify_trend_strength,
    compute_snapshot,
    compute_technical_scores,
    price_change,
    round_half_up,
    safe_divide,
    to_series,
)


def test_safe_divide_defaults():
    assert safe_divide(1.0, 0.0) == 0.0
    assert safe_divide(1.0, 0.0, default=0.5) == 0.5
    assert safe_divide(1.0, float("nan"), default=2.0) == 2.0
    assert safe_divide(3.0, 2.0) == 1.5


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(5.25) == 5
    assert round_half_up(-2.5) == -3
    assert round_half_up(0.49) == 0


def test_to_series_resets_index():
    series = to_series(pd.Series([1, 2, 3], index=[10, 20, 30]))
    assert list(series.index) == [0, 1, 2]
    assert series.dtype == float
    assert to_series(None).empty


def test_price_change_falls_back_to_first_point():
    assert price_change([100.0, 110.0]) == pytest.approx(0.1)
    assert price_change([5.0]) == 0.0
    assert price_change([100.0, 101.0, 102.0, 103.0, 104.0, 105.0]) == pytest.approx(4.0 / 101.0)


# RSI

def test_rsi_flat_series_is_neutral(flat_prices):
    assert MomentumIndicators.calculate_rsi(flat_prices) == 50.0


def test_rsi_short_series_is_neutral():
    assert MomentumIndicators.calculate_rsi([1.0, 2.0, 3.0]) == 50.0


def test_rsi_extremes(rising_prices, falling_prices):
    assert MomentumIndicators.calculate_rsi(rising_prices) == 100.0
    assert MomentumIndicators.calculate_rsi(falling_prices) == 0.0


def test_rsi_stays_in_range():
    rng = np.random.default_rng(3)
    prices = 100 + np.cumsum(rng.normal(0, 1, 200))
    rsi = MomentumIndicators.calculate_rsi(prices)
    assert 0.0 <= rsi <= 100.0


def test_rsi_rejects_bad_period():
    with pytest.raises(ValueError, match="period"):
        MomentumIndicators.calculate_rsi([1.0, 2.0], period=0)


# MACD

def test_macd_short_series_is_zero():
    assert TrendIndicators.calculate_macd(np.arange(20.0)) == (0.0, 0.0, 0.0)


def test_macd_flat_series_is_zero(flat_prices):
    assert TrendIndicators.calculate_macd(flat_prices) == (0.0, 0.0, 0.0)


def test_macd_rising_series_line_positive(rising_prices):
    line, signal, _ = TrendIndicators.calculate_macd(rising_prices)
    assert line > 0
    assert signal > 0


def test_macd_reading_previous_histogram(rising_prices):
    reading = TrendIndicators.calculate_macd_reading(rising_prices)
    _, _, previous = TrendIndicators.calculate_macd(rising_prices[:-1])
    assert reading.previous_histogram == pytest.approx(previous)


# Bollinger

def test_bollinger_zero_variance(flat_prices):
    bands = VolatilityIndicators.calculate_bollinger_bands(flat_prices)
    assert bands.percent_b == 0.5
    assert bands.upper == bands.lower == bands.middle == 100.0


def test_bollinger_rising_price_near_upper_band(rising_prices):
    bands = VolatilityIndicators.calculate_bollinger_bands(rising_prices)
    assert bands.lower < bands.middle < bands.upper
    assert bands.percent_b > 0.8


# Support / resistance

def test_support_resistance_uses_latest_swings():
    prices = [1.0, 2.0, 3.0, 2.0, 1.0, 2.0, 3.0, 4.0, 3.0, 2.0]
    levels = LevelIndicators.calculate_support_resistance(prices)
    assert levels.support == 1.0
    assert levels.resistance == 4.0


def test_support_resistance_without_swings_uses_window_range(rising_prices):
    levels = LevelIndicators.calculate_support_resistance(rising_prices)
    assert levels.support == pytest.approx(rising_prices[-20])
    assert levels.resistance == pytest.approx(150.0)


def test_support_resistance_flat_collapses_to_price(flat_prices):
    levels = LevelIndicators.calculate_support_resistance(flat_prices)
    assert levels.support == levels.resistance == 100.0


def test_support_resistance_rounding():
    levels = LevelIndicators.calculate_support_resistance([1.23456, 2.34567, 1.5])
    rounded = levels.rounded(2)
    assert rounded.resistance == 2.35


# Trend strength, volatility, volume

def test_trend_strength_short_series_default():
    assert TrendIndicators.calculate_trend_strength(np.arange(1.0, 30.0)) == 30.0


def test_trend_strength_strong_trends(rising_prices, falling_prices):
    assert TrendIndicators.calculate_trend_strength(rising_prices) > 70
    assert TrendIndicators.calculate_trend_strength(falling_prices) > 70


def test_trend_strength_flat_is_zero(flat_prices):
    assert TrendIndicators.calculate_trend_strength(flat_prices) == 0.0


def test_trend_strength_volume_confirmation(rising_prices):
    base = TrendIndicators.calculate_trend_strength(rising_prices[:-60])
    volumes = np.concatenate([np.full(85, 1000.0), np.full(5, 2000.0)])
    boosted = TrendIndicators.calculate_trend_strength(rising_prices[:-60], volumes)
    assert boosted == pytest.approx(min(base + 5.0, 100.0))


def test_classify_trend_strength():
    assert classify_trend_strength(85) is TrendStrengthCategory.VERY_STRONG
    assert classify_trend_strength(60) is TrendStrengthCategory.STRONG
    assert classify_trend_strength(45) is TrendStrengthCategory.MODERATE
    assert classify_trend_strength(10) is TrendStrengthCategory.WEAK


def test_volatility():
    assert VolatilityIndicators.calculate_volatility([100.0]) == 0.0
    assert VolatilityIndicators.calculate_volatility([100.0, 101.0]) == pytest.approx(0.01)


def test_volume_ratio():
    assert VolumeIndicators.calculate_volume_ratio([1, 1, 1, 1, 1, 2]) == pytest.approx(2.0)
    assert VolumeIndicators.calculate_volume_ratio([1, 2]) == 1.0
    assert VolumeIndicators.calculate_volume_ratio([0, 0, 0, 0, 0, 5]) == 1.0
    assert VolumeIndicators.calculate_volume_ratio(None) == 1.0


# Snapshot and scores

def test_compute_snapshot_rejects_empty():
    with pytest.raises(ValueError):
        compute_snapshot([])


def test_flat_snapshot_is_finite(flat_prices):
    snapshot = compute_snapshot(flat_prices)
    assert snapshot.rsi == 50.0
    assert snapshot.bollinger.percent_b == 0.5
    assert snapshot.macd.histogram == 0.0
    assert snapshot.volatility == 0.0
    assert snapshot.price_change == 0.0
    values = [snapshot.rsi, snapshot.trend_strength, snapshot.volatility, snapshot.volume_ratio]
    assert all(np.isfinite(values))


def test_technical_scores_flat(flat_prices):
    scores = compute_technical_scores(compute_snapshot(flat_prices))
    assert scores.rsi == 0.0
    assert scores.macd == 50.0
    assert scores.bollinger == 0.0
    assert scores.volume == 50.0
    assert scores.overall == pytest.approx(17.5)


def test_technical_scores_bounded(rising_prices, steady_volumes):
    scores = compute_technical_scores(compute_snapshot(rising_prices, steady_volumes))
    for value in (scores.rsi, scores.macd, scores.bollinger, scores.volume, scores.price_action, scores.overall):
        assert 0.0 <= value <= 100.0
    assert scores.rsi == 100.0
