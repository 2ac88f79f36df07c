import dataclasses
import json
import pytest
import numpy as np
from datetime import timedelta

from confluence_engine.cache import generate_key
from confluence_engine.config import ConfluenceDirection, SignalDirection
from confluence_engine.confluence import ConfluenceResult
from confluence_engine.engine import (
    MarketAnalysisResult,
    SignalEngine,
    format_signal_report,
    result_to_dict,
)
from confluence_engine.market_data import InMemoryMarketData, InsufficientMarketData, SimulatedMarketData
from confluence_engine.regime import MarketRegime
from confluence_engine.sentiment import SentimentSnapshot, StaticSentimentProvider
from confluence_engine.strategies import PERFORMANCE_HISTORY_KEY
from confluence_engine.validator import WarningLevel, warning_level_for


@pytest.fixture
def signals():
    return []


@pytest.fixture
def engine(provider, fixed_clock, signals):
    return SignalEngine(provider, clock=fixed_clock, on_signal=signals.append)


def test_full_analysis_returns_confluence(engine):
    result = engine.analyze("RISE")
    assert isinstance(result, ConfluenceResult)
    assert [signal.timeframe for signal in result.timeframes] == ["1", "5", "15", "60"]
    assert 0 <= result.overall_confluence <= 95
    assert 60 <= result.primary_signal.confidence <= 96


def test_rising_market_agrees_everywhere(engine):
    result = engine.analyze("RISE")
    assert all(signal.direction is SignalDirection.CALL for signal in result.timeframes)
    assert result.confluence_direction is ConfluenceDirection.CALL
    assert result.overall_confluence == 95
    assert result.primary_signal.direction is SignalDirection.CALL
    assert result.primary_signal.confidence == 96
    assert result.primary_signal.validation.confidence == 96
    assert result.adjustments == result.primary_signal.notes


def test_flat_market_is_neutral(engine):
    result = engine.analyze("FLAT")
    assert result.confluence_direction is ConfluenceDirection.NEUTRAL
    assert result.overall_confluence == 0
    # 92 from the validator, -5 for mixed timeframes, +5 sitting on resistance
    assert result.primary_signal.confidence == 92


def test_repeated_analysis_is_served_from_cache(engine, provider, signals):
    first = engine.analyze("RISE")
    requests = provider.requests
    second = engine.analyze("RISE")
    assert second is first
    assert provider.requests == requests == 4
    assert signals == [first]


def test_cached_result_expires(engine, provider, fixed_clock, signals):
    first = engine.analyze("RISE")
    fixed_clock.advance(timedelta(seconds=121))
    second = engine.analyze("RISE")
    assert second is not first
    assert provider.requests == 8
    assert len(signals) == 2
    assert second.primary_signal.timestamp == fixed_clock.now()


def test_sentiment_is_part_of_the_key(engine, signals):
    plain = engine.analyze("RISE")
    bullish = engine.analyze("RISE", sentiment=SentimentSnapshot.from_score(60.0))
    assert bullish is not plain
    assert bullish.primary_signal.sentiment.score == 60.0
    assert len(signals) == 2


def test_single_timeframe_analysis(engine):
    result = engine.analyze("RISE", interval="5", multi_timeframe=False)
    assert isinstance(result, MarketAnalysisResult)
    assert result.interval == "5"
    assert result.regime is MarketRegime.UPTREND
    assert engine.cache.contains(generate_key("market-analysis", symbol="RISE", interval="5"))


def test_unknown_symbol_raises(engine, signals):
    with pytest.raises(InsufficientMarketData):
        engine.analyze("NOPE")
    assert signals == []
    assert engine.cache.stats().size == 0


def test_non_finite_series_raises(fixed_clock):
    data = InMemoryMarketData()
    data.add_series("NAN", np.full(60, np.nan))
    engine = SignalEngine(data, clock=fixed_clock)
    with pytest.raises(InsufficientMarketData, match="no finite prices"):
        engine.analyze("NAN", multi_timeframe=False)


def test_missing_secondary_timeframes_are_skipped(fixed_clock, rising_prices):
    data = InMemoryMarketData()
    data.add_series("ONLY", rising_prices, interval="1")
    result = SignalEngine(data, clock=fixed_clock).analyze("ONLY")
    assert [signal.timeframe for signal in result.timeframes] == ["1"]
    assert result.confluence_direction is ConfluenceDirection.CALL


def test_missing_primary_timeframe_raises(fixed_clock, rising_prices):
    data = InMemoryMarketData()
    data.add_series("ONLY", rising_prices, interval="5")
    with pytest.raises(InsufficientMarketData):
        SignalEngine(data, clock=fixed_clock).analyze("ONLY", interval="1")


def test_interval_outside_timeframes_replans_timing(engine):
    result = engine.analyze("RISE", interval="240")
    primary = result.primary_signal
    assert primary.interval == "240"
    # 240 -> x1.5 strong trend -> x1.2 calm market
    assert primary.expiry_minutes == 432
    assert primary.expiry_time == primary.entry_time + timedelta(minutes=432)


def test_sentiment_provider_is_cached(provider, fixed_clock):
    sentiment = StaticSentimentProvider(default=SentimentSnapshot.from_score(50.0))
    engine = SignalEngine(provider, sentiment_provider=sentiment, clock=fixed_clock)
    first = engine.analyze("RISE")
    engine.analyze("RISE", multi_timeframe=False)
    assert sentiment.calls == 1
    assert first.primary_signal.sentiment.score == 50.0


def test_explicit_sentiment_skips_provider(provider, fixed_clock):
    sentiment = StaticSentimentProvider(default=SentimentSnapshot.from_score(50.0))
    engine = SignalEngine(provider, sentiment_provider=sentiment, clock=fixed_clock)
    engine.analyze_market("RISE", sentiment=SentimentSnapshot.neutral())
    assert sentiment.calls == 0


def test_heuristic_ranking(provider, fixed_clock):
    engine = SignalEngine(provider, clock=fixed_clock, use_heuristic_ranking=True)
    result = engine.analyze_market("RISE")
    assert result.strategy.heuristic_confidence is not None
    assert engine.cache.contains(PERFORMANCE_HISTORY_KEY)


def test_analyze_series_rising(fixed_clock, rising_prices, steady_volumes):
    result = SignalEngine(InMemoryMarketData(), clock=fixed_clock).analyze_series(rising_prices, steady_volumes)
    assert result.symbol == "SERIES"
    assert result.regime is MarketRegime.UPTREND
    assert result.direction is SignalDirection.CALL
    assert result.confidence >= 70
    assert result.is_valid


def test_analyze_series_flat(fixed_clock, flat_prices):
    result = SignalEngine(InMemoryMarketData(), clock=fixed_clock).analyze_series(flat_prices)
    assert result.regime is MarketRegime.SIDEWAYS
    assert result.direction is SignalDirection.PUT
    assert result.confidence == 92


def test_analyze_series_empty(fixed_clock):
    with pytest.raises(InsufficientMarketData):
        SignalEngine(InMemoryMarketData(), clock=fixed_clock).analyze_series([])


def test_result_serialization_and_report(engine):
    result = engine.analyze("RISE", sentiment=SentimentSnapshot.from_score(-20.0))
    payload = json.loads(json.dumps(result_to_dict(result)))
    assert payload["confluence_direction"] == "CALL"
    assert payload["primary_signal"]["sentiment"]["score"] == -20.0
    assert len(payload["timeframes"]) == 4

    report = format_signal_report(result)
    for heading in ("SIGNAL ANALYSIS REPORT", "INDICATORS", "VALIDATION", "TIMEFRAME CONFLUENCE", "Adjustments:"):
        assert heading in report


def test_single_result_report_has_no_confluence(engine):
    report = format_signal_report(engine.analyze("FLAT", multi_timeframe=False))
    assert "SIGNAL ANALYSIS REPORT" in report
    assert "TIMEFRAME CONFLUENCE" not in report


@pytest.mark.parametrize("kwargs", [{"lookback": 0}, {"timeframes": ()}])
def test_invalid_engine_configuration(provider, kwargs):
    with pytest.raises(ValueError):
        SignalEngine(provider, **kwargs)


def test_primary_verdict_follows_adjusted_confidence(fixed_clock, flat_prices, rising_prices, steady_volumes):
    data = InMemoryMarketData()
    data.add_series("MIX", flat_prices, interval="1")
    for code in ("5", "15", "60"):
        data.add_series("MIX", rising_prices, steady_volumes, interval=code)

    result = SignalEngine(data, clock=fixed_clock).analyze("MIX")
    primary = result.primary_signal

    assert result.confluence_direction is ConfluenceDirection.CALL
    assert primary.direction is SignalDirection.PUT
    # 92 from the validator, -20 against the confluence, +5 sitting on resistance
    assert primary.confidence == 77
    assert primary.validation.confidence == 77
    assert primary.validation.warning_level is WarningLevel.LOW
    assert primary.is_valid


@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize("symbol", ["EURUSD", "AAPL", "BTCUSD"])
def test_primary_verdict_is_consistent(fixed_clock, seed, symbol):
    result = SignalEngine(SimulatedMarketData(seed=seed), clock=fixed_clock).analyze(symbol)
    primary = result.primary_signal
    assert primary.validation.confidence == primary.confidence
    assert primary.validation.warning_level is warning_level_for(primary.confidence)
    assert primary.is_valid == (primary.confidence >= 65)


def test_cached_results_are_immutable(engine):
    result = engine.analyze("RISE")
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.overall_confluence = 0
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.primary_signal.confidence = 0
    assert isinstance(result.timeframes, tuple)
    assert isinstance(result.adjustments, tuple)
    assert isinstance(result.primary_signal.vote.factors, tuple)
    with pytest.raises(TypeError):
        result.primary_signal.strategy.scores["TREND_FOLLOWING"] = 0.0
    assert engine.analyze("RISE") is result
