import pytest
from datetime import timedelta

from confluence_engine.sentiment import (
    MarketImpact,
    SentimentReading,
    SentimentSnapshot,
    StaticSentimentProvider,
    aggregate_sentiment,
    classify_impact,
)


@pytest.mark.parametrize("score,impact", [
    (71, MarketImpact.HIGH),
    (-80, MarketImpact.HIGH),
    (70, MarketImpact.MEDIUM),
    (41, MarketImpact.MEDIUM),
    (40, MarketImpact.LOW),
    (-16, MarketImpact.LOW),
    (15, MarketImpact.NEUTRAL),
    (0, MarketImpact.NEUTRAL),
])
def test_classify_impact(score, impact):
    assert classify_impact(score) is impact


def test_high_impact_keywords():
    assert classify_impact(5, ["quiet", "Crash"]) is MarketImpact.HIGH
    assert classify_impact(5, ["quiet", "session"]) is MarketImpact.NEUTRAL


def test_snapshot_score_is_clamped():
    assert SentimentSnapshot(score=150.0).score == 100.0
    assert SentimentSnapshot(score=-300.0).score == -100.0
    assert SentimentSnapshot(score=float("nan")).score == 0.0


def test_from_score_derives_impact():
    snapshot = SentimentSnapshot.from_score(-55.0, source_count=3)
    assert snapshot.impact is MarketImpact.MEDIUM
    assert snapshot.to_dict() == {"score": -55.0, "impact": "medium", "source_count": 3}


def test_aggregate_empty_is_neutral(fixed_clock):
    snapshot = aggregate_sentiment([], fixed_clock.now())
    assert snapshot.score == 0.0
    assert snapshot.impact is MarketImpact.NEUTRAL


def test_aggregate_decays_with_age(fixed_clock):
    now = fixed_clock.now()
    readings = [
        SentimentReading(score=80.0, timestamp=now),
        SentimentReading(score=20.0, timestamp=now - timedelta(minutes=60)),
    ]
    snapshot = aggregate_sentiment(readings, now, half_life_minutes=60)
    # weights 1.0 and 0.5: (80 + 10) / 1.5
    assert snapshot.score == 60.0
    assert snapshot.source_count == 2
    assert snapshot.impact is MarketImpact.MEDIUM


def test_aggregate_future_readings_count_fully(fixed_clock):
    now = fixed_clock.now()
    readings = [
        SentimentReading(score=-40.0, timestamp=now + timedelta(minutes=5)),
        SentimentReading(score=-20.0, timestamp=now),
    ]
    assert aggregate_sentiment(readings, now).score == -30.0


def test_aggregate_rejects_bad_half_life(fixed_clock):
    with pytest.raises(ValueError):
        aggregate_sentiment([], fixed_clock.now(), half_life_minutes=0)


def test_static_provider():
    bullish = SentimentSnapshot.from_score(60.0)
    provider = StaticSentimentProvider(default=None, per_symbol={"EURUSD": bullish})
    assert provider.get_sentiment("EURUSD") is bullish
    assert provider.get_sentiment("GBPUSD") is None
    assert provider.calls == 2
