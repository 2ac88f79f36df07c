import pytest
from datetime import datetime, timedelta, timezone

from confluence_engine.timing import (
    FixedClock,
    SystemClock,
    TimingOptimizer,
    entry_delay_seconds,
    expiry_minutes,
)


def at_second(second, microsecond=0):
    return datetime(2025, 1, 1, 9, 15, second, microsecond, tzinfo=timezone.utc)


@pytest.mark.parametrize("second,expected", [
    (0, 60),
    (30, 30),
    (56, 4),
    (57, 63),
    (58, 62),
    (59, 61),
])
def test_entry_delay(second, expected):
    assert entry_delay_seconds(at_second(second)) == expected


def test_entry_delay_rolls_over_when_three_seconds_or_less_remain():
    for second in range(60):
        remaining = 60 - second
        expected = remaining + 60 if remaining <= 3 else remaining
        assert entry_delay_seconds(at_second(second)) == expected


def test_expiry_strong_trend_then_high_volatility():
    # 5 -> x1.5 = 7.5 -> x0.7 = 5.25 -> 5
    assert expiry_minutes("5", 85.0, 0.025) == 5


@pytest.mark.parametrize("interval,trend,volatility,expected", [
    ("1", 50.0, 0.01, 1),
    ("1", 30.0, 0.02, 1),
    ("5", 85.0, 0.003, 9),
    ("15", 30.0, 0.01, 11),
    ("60", 50.0, 0.01, 60),
    ("Day", 50.0, 0.01, 1440),
    ("W", 50.0, 0.01, 10080),
    ("unknown", 50.0, 0.01, 1),
])
def test_expiry_minutes(interval, trend, volatility, expected):
    assert expiry_minutes(interval, trend, volatility) == expected


def test_fixed_clock_moves_only_when_told():
    clock = FixedClock(at_second(10))
    assert clock.now() == at_second(10)
    clock.advance(timedelta(seconds=5))
    assert clock.now() == at_second(15)
    clock.set_time(at_second(40))
    assert clock.now() == at_second(40)


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo is timezone.utc


def test_plan_aligns_entry_to_minute():
    optimizer = TimingOptimizer(FixedClock(at_second(30, 250000)))
    timing = optimizer.plan("5", 50.0, 0.01)
    assert timing.countdown_seconds == 30
    assert timing.entry_time == datetime(2025, 1, 1, 9, 16, 0, tzinfo=timezone.utc)
    assert timing.expiry_minutes == 5
    assert timing.expiry_time == timing.entry_time + timedelta(minutes=5)


def test_plan_late_in_minute(fixed_clock):
    fixed_clock.set_time(at_second(58))
    timing = TimingOptimizer(fixed_clock).plan("1", 50.0, 0.01)
    assert timing.countdown_seconds == 62
    assert timing.entry_time == datetime(2025, 1, 1, 9, 17, 0, tzinfo=timezone.utc)


def test_optimizer_defaults_to_system_clock():
    optimizer = TimingOptimizer()
    assert isinstance(optimizer.clock, SystemClock)
    assert 4 <= optimizer.plan("1", 50.0, 0.01).countdown_seconds <= 63
