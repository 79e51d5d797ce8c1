import random

import pytest

from equity_insights.providers.technical_calculator import TechnicalIndicatorCalculator, round_half_up

calc = TechnicalIndicatorCalculator


def test_round_half_up_matches_js_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(62.5) == 63
    assert round_half_up(-2.5) == -2
    assert round_half_up(0.125, 2) == 0.13


@pytest.mark.parametrize("n", [0, 1, 5, 14])
def test_rsi_short_series_is_neutral(n):
    result = calc.calculate_rsi([100.0 + i for i in range(n)])
    assert result.value == 50
    assert result.signal == "neutral"
    assert result.description == "Insufficient data"


def test_rsi_only_gains_is_overbought():
    result = calc.calculate_rsi([float(i) for i in range(1, 31)])
    # avg_loss == 0 -> RS pinned at 100
    assert result.value == 99.01
    assert result.signal == "overbought"


def test_rsi_only_losses_is_oversold():
    result = calc.calculate_rsi([float(i) for i in range(40, 10, -1)])
    assert result.value == 0
    assert result.signal == "oversold"


def test_rsi_bounds_and_classification_on_random_walks():
    rng = random.Random(7)
    for _ in range(50):
        price = 100.0
        closes = []
        for _ in range(rng.randint(15, 120)):
            price = max(1.0, price + rng.uniform(-3, 3))
            closes.append(price)

        result = calc.calculate_rsi(closes)
        assert 0 <= result.value <= 100
        if result.signal == "oversold":
            assert result.value <= 30
        if result.signal == "overbought":
            assert result.value >= 70


def test_rsi_rejects_non_positive_period():
    with pytest.raises(ValueError):
        calc.calculate_rsi([1.0, 2.0, 3.0], period=0)


def test_ema_is_seeded_with_sma():
    # seed = mean(1, 2, 3) = 2, k = 0.5
    assert calc.calculate_ema([1.0, 2.0, 3.0, 4.0, 5.0], 3) == [2.0, 3.0, 4.0]


def test_ema_short_input_uses_available_mean():
    assert calc.calculate_ema([2.0, 4.0], 3) == [3.0]
    assert calc.calculate_ema([], 3) == []


def test_macd_needs_26_closes():
    result = calc.calculate_macd([100.0] * 25)
    assert result.trend == "neutral"
    assert result.description == "Insufficient data"
    assert (result.macd_line, result.signal_line, result.histogram) == (0, 0, 0)


def test_macd_accelerating_uptrend_is_bullish():
    closes = [100 + 0.05 * i ** 2 for i in range(80)]
    result = calc.calculate_macd(closes)
    assert result.trend == "bullish"
    assert result.macd_line > 0
    assert result.histogram > 0
    assert result.description == "MACD above signal and zero line - strong bullish momentum"


def test_macd_accelerating_downtrend_is_bearish():
    closes = [500 - 0.05 * i ** 2 for i in range(80)]
    result = calc.calculate_macd(closes)
    assert result.trend == "bearish"
    assert result.macd_line < 0
    assert result.description == "MACD below signal and zero line - strong bearish momentum"


def test_support_resistance_fallback_band(make_bars):
    result = calc.calculate_support_resistance(make_bars([100.0] * 10))
    assert result.support == 95
    assert result.resistance == 105
    assert result.distance_to_support_pct == 5
    assert result.distance_to_resistance_pct == 5
    assert result.near_level == "middle"


def test_support_resistance_near_support(make_bars):
    closes = [110.0] * 10 + [118.0] * 9 + [100.0]
    result = calc.calculate_support_resistance(make_bars(closes))
    assert result.support == 99
    assert result.resistance == 119.18
    assert result.distance_to_support_pct == 1
    assert result.near_level == "support"


def test_support_resistance_uses_trailing_window(make_bars):
    # the 50 at the start is outside the 20-bar window
    closes = [50.0] + [100.0] * 24
    result = calc.calculate_support_resistance(make_bars(closes))
    assert result.support == 99


def test_support_resistance_rejects_negative_lookback(make_bars):
    with pytest.raises(ValueError):
        calc.calculate_support_resistance(make_bars([100.0] * 30), lookback=-1)


def test_52_week_flat_range():
    result = calc.calculate_52_week_position(100.0, 120.0, 120.0)
    assert result.position_pct == 50
    assert result.signal == "middle"
    assert result.description == "No 52-week range data"


def test_52_week_near_high():
    result = calc.calculate_52_week_position(190.0, 200.0, 100.0)
    assert result.position_pct == 90
    assert result.signal == "near_high"
    assert result.description == "Trading near 52-week high - 5% below high"


def test_52_week_near_low():
    result = calc.calculate_52_week_position(105.0, 200.0, 100.0)
    assert result.position_pct == 5
    assert result.signal == "near_low"
    assert result.description == "Trading near 52-week low - 5% above low"


def test_52_week_range_endpoints():
    at_low = calc.calculate_52_week_position(100.0, 200.0, 100.0)
    at_high = calc.calculate_52_week_position(200.0, 200.0, 100.0)
    assert (at_low.position_pct, at_low.signal) == (0, "near_low")
    assert (at_high.position_pct, at_high.signal) == (100, "near_high")


def test_52_week_position_is_not_clamped():
    above = calc.calculate_52_week_position(210.0, 200.0, 100.0)
    below = calc.calculate_52_week_position(90.0, 200.0, 100.0)
    assert above.position_pct == 110
    assert above.signal == "near_high"
    assert below.position_pct == -10
    assert below.signal == "near_low"


def test_52_week_middle():
    result = calc.calculate_52_week_position(150.0, 200.0, 100.0)
    assert result.position_pct == 50
    assert result.signal == "middle"
    assert result.description == "Trading in middle of 52-week range"
