import math

import pytest

from coinpulse.engines import technical_analysis as ta
from coinpulse.engines.technical_analysis import InsufficientDataError


def test_sma_is_mean_of_last_period_values():
    values = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]
    assert ta.sma(values, 3) == pytest.approx((4 + 5 + 6) / 3)
    assert ta.sma(values, 6) == pytest.approx(3.5)


def test_sma_rejects_short_series():
    with pytest.raises(InsufficientDataError):
        ta.sma([1.0, 2.0], 3)
    with pytest.raises(ValueError):
        ta.sma([1.0, 2.0], 0)


def test_ema_on_constant_series_is_constant():
    values = [42.5] * 30
    assert ta.ema_value(values, 9) == pytest.approx(42.5)
    assert len(ta.ema(values, 9)) == 30 - 9 + 1


def test_ema_seed_and_recurrence():
    values = [1.0, 2.0, 3.0, 4.0]
    series = ta.ema(values, 3)
    k = 2.0 / 4
    assert series[0] == pytest.approx(2.0)
    assert series[1] == pytest.approx(4.0 * k + 2.0 * (1 - k))


def test_rsi_monotonic_series():
    rising = [float(i) for i in range(1, 40)]
    falling = list(reversed(rising))
    assert ta.rsi(rising, 14) == 100.0
    assert ta.rsi(falling, 14) == pytest.approx(0.0)


def test_rsi_requires_period_plus_one_closes():
    with pytest.raises(InsufficientDataError):
        ta.rsi([1.0] * 14, 14)


def test_macd_rejects_fast_not_below_slow():
    closes = [float(i) for i in range(100)]
    with pytest.raises(ValueError):
        ta.macd(closes, 26, 26, 9)
    with pytest.raises(ValueError):
        ta.macd(closes, 30, 26, 9)


def test_macd_requires_slow_plus_signal_closes():
    with pytest.raises(InsufficientDataError):
        ta.macd([1.0] * 34, 12, 26, 9)
    result = ta.macd([1.0] * 35, 12, 26, 9)
    assert result.macd == pytest.approx(0.0)
    assert result.histogram == pytest.approx(result.macd - result.signal)


def test_bollinger_zero_multiplier_collapses_bands():
    closes = [float(i % 7) for i in range(40)]
    bb = ta.bollinger_bands(closes, 20, 0.0)
    assert bb.upper == bb.middle == bb.lower


def test_bollinger_uses_population_std_dev():
    closes = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
    bb = ta.bollinger_bands(closes, 8, 2.0)
    assert bb.middle == pytest.approx(5.0)
    assert bb.std_dev == pytest.approx(2.0)
    assert bb.upper == pytest.approx(9.0)
    assert bb.lower == pytest.approx(1.0)


def test_pivot_levels():
    levels = ta.pivot_levels(110, 90, 100)
    assert levels.pivot == pytest.approx(100)
    assert levels.r1 == pytest.approx(110)
    assert levels.s1 == pytest.approx(90)
    assert levels.r2 == pytest.approx(120)
    assert levels.s2 == pytest.approx(80)


def test_natr14_returns_zero_with_fewer_than_15_bars():
    highs = [10.0 + i for i in range(14)]
    lows = [9.0 + i for i in range(14)]
    closes = [9.5 + i for i in range(14)]
    assert ta.compute_natr14(highs, lows, closes) == 0.0


def test_natr14_constant_range():
    # 每根 K 线真实波幅恒为 2
    highs = [101.0] * 20
    lows = [99.0] * 20
    closes = [100.0] * 20
    assert ta.compute_natr14(highs, lows, closes) == pytest.approx(2.0)


def test_natr_zero_last_close():
    assert ta.natr([1.0] * 20, [0.0] * 20, [1.0] * 19 + [0.0], 14) == 0.0


def test_support_resistance_window():
    highs = [float(i) for i in range(150)]
    lows = [float(i) - 1 for i in range(150)]
    high, low, lookback = ta.support_resistance(highs, lows)
    assert lookback == 100
    assert high == 149.0
    assert low == 49.0


def test_compute_technical_analysis_shape():
    closes = [100 + math.sin(i / 3) * 5 for i in range(60)]
    highs = [c + 1 for c in closes]
    lows = [c - 1 for c in closes]
    result = ta.compute_technical_analysis("BTCUSDT", "1h", closes, highs, lows, 60).to_dict()

    assert result["symbol"] == "BTCUSDT"
    assert result["lastClose"] == closes[-1]
    assert result["rsi"]["period"] == 14
    assert set(result["sma"]) == {"p9", "p21", "p50"}
    assert set(result["ema"]) == {"p9", "p21", "p50"}
    assert result["supportResistance"]["lookback"] == 60
    assert result["supportResistance"]["pivots"]["pivot"] == pytest.approx(closes[-1])


def test_compute_technical_analysis_propagates_insufficient_data():
    with pytest.raises(InsufficientDataError):
        ta.compute_technical_analysis("BTCUSDT", "1h", [1.0], [1.0], [1.0], 1)
    closes = [float(i) for i in range(20)]
    with pytest.raises(InsufficientDataError):
        ta.compute_technical_analysis("BTCUSDT", "1h", closes, closes, closes, 20)
