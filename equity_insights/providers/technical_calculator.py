"""Technical indicator engine

Pure functions over daily price series: RSI, EMA/MACD, support/resistance and
52-week range position. Short series never raise; they yield the documented
neutral defaults. Only caller mistakes (non-positive period, negative
lookback) raise ValueError.
"""
import math
from functools import reduce
from itertools import accumulate
from typing import List, NamedTuple, Sequence

from equity_insights.schemas.market_data import PriceBar
from equity_insights.schemas.technical import (
    FiftyTwoWeekPosition,
    MACDResult,
    RSIResult,
    SupportResistance,
)

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
NEAR_LEVEL_PCT = 3.0
FALLBACK_BAND_PCT = 5.0
RANGE_NEAR_HIGH = 90.0
RANGE_NEAR_LOW = 10.0


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like JavaScript's Math.round (halves go up, not to even)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


class _WilderAverages(NamedTuple):
    avg_gain: float
    avg_loss: float

    def smooth(self, delta: float, period: int) -> "_WilderAverages":
        gain = delta if delta > 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        return _WilderAverages(
            (self.avg_gain * (period - 1) + gain) / period,
            (self.avg_loss * (period - 1) + loss) / period,
        )


class TechnicalIndicatorCalculator:
    """Technical indicator calculator"""

    @staticmethod
    def calculate_rsi(closes: Sequence[float], period: int = 14) -> RSIResult:
        """Wilder-smoothed RSI.

        Seeds the average gain/loss with the simple mean of the first ``period``
        changes, then smooths every later change. Needs ``period + 1`` closes;
        otherwise returns a neutral 50.
        """
        if period <= 0:
            raise ValueError("period must be > 0")
        if len(closes) < period + 1:
            return RSIResult(value=50.0, signal="neutral", description="Insufficient data")

        deltas = [float(b) - float(a) for a, b in zip(closes, closes[1:])]
        seed = _WilderAverages(
            sum(d for d in deltas[:period] if d > 0) / period,
            sum(-d for d in deltas[:period] if d < 0) / period,
        )
        averages = reduce(lambda acc, d: acc.smooth(d, period), deltas[period:], seed)

        rs = 100.0 if averages.avg_loss == 0 else averages.avg_gain / averages.avg_loss
        rsi = 100.0 - 100.0 / (1.0 + rs)

        if rsi >= RSI_OVERBOUGHT:
            signal, description = "overbought", "RSI indicates overbought conditions - potential reversal"
        elif rsi <= RSI_OVERSOLD:
            signal, description = "oversold", "RSI indicates oversold conditions - potential bounce"
        else:
            signal, description = "neutral", "RSI in neutral range"

        return RSIResult(value=round_half_up(rsi, 2), signal=signal, description=description)

    @staticmethod
    def calculate_ema(values: Sequence[float], period: int) -> List[float]:
        """EMA seeded with the simple mean of the first ``period`` values.

        The first element corresponds to ``values[period - 1]``. Input shorter
        than ``period`` is seeded from the mean of what is available and
        yields a single value.
        """
        if period <= 0:
            raise ValueError("period must be > 0")
        if not values:
            return []

        window = values[:period]
        seed = sum(window) / len(window)
        k = 2.0 / (period + 1)
        return list(accumulate(values[period:], lambda prev, price: price * k + prev * (1 - k), initial=seed))

    @staticmethod
    def calculate_macd(closes: Sequence[float]) -> MACDResult:
        """MACD(12, 26, 9) on closes; needs at least 26 closes."""
        if len(closes) < MACD_SLOW:
            return MACDResult(
                macd_line=0.0,
                signal_line=0.0,
                histogram=0.0,
                trend="neutral",
                description="Insufficient data",
            )

        calc = TechnicalIndicatorCalculator
        prices = [float(c) for c in closes]
        ema_fast = calc.calculate_ema(prices, MACD_FAST)
        ema_slow = calc.calculate_ema(prices, MACD_SLOW)

        # ema_fast[i] belongs to bar i+11, ema_slow[j] to bar j+25
        offset = MACD_SLOW - MACD_FAST
        macd_line = [fast - slow for fast, slow in zip(ema_fast[offset:], ema_slow)]
        signal_line = calc.calculate_ema(macd_line, MACD_SIGNAL)

        latest_macd = macd_line[-1]
        latest_signal = signal_line[-1]
        histogram = latest_macd - latest_signal

        if histogram > 0 and latest_macd > 0:
            trend, description = "bullish", "MACD above signal and zero line - strong bullish momentum"
        elif histogram > 0:
            trend, description = "bullish", "MACD crossing above signal - bullish momentum building"
        elif histogram < 0 and latest_macd < 0:
            trend, description = "bearish", "MACD below signal and zero line - strong bearish momentum"
        elif histogram < 0:
            trend, description = "bearish", "MACD crossing below signal - bearish momentum building"
        else:
            trend, description = "neutral", "MACD showing no clear direction"

        return MACDResult(
            macd_line=round_half_up(latest_macd, 2),
            signal_line=round_half_up(latest_signal, 2),
            histogram=round_half_up(histogram, 2),
            trend=trend,
            description=description,
        )

    @staticmethod
    def calculate_support_resistance(bars: Sequence[PriceBar], lookback: int = 20) -> SupportResistance:
        """Lowest low / highest high of the trailing ``lookback`` bars.

        With fewer bars a synthetic +/-5% band around the last close is used.
        """
        if lookback < 0:
            raise ValueError("lookback must be >= 0")

        current = bars[-1].close if bars else 0.0
        if len(bars) < lookback or current <= 0:
            return SupportResistance(
                support=round_half_up(current * (1 - FALLBACK_BAND_PCT / 100), 2),
                resistance=round_half_up(current * (1 + FALLBACK_BAND_PCT / 100), 2),
                distance_to_support_pct=FALLBACK_BAND_PCT,
                distance_to_resistance_pct=FALLBACK_BAND_PCT,
                near_level="middle",
            )

        recent = bars[-lookback:] if lookback else bars
        support = min(b.low for b in recent)
        resistance = max(b.high for b in recent)

        to_support = (current - support) / current * 100
        to_resistance = (resistance - current) / current * 100

        if to_support < NEAR_LEVEL_PCT:
            near_level = "support"
        elif to_resistance < NEAR_LEVEL_PCT:
            near_level = "resistance"
        else:
            near_level = "middle"

        return SupportResistance(
            support=round_half_up(support, 2),
            resistance=round_half_up(resistance, 2),
            distance_to_support_pct=round_half_up(to_support, 2),
            distance_to_resistance_pct=round_half_up(to_resistance, 2),
            near_level=near_level,
        )

    @staticmethod
    def calculate_52_week_position(current: float, high: float, low: float) -> FiftyTwoWeekPosition:
        """Linear position of ``current`` inside [low, high].

        The result is not clamped: a stale range can give values above 100 or
        below 0, which still classify as near_high / near_low.
        """
        if high == low:
            return FiftyTwoWeekPosition(
                high=high,
                low=low,
                current=current,
                position_pct=50.0,
                signal="middle",
                description="No 52-week range data",
            )

        position = (current - low) / (high - low) * 100

        if position >= RANGE_NEAR_HIGH:
            below_high = (high - current) / current * 100 if current > 0 else 0.0
            signal = "near_high"
            description = f"Trading near 52-week high - {int(round_half_up(below_high))}% below high"
        elif position <= RANGE_NEAR_LOW:
            above_low = (current - low) / low * 100 if low > 0 else 0.0
            signal = "near_low"
            description = f"Trading near 52-week low - {int(round_half_up(above_low))}% above low"
        else:
            signal = "middle"
            description = "Trading in middle of 52-week range"

        return FiftyTwoWeekPosition(
            high=high,
            low=low,
            current=current,
            position_pct=round_half_up(position, 2),
            signal=signal,
            description=description,
        )
