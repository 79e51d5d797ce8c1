"""Signal composer

Folds the indicator outputs into one integer score and a five-level signal.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from equity_insights.providers.technical_calculator import TechnicalIndicatorCalculator
from equity_insights.schemas.market_data import PriceBar
from equity_insights.schemas.technical import (
    FiftyTwoWeekPosition,
    MACDResult,
    RSIResult,
    SignalStrength,
    TechnicalSignal,
)

logger = logging.getLogger(__name__)

RSI_WEIGHT = 25
MACD_WEIGHT = 30
NEAR_LOW_WEIGHT = 15
NEAR_HIGH_WEIGHT = 10

STRONG_THRESHOLD = 40
THRESHOLD = 15


def score_signal(rsi: RSIResult, macd: MACDResult, fifty_two_week: FiftyTwoWeekPosition) -> int:
    score = 0

    if rsi.signal == "oversold":
        score += RSI_WEIGHT
    elif rsi.signal == "overbought":
        score -= RSI_WEIGHT

    if macd.trend == "bullish":
        score += MACD_WEIGHT
    elif macd.trend == "bearish":
        score -= MACD_WEIGHT

    if fifty_two_week.signal == "near_low":
        score += NEAR_LOW_WEIGHT
    elif fifty_two_week.signal == "near_high":
        score -= NEAR_HIGH_WEIGHT

    return score


def classify_score(score: int) -> SignalStrength:
    """Map a score onto the five signal levels (monotone in ``score``)."""
    if score >= STRONG_THRESHOLD:
        return "strong_buy"
    if score >= THRESHOLD:
        return "buy"
    if score <= -STRONG_THRESHOLD:
        return "strong_sell"
    if score <= -THRESHOLD:
        return "sell"
    return "hold"


def compute_technical_signal(
    ticker: str,
    bars: Sequence[PriceBar],
    fifty_two_week_high: float,
    fifty_two_week_low: float,
    now: Optional[datetime] = None,
) -> TechnicalSignal:
    """Build the full technical view of one ticker from its daily bars.

    Args:
        ticker: symbol the bars belong to
        bars: daily bars, oldest first
        fifty_two_week_high: range high (usually from the quote)
        fifty_two_week_low: range low
        now: timestamp stamped on the result; defaults to the current UTC time

    Short histories are not an error here: each indicator falls back to its
    neutral default. Callers that need a minimum history check it beforehand.
    """
    calc = TechnicalIndicatorCalculator
    closes = [bar.close for bar in bars]
    current = closes[-1] if closes else 0.0

    rsi = calc.calculate_rsi(closes)
    macd = calc.calculate_macd(closes)
    fifty_two_week = calc.calculate_52_week_position(current, fifty_two_week_high, fifty_two_week_low)
    support_resistance = calc.calculate_support_resistance(bars)

    score = score_signal(rsi, macd, fifty_two_week)
    overall = classify_score(score)
    logger.debug(f"{ticker}: rsi={rsi.value} macd={macd.trend} range={fifty_two_week.signal} score={score}")

    return TechnicalSignal(
        ticker=ticker,
        rsi=rsi,
        macd=macd,
        fifty_two_week=fifty_two_week,
        support_resistance=support_resistance,
        overall_signal=overall,
        signal_score=score,
        calculated_at=now or datetime.now(timezone.utc),
    )
