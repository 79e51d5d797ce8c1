"""Technical analysis DTOs"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RSISignal = Literal["oversold", "neutral", "overbought"]
MACDTrend = Literal["bullish", "bearish", "neutral"]
NearLevel = Literal["support", "resistance", "middle"]
RangeSignal = Literal["near_high", "near_low", "middle"]
SignalStrength = Literal["strong_sell", "sell", "hold", "buy", "strong_buy"]


class RSIResult(BaseModel):
    value: float = Field(..., ge=0, le=100)
    signal: RSISignal
    description: str


class MACDResult(BaseModel):
    macd_line: float
    signal_line: float
    histogram: float
    trend: MACDTrend
    description: str


class SupportResistance(BaseModel):
    support: float
    resistance: float
    distance_to_support_pct: float
    distance_to_resistance_pct: float
    near_level: NearLevel


class FiftyTwoWeekPosition(BaseModel):
    high: float
    low: float
    current: float
    position_pct: float = Field(..., description="0 at the 52-week low, 100 at the high; not clamped")
    signal: RangeSignal
    description: str


class TechnicalSignal(BaseModel):
    """Composite technical view of one ticker"""
    ticker: str
    rsi: RSIResult
    macd: MACDResult
    fifty_two_week: FiftyTwoWeekPosition
    support_resistance: SupportResistance
    overall_signal: SignalStrength
    signal_score: int = Field(..., ge=-100, le=100)
    calculated_at: datetime


class TechnicalSignalResponse(BaseModel):
    signal: TechnicalSignal
